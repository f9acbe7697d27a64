import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Image intake limits (in bytes)
MAX_UPLOAD_SIZE = 5 * 1024 * 1024  # 5 MB hard ceiling per asset
COMPRESS_THRESHOLD = 100 * 1024  # Recompress anything larger than 100 KB
SECOND_PASS_THRESHOLD = 500 * 1024  # Re-encode once more above 500 KB
MAX_IMAGE_WIDTH = 800
MAX_IMAGE_HEIGHT = 1000
MAX_BATCH_FILES = 20

# Pacing
MIN_BATCH_SECONDS = 1.5
DEBOUNCE_MS = 300

# Template nesting limits (blocks inside blocks, parentheses inside expressions)
MAX_BLOCK_DEPTH = 64
MAX_EXPRESSION_DEPTH = 100

# Persistence keys in the key-value store
TEMPLATES_STORE_KEY = 'enhancemd-templates'
USER_TEMPLATE_PREFIX = 'user-'

CONFIG_FILE = Path(os.environ.get('ENHANCEMD_CONFIG', PROJECT_ROOT / 'config.json'))


def default_config() -> Dict[str, Any]:
    return {
        'store_path': str(PROJECT_ROOT / 'data' / 'store.json'),
        'debounce_ms': DEBOUNCE_MS,
        'min_batch_seconds': MIN_BATCH_SECONDS,
    }


def load_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration, falling back to defaults for missing keys."""
    config_file = Path(config_file) if config_file else CONFIG_FILE
    config = default_config()
    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config.update(json.load(f))
        except Exception as e:
            logger.error(f"Failed to load config {config_file}: {e}")
    return config


def save_config(config: Dict[str, Any], config_file: Optional[Path] = None) -> None:
    """Save configuration."""
    config_file = Path(config_file) if config_file else CONFIG_FILE
    try:
        with open(config_file, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2)
        logger.info("Configuration saved successfully")
    except Exception as e:
        logger.error(f"Failed to save config: {e}")
