"""
Logging setup for the web app.

Everything goes to a rotating enhancemd.log. Recoverable pipeline problems
(the diagnostics recorded through enhancemd.core.errors) are copied to
diagnostics.log as well, so authors' template and upload issues can be
reviewed without the request noise.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

# Constants
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DIAGNOSTIC_FORMAT = "%(asctime)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "enhancemd.log"
DIAGNOSTICS_FILE_NAME = "diagnostics.log"
LOG_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
DIAGNOSTICS_FILE_SIZE = 2 * 1024 * 1024  # 2 MB
LOG_BACKUP_COUNT = 5

DIAGNOSTICS_LOGGER = 'enhancemd.core.errors'
NOISY_LOGGERS = ('werkzeug', 'PIL', 'MARKDOWN')


def _rotating_handler(path: Path, max_bytes: int, fmt: str, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    handler.setFormatter(logging.Formatter(fmt, datefmt=LOG_DATE_FORMAT))
    handler.setLevel(level)
    return handler


def _clear_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(log_dir: Path, debug_mode: bool = False, console: bool = True) -> Path:
    """
    Configure the root logger and the diagnostics log.
    Safe to call again (the app module may be re-imported); returns the main log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug_mode else logging.INFO)
    _clear_handlers(root_logger)

    # The file always gets full detail
    root_logger.addHandler(_rotating_handler(log_file, LOG_FILE_SIZE, LOG_FORMAT, logging.DEBUG))

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        console_handler.setLevel(logging.DEBUG if debug_mode else logging.INFO)
        root_logger.addHandler(console_handler)

    diagnostics_logger = logging.getLogger(DIAGNOSTICS_LOGGER)
    _clear_handlers(diagnostics_logger)
    diagnostics_logger.addHandler(_rotating_handler(
        log_dir / DIAGNOSTICS_FILE_NAME, DIAGNOSTICS_FILE_SIZE, DIAGNOSTIC_FORMAT, logging.WARNING))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging initialized. Log file: {log_file}")
    return log_file
