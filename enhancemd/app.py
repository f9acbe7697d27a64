"""
EnhanceMD
A Flask service that turns authored markdown (variables, smart components,
uploaded images) into a resolved document and rendered HTML.
"""

from flask import Flask, request, jsonify, send_file
from io import BytesIO
import logging
import os
import sys
from pathlib import Path

from enhancemd.core.config import load_config
from enhancemd.core.logging_config import setup_logging
from enhancemd.core.session import EditingSession
from enhancemd.core.store import JsonFileStore
from enhancemd.features import exporters
from enhancemd.features.registry import FeatureManager
from enhancemd.features.variables import Variable
from enhancemd.version_info import __version__ as VERSION

# Initialize Logging
DEBUG_MODE = os.environ.get('FLASK_ENV') == 'development'

if getattr(sys, 'frozen', False):
    BASE_DIR = Path(sys.executable).parent
else:
    BASE_DIR = Path(__file__).resolve().parent.parent

LOG_DIR = Path(os.environ.get('ENHANCEMD_LOG_DIR', BASE_DIR / 'logs'))
setup_logging(LOG_DIR, DEBUG_MODE)

logger = logging.getLogger(__name__)
logger.info(f"Application starting - Version {VERSION}")

# Create Flask App (SINGLE INSTANCE)
app = Flask(__name__)

# Load configuration
CONFIG = load_config()
SESSION = EditingSession(
    store=JsonFileStore(Path(CONFIG['store_path'])),
    debounce_seconds=CONFIG['debounce_ms'] / 1000,
    min_batch_seconds=CONFIG['min_batch_seconds'],
)

# Export handlers
FEATURES = FeatureManager()
for feature in exporters.get_features():
    FEATURES.register(feature)
logger.info(f"Export formats available: {FEATURES.export_formats()}")

from enhancemd.editor import editor_bp  # noqa: E402
app.register_blueprint(editor_bp)


def get_session() -> EditingSession:
    return SESSION


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"500 Error: {error}", exc_info=True)
    return jsonify({'error': f'Internal Server Error: {error}'}), 500


@app.route('/api/version')
def get_version():
    return jsonify({'version': VERSION})


@app.route('/api/export/<format_ext>', methods=['POST'])
def handle_export_request(format_ext):
    """
    Generic export handler. Renders the posted content and delegates to the
    registered export feature for the requested format.
    """
    feature = FEATURES.get_export_feature(format_ext)
    logger.debug(f"Handle Export Request: Resolved feature for {format_ext} -> {feature}")
    if not feature:
        return jsonify({
            "error": "Export format not available",
            "code": "MISSING_EXPORTER",
            "message": f"The {format_ext.upper()} exporter is not registered."
        }), 404

    data = request.get_json(silent=True) or {}
    content = data.get('content')
    if content is None:
        return jsonify({'error': 'Missing content'}), 400

    session = get_session()
    try:
        if data.get('variables') is not None:
            session.variables.replace_all([Variable.from_dict(v) for v in data['variables']])
    except (KeyError, ValueError, TypeError) as e:
        return jsonify({'error': f'Invalid variables: {e}'}), 400

    result = session.render(content)
    try:
        output_data = feature.handler(result)
    except ValueError as e:
        logger.warning(f"Export rejected: {e}")
        return jsonify({"error": str(e)}), 413
    except Exception as e:
        logger.error(f"Export handler failed: {e}", exc_info=True)
        return jsonify({"error": f"Export Failed: {str(e)}"}), 500

    return send_file(
        BytesIO(output_data),
        mimetype=feature.meta.get('mime_type', 'application/octet-stream'),
        as_attachment=True,
        download_name=f"{exporters.document_title(result.markdown)}.{format_ext}",
    )


if __name__ == '__main__':
    app.run(debug=True, host='localhost', port=8000)
