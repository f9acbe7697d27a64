from flask import Blueprint, request, jsonify
import asyncio
import logging

from enhancemd.core.errors import Diagnostic
from enhancemd.features.images import ImageAsset
from enhancemd.features.templates import Template
from enhancemd.features.variables import Variable

# Create Blueprint
editor_bp = Blueprint('editor', __name__)
logger = logging.getLogger(__name__)


def get_session():
    """Deferred import to avoid circular dependency/init issues."""
    from enhancemd.app import SESSION
    return SESSION


def _apply_variables(session, items):
    if items is None:
        return
    session.variables.replace_all([Variable.from_dict(item) for item in items])


@editor_bp.route('/api/render', methods=['POST'])
def render_content():
    """Run the full pipeline over the editor content."""
    session = get_session()
    data = request.get_json(silent=True) or {}
    content = data.get('content')
    if content is None:
        return jsonify({'error': 'Missing content'}), 400

    try:
        _apply_variables(session, data.get('variables'))
    except (KeyError, ValueError, TypeError) as e:
        return jsonify({'error': f'Invalid variables: {e}'}), 400

    if data.get('debounce'):
        # Live typing: only the last of a burst of edits is rendered
        session.pipeline.schedule(content)
        return jsonify({'scheduled': True}), 202

    result = session.render(content, render_html=data.get('html', True))
    logger.info(f"Editor: Rendered generation {result.generation} "
                f"({len(result.components)} components, {len(result.diagnostics)} diagnostics)")
    return jsonify(result.to_dict())


@editor_bp.route('/api/render/latest', methods=['GET'])
def latest_render():
    """Most recently published result (debounced edits land here)."""
    latest = get_session().pipeline.latest
    if latest is None:
        return jsonify({'error': 'Nothing rendered yet'}), 404
    return jsonify(latest.to_dict())


@editor_bp.route('/api/variables', methods=['GET'])
def list_variables():
    return jsonify(get_session().variables.to_list())


@editor_bp.route('/api/variables', methods=['POST'])
def add_variable():
    data = request.get_json(silent=True) or {}
    if not data.get('name'):
        return jsonify({'error': 'Missing variable name'}), 400
    try:
        variable = Variable.from_dict(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    get_session().variables.add(variable)
    logger.info(f"Editor: Variable '{variable.name}' added")
    return jsonify(variable.to_dict()), 201


@editor_bp.route('/api/variables/<name>', methods=['PATCH'])
def update_variable(name):
    data = request.get_json(silent=True) or {}
    if 'value' not in data:
        return jsonify({'error': 'Missing value'}), 400
    try:
        variable = get_session().variables.update(name, str(data['value']))
    except KeyError:
        return jsonify({'error': f'Variable {name} not found'}), 404
    return jsonify(variable.to_dict())


@editor_bp.route('/api/variables/<name>', methods=['DELETE'])
def remove_variable(name):
    if not get_session().variables.remove(name):
        return jsonify({'error': f'Variable {name} not found'}), 404
    logger.info(f"Editor: Variable '{name}' removed")
    return jsonify({'success': True})


@editor_bp.route('/api/templates', methods=['GET'])
def list_templates():
    return jsonify([t.to_dict() for t in get_session().templates.all()])


@editor_bp.route('/api/templates', methods=['POST'])
def save_template():
    """Save the posted template (or the current variables) as a user template."""
    session = get_session()
    data = request.get_json(silent=True) or {}
    if not data.get('name') or data.get('content') is None:
        return jsonify({'error': 'Missing name or content'}), 400
    if 'variables' not in data:
        data['variables'] = session.variables.to_list()
    try:
        template = session.templates.save(Template.from_dict(data))
    except (KeyError, ValueError, TypeError) as e:
        return jsonify({'error': f'Invalid template: {e}'}), 400
    return jsonify(template.to_dict()), 201


@editor_bp.route('/api/templates/<template_id>', methods=['DELETE'])
def delete_template(template_id):
    session = get_session()
    if session.templates.get(template_id) is None:
        return jsonify({'error': 'Template not found'}), 404
    if not session.templates.delete(template_id):
        return jsonify({'error': 'Cannot delete built-in templates'}), 403
    return jsonify({'success': True})


@editor_bp.route('/api/templates/<template_id>/load', methods=['POST'])
def load_template(template_id):
    diagnostics = []
    loaded = get_session().load_template(template_id, diagnostics)
    if loaded is None:
        return jsonify({'error': 'Template not found'}), 404
    content, variables = loaded
    return jsonify({
        'content': content,
        'variables': [v.to_dict() for v in variables],
        'diagnostics': [d.to_dict() for d in diagnostics],
    })


@editor_bp.route('/api/images', methods=['GET'])
def list_images():
    session = get_session()
    return jsonify({'images': session.images.names, 'paths': len(session.images)})


@editor_bp.route('/api/images', methods=['POST'])
def upload_images():
    """Ingest uploaded images one by one; rejected files do not stop the batch."""
    session = get_session()
    files = request.files.getlist('files')
    if not files:
        return jsonify({'error': 'No files provided'}), 400

    # Browsers send octet-stream for unknown types; fall back to the file name then
    assets = [ImageAsset(f.filename, f.read(), f.mimetype if (f.mimetype or '').startswith('image/') else None)
              for f in files if f and f.filename]
    diagnostics: list[Diagnostic] = []
    report = asyncio.run(session.add_images(assets, diagnostics))

    payload = report.to_dict()
    payload['diagnostics'] = [d.to_dict() for d in diagnostics]
    if session.pipeline.latest is not None:
        payload['status'] = session.pipeline.latest.image_status.to_dict()
    return jsonify(payload)


@editor_bp.route('/api/images', methods=['DELETE'])
def reset_images():
    get_session().reset_images()
    return jsonify({'success': True})
