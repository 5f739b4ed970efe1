"""
routes/patches.py — Patch management API routes.

Provides:
- GET  /api/patches                         - All patches (?top=1 for top-level only)
- POST /api/patches/add                     - Create a patch
- GET  /api/patches/<patch_id>              - One patch with its children and tasks
- POST /api/patches/<patch_id>/edit         - Merge fields into a patch (clips occupants on shrink)
- POST /api/patches/<patch_id>/delete       - Delete a patch with its plants and tasks
- POST /api/patches/<patch_id>/tasks/add    - Append a task
- POST /api/patches/<patch_id>/tasks/delete - Remove the task at an index
- GET  /api/patches/templates               - Template trays
- POST /api/patches/templates/<id>/apply    - Create a patch from a template

Auto-backup is triggered before every patch delete.
"""

from flask import Blueprint, request, jsonify, current_app

from utils.backup import backup_db

patches_bp = Blueprint('patches', __name__, url_prefix='/api/patches')


def get_registry():
    return current_app.extensions['garden'].registry


@patches_bp.route('')
def list_patches():
    registry = get_registry()
    top_only = request.args.get('top', '0') in ('1', 'true')
    patches = registry.top_level() if top_only else registry.all()
    return jsonify({'success': True, 'patches': [p.to_dict() for p in patches]})


@patches_bp.route('/add', methods=['POST'])
def add_patch():
    """Create a patch from a JSON object of patch fields."""
    data = request.get_json(silent=True) or {}
    patch, error = get_registry().add(data)
    if error:
        return jsonify({'success': False, 'error': error}), 400
    return jsonify({'success': True, 'patch': patch.to_dict()}), 201


@patches_bp.route('/templates')
def list_templates():
    return jsonify({'success': True, 'templates': [p.to_dict() for p in get_registry().templates()]})


@patches_bp.route('/templates/<template_id>/apply', methods=['POST'])
def apply_template(template_id):
    """Create a patch from a template: {name?, containing_patch_id?}."""
    data = request.get_json(silent=True) or {}
    patch, error = get_registry().create_from_template(
        template_id, name=data.get('name'), containing_patch_id=data.get('containing_patch_id'),
    )
    if error:
        return jsonify({'success': False, 'error': error}), 400
    return jsonify({'success': True, 'patch': patch.to_dict()}), 201


@patches_bp.route('/<patch_id>')
def get_patch(patch_id):
    registry = get_registry()
    patch = registry.get(patch_id)
    if patch is None:
        return jsonify({'success': False, 'error': 'Patch not found'}), 404
    return jsonify({
        'success': True,
        'patch': patch.to_dict(),
        'children': [child.to_dict() for child in registry.children(patch_id)],
        'tasks': registry.tasks(patch_id),
    })


@patches_bp.route('/<patch_id>/edit', methods=['POST'])
def edit_patch(patch_id):
    data = request.get_json(silent=True) or {}
    result = get_registry().edit(patch_id, data)
    if not result.ok:
        return jsonify(result.to_dict()), 400
    return jsonify(result.to_dict())


@patches_bp.route('/<patch_id>/delete', methods=['POST'])
def delete_patch(patch_id):
    registry = get_registry()
    if registry.get(patch_id) is None:
        return jsonify({'success': False, 'error': 'Patch not found'}), 404

    backup_db(current_app.config['GARDEN_DB_PATH'], current_app.config['GARDEN_BACKUP_DIR'], 'pre_delete')
    result = registry.delete(patch_id)
    return jsonify(result.to_dict())


# ========================================
# Task Routes
# ========================================

@patches_bp.route('/<patch_id>/tasks/add', methods=['POST'])
def add_task(patch_id):
    """Append a task: {task}."""
    data = request.get_json(silent=True) or {}
    tasks, error = get_registry().add_task(patch_id, data.get('task'))
    if tasks is None:
        return jsonify({'success': False, 'error': error}), 404
    return jsonify({'success': error is None, 'tasks': tasks, 'error': error})


@patches_bp.route('/<patch_id>/tasks/delete', methods=['POST'])
def delete_task(patch_id):
    """Remove a task: {index}."""
    data = request.get_json(silent=True) or {}
    tasks, error = get_registry().delete_task(patch_id, data.get('index'))
    if tasks is None:
        return jsonify({'success': False, 'error': error}), 400
    return jsonify({'success': error is None, 'tasks': tasks, 'error': error})
