"""
routes/garden.py — Garden grid API routes.

Provides:
- GET  /api/garden                    - Full garden state (patches, planted items, plants, tasks)
- GET  /api/garden/patches/<patch_id> - Occupants of one patch
- POST /api/garden/place              - Drop a catalog plant on a cell (overwrites)
- POST /api/garden/move               - Move a plant between cells (rejects occupied targets)
- POST /api/garden/grow               - Advance or revert a plant's growth stage
- POST /api/garden/remove             - Clear a cell
- POST /api/garden/copy               - Copy a plant into random empty cells of its patch
- POST /api/garden/reload             - Reload everything from the store
"""

from flask import Blueprint, request, jsonify, current_app

from models import PlantedItem, Position

garden_bp = Blueprint('garden', __name__, url_prefix='/api/garden')


def get_garden():
    return current_app.extensions['garden']


def _int(value):
    """
    Read an integer coordinate from JSON.

    Only ints and digit strings such as "3" or "-1" are converted. Floats,
    bools and anything else pass through unchanged so the engine rejects them
    as invalid positions.
    """
    if isinstance(value, str) and value.strip().lstrip('-').isdecimal():
        try:
            return int(value)
        except ValueError:
            return value
    return value


def _cell(data):
    """Read (x, y, patch_id) from a JSON object."""
    return _int(data.get('x')), _int(data.get('y')), data.get('patch_id')


def _result_response(result):
    status_code = 200 if result.ok else 400
    return jsonify(result.to_dict()), status_code


def _item_at_request(data):
    x, y, patch_id = _cell(data)
    return PlantedItem(plant_id=data.get('plant_id') or '', position=Position(x, y, patch_id))


@garden_bp.route('')
def state():
    """Full garden state (JSON API)."""
    return jsonify({'success': True, **get_garden().state()})


@garden_bp.route('/patches/<patch_id>')
def patch_items(patch_id):
    garden = get_garden()
    patch = garden.registry.get(patch_id)
    if patch is None:
        return jsonify({'success': False, 'error': 'Patch not found'}), 404
    return jsonify({
        'success': True,
        'patch': patch.to_dict(),
        'items': [item.to_dict() for item in garden.engine.occupants(patch_id)],
    })


@garden_bp.route('/place', methods=['POST'])
def place():
    """Drop a plant: {plant_id, x, y, patch_id}."""
    garden = get_garden()
    data = request.get_json(silent=True) or {}
    plant = garden.catalog.get(data.get('plant_id'))
    if plant is None:
        return jsonify({'success': False, 'error': 'Plant not found'}), 404

    x, y, patch_id = _cell(data)
    return _result_response(garden.engine.place(plant, x, y, patch_id))


@garden_bp.route('/move', methods=['POST'])
def move():
    """Move a plant: {source: {x, y, patch_id}, target: {x, y, patch_id}}."""
    garden = get_garden()
    data = request.get_json(silent=True) or {}
    source = data.get('source') or {}
    target = data.get('target') or {}

    sx, sy, sp = _cell(source)
    tx, ty, tp = _cell(target)
    item = garden.engine.item_at(sp, sx, sy)
    return _result_response(garden.engine.move(item, sx, sy, sp, tx, ty, tp))


@garden_bp.route('/grow', methods=['POST'])
def grow():
    """Change growth stage: {x, y, patch_id, direction: 'up' | 'down'}."""
    data = request.get_json(silent=True) or {}
    item = _item_at_request(data)
    return _result_response(get_garden().engine.grow(item, data.get('direction', 'up')))


@garden_bp.route('/remove', methods=['POST'])
def remove():
    """Clear a cell: {x, y, patch_id}."""
    data = request.get_json(silent=True) or {}
    return _result_response(get_garden().engine.remove(_item_at_request(data)))


@garden_bp.route('/copy', methods=['POST'])
def copy():
    """Copy a plant: {x, y, patch_id, count}."""
    data = request.get_json(silent=True) or {}
    item = _item_at_request(data)
    return _result_response(get_garden().engine.copy(item, data.get('count', 1)))


@garden_bp.route('/reload', methods=['POST'])
def reload():
    """Reload the garden from the store (local cache when the store is unreachable)."""
    garden = get_garden().refresh()
    return jsonify({'success': True, **garden.state()})
