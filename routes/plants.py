"""
routes/plants.py — Plant catalog API routes.

Provides:
- GET  /api/plants                      - All plants (?q= to search by name, ?category= to filter)
- POST /api/plants/add                  - Add a plant
- GET  /api/plants/<plant_id>/varieties - Varieties of a plant
- POST /api/plants/<plant_id>/varieties - Add a variety (inherits icon/category/lifecycle)
- POST /api/plants/<plant_id>/delete    - Delete a plant not in use and without varieties
"""

from flask import Blueprint, request, jsonify, current_app

plants_bp = Blueprint('plants', __name__, url_prefix='/api/plants')


def get_catalog():
    return current_app.extensions['garden'].catalog


@plants_bp.route('')
def list_plants():
    """List or search plants (JSON API)."""
    query = request.args.get('q', '').strip()
    category = request.args.get('category', '').strip() or None
    catalog = get_catalog()
    plants = catalog.search(query, category) if query or category else catalog.all()
    return jsonify({'success': True, 'plants': [p.to_dict() for p in plants]})


@plants_bp.route('/add', methods=['POST'])
def add_plant():
    """Add a plant: {name, icon, category, lifecycle?}."""
    data = request.get_json(silent=True) or {}
    plant, error = get_catalog().add(
        data.get('name'), data.get('icon'), data.get('category'), data.get('lifecycle'),
    )
    if error:
        return jsonify({'success': False, 'error': error}), 400
    return jsonify({'success': True, 'plant': plant.to_dict()}), 201


@plants_bp.route('/<plant_id>/varieties')
def list_varieties(plant_id):
    catalog = get_catalog()
    if catalog.get(plant_id) is None:
        return jsonify({'success': False, 'error': 'Plant not found'}), 404
    return jsonify({'success': True, 'varieties': [p.to_dict() for p in catalog.varieties(plant_id)]})


@plants_bp.route('/<plant_id>/varieties', methods=['POST'])
def add_variety(plant_id):
    """Add a variety: {name}."""
    data = request.get_json(silent=True) or {}
    variety, error = get_catalog().add_variety(plant_id, data.get('name'))
    if error:
        return jsonify({'success': False, 'error': error}), 400
    return jsonify({'success': True, 'plant': variety.to_dict()}), 201


@plants_bp.route('/<plant_id>/delete', methods=['POST'])
def delete_plant(plant_id):
    success, error = get_catalog().delete(plant_id)
    if not success:
        return jsonify({'success': False, 'error': error}), 400
    return jsonify({'success': True})
