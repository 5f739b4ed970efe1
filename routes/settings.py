"""
routes/settings.py — Settings and administration routes.

Provides:
- GET  /settings/                - Summary: user, store, patch/plant counts, backups
- POST /settings/backup/create   - Create a manual backup
- POST /settings/backup/delete   - Delete a backup file
- GET  /settings/value/<key>     - Read a local setting
- POST /settings/value/<key>     - Write a local setting
"""

from flask import Blueprint, request, jsonify, current_app

from database import get_setting, update_setting
from persistence import PATCHES_CACHE_KEY, PLANTED_ITEMS_CACHE_KEY, PLANTS_CACHE_KEY
from utils.backup import backup_db, list_backups, delete_backup

settings_bp = Blueprint('settings', __name__, url_prefix='/settings')

SNAPSHOT_KEYS = (PATCHES_CACHE_KEY, PLANTED_ITEMS_CACHE_KEY, PLANTS_CACHE_KEY)


def _paths():
    return current_app.config['GARDEN_DB_PATH'], current_app.config['GARDEN_BACKUP_DIR']


@settings_bp.route('/')
def index():
    """Settings summary (JSON API)."""
    garden = current_app.extensions['garden']
    _, backup_dir = _paths()
    return jsonify({
        'success': True,
        'user': {'id': garden.session.user_id,
                 'name': garden.session.profile.name if garden.session.profile else None},
        'store': type(garden.adapter).__name__,
        'patch_count': len(garden.registry.all()),
        'plant_count': len(garden.catalog.all()),
        'planted_count': sum(len(items) for items in garden.engine.planted.values()),
        'backups': list_backups(backup_dir),
    })


# ========================================
# Backup Routes
# ========================================

@settings_bp.route('/backup/create', methods=['POST'])
def backup_create():
    """Create a manual backup."""
    db_path, backup_dir = _paths()
    filename = backup_db(db_path, backup_dir, 'manual')
    if not filename:
        return jsonify({'success': False, 'error': 'Backup failed'}), 500
    return jsonify({'success': True, 'filename': filename})


@settings_bp.route('/backup/delete', methods=['POST'])
def backup_delete():
    """Delete a backup file: {filename}."""
    data = request.get_json(silent=True) or {}
    filename = (data.get('filename') or '').strip()
    if not filename:
        return jsonify({'success': False, 'error': 'Backup file not specified'}), 400

    _, backup_dir = _paths()
    if not delete_backup(backup_dir, filename):
        return jsonify({'success': False, 'error': f'Could not delete {filename}'}), 404
    return jsonify({'success': True})


# ========================================
# Local Settings
# ========================================

@settings_bp.route('/value/<key>')
def setting_get(key):
    db_path, _ = _paths()
    return jsonify({'success': True, 'key': key, 'value': get_setting(key, db_path=db_path)})


@settings_bp.route('/value/<key>', methods=['POST'])
def setting_set(key):
    data = request.get_json(silent=True) or {}
    if 'value' not in data:
        return jsonify({'success': False, 'error': 'Missing value'}), 400

    if key in SNAPSHOT_KEYS:
        return jsonify({'success': False, 'error': f'{key} is managed by the garden'}), 400

    db_path, _ = _paths()
    update_setting(key, str(data['value']), db_path=db_path)
    return jsonify({'success': True, 'key': key, 'value': str(data['value'])})
