"""
routes/export.py — Excel export routes.

Provides:
- GET /export/excel - Download the garden layout (one sheet per patch)

Auto-backup is triggered before every export.
"""

from flask import Blueprint, jsonify, send_file, current_app

from utils.backup import backup_db
from utils.export import generate_excel

export_bp = Blueprint('export', __name__, url_prefix='/export')


@export_bp.route('/excel')
def export_excel():
    """Export every patch's planted items as an Excel workbook."""
    backup_db(current_app.config['GARDEN_DB_PATH'], current_app.config['GARDEN_BACKUP_DIR'], 'export')

    buffer, filename = generate_excel(current_app.extensions['garden'])
    if not buffer:
        return jsonify({'success': False, 'error': 'No patches to export'}), 404

    return send_file(
        buffer,
        as_attachment=True,
        download_name=filename,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
