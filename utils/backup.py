"""
utils/backup.py — Local garden database backups.

Copies the SQLite store to the backup directory with timestamped filenames.
Backup triggers: before a patch delete, on export, manual from Settings.
Format: garden_YYYYMMDD_HHMMSS_{reason}.db
"""

import logging
import os
import shutil
from datetime import datetime

logger = logging.getLogger(__name__)

BACKUP_PREFIX = 'garden_'


def _is_backup_name(filename):
    return (
        filename.startswith(BACKUP_PREFIX)
        and filename.endswith('.db')
        and os.path.basename(filename) == filename
    )


def backup_db(db_path, backup_dir, reason='manual'):
    """
    Copy the garden database to backup_dir with a timestamped filename.

    Args:
        db_path: Path of the SQLite store.
        backup_dir: Directory receiving the copy (created if missing).
        reason: Short tag for the backup trigger (e.g., 'manual', 'pre_delete', 'export').

    Returns:
        The filename of the created backup, or None on failure.
    """
    os.makedirs(backup_dir, exist_ok=True)

    if not db_path or not os.path.exists(db_path):
        return None

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    safe_reason = reason.replace(' ', '_').replace('/', '_')[:30]
    filename = f'{BACKUP_PREFIX}{timestamp}_{safe_reason}.db'
    dest = os.path.join(backup_dir, filename)

    try:
        shutil.copy2(db_path, dest)
    except OSError as e:
        logger.error("Backup of %s failed: %s", db_path, e)
        return None
    logger.info("Created backup %s", filename)
    return filename


def _size_display(size_bytes):
    if size_bytes < 1024:
        return f'{size_bytes} B'
    if size_bytes < 1024 * 1024:
        return f'{size_bytes / 1024:.1f} KB'
    return f'{size_bytes / (1024 * 1024):.1f} MB'


def list_backups(backup_dir):
    """
    List the backup files in backup_dir.

    Returns:
        List of dicts with keys: filename, timestamp, size_bytes, size_display, reason.
        Sorted newest first.
    """
    os.makedirs(backup_dir, exist_ok=True)

    backups = []
    for name in os.listdir(backup_dir):
        if not _is_backup_name(name):
            continue
        size_bytes = os.stat(os.path.join(backup_dir, name)).st_size

        # parts: ['garden', 'YYYYMMDD', 'HHMMSS', 'reason', ...]
        parts = name[:-len('.db')].split('_')
        timestamp_str = ''
        reason = ''
        if len(parts) >= 3:
            date_part, time_part = parts[1], parts[2]
            timestamp_str = (f'{date_part[:4]}-{date_part[4:6]}-{date_part[6:8]} '
                             f'{time_part[:2]}:{time_part[2:4]}:{time_part[4:6]}')
            reason = '_'.join(parts[3:])

        backups.append({
            'filename': name,
            'timestamp': timestamp_str,
            'size_bytes': size_bytes,
            'size_display': _size_display(size_bytes),
            'reason': reason,
        })

    backups.sort(key=lambda b: b['filename'], reverse=True)
    return backups


def delete_backup(backup_dir, filename):
    """
    Delete one backup file. Only names produced by backup_db are accepted.

    Returns:
        True on success, False on failure.
    """
    if not _is_backup_name(filename):
        return False
    path = os.path.join(backup_dir, filename)
    if not os.path.exists(path):
        return False
    try:
        os.remove(path)
    except OSError as e:
        logger.error("Could not delete backup %s: %s", filename, e)
        return False
    return True
