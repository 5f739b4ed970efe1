"""
database.py — Local SQLite store: schema creation, seed data, and the SqliteStore adapter.

Mirrors the remote tables (patches, plants, planted_items, patch_tasks,
profiles) so the app can run fully offline, and keeps a settings key/value
table holding JSON snapshots of the last known garden state. When a remote
store is configured this file only serves as the snapshot cache.
Uses WAL mode for concurrent read performance.
"""

import sqlite3
import os
import json
import uuid
from typing import Dict, List, Optional

from models import Patch, PlantItem, PlantedItem, UserProfile, ANONYMOUS_USER_ID, ANONYMOUS_USER_NAME
from persistence import (
    PersistenceAdapter, patch_from_row, patch_fields_to_row, plant_from_row,
    planted_item_from_row, planted_item_from_dict, group_by_patch,
    PATCHES_CACHE_KEY, PLANTED_ITEMS_CACHE_KEY, PLANTS_CACHE_KEY,
)


def get_db_path() -> str:
    """Get the local database path from environment or default."""
    default_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'garden.db')
    return os.environ.get('GARDEN_DB_PATH', default_path)


def get_db(db_path=None):
    """Get a database connection with WAL mode and foreign keys enabled."""
    db_path = db_path or get_db_path()
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path=None):
    """Create all tables and indexes if they don't exist."""
    conn = get_db(db_path)
    cursor = conn.cursor()

    # Table: settings (also holds the JSON snapshots)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)

    # Table: profiles
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL
        )
    """)

    # Table: patches
    # width/height keep the historical layout: width = patch length, height = patch width
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS patches (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            width REAL NOT NULL DEFAULT 2,
            height REAL NOT NULL DEFAULT 2,
            type TEXT NOT NULL DEFAULT 'outdoor-soil'
                CHECK (type IN ('outdoor-soil','perennials','indoor','protected','template')),
            placement_type TEXT DEFAULT 'free' CHECK (placement_type IN ('free','slots')),
            slots_length INTEGER DEFAULT 4,
            slots_width INTEGER DEFAULT 6,
            heated BOOLEAN DEFAULT 0,
            artificial_light BOOLEAN DEFAULT 0,
            natural_light_percentage INTEGER DEFAULT 100,
            containing_patch_id TEXT REFERENCES patches(id) ON DELETE SET NULL,
            user_id TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Table: plants
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS plants (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            icon TEXT NOT NULL DEFAULT '',
            category TEXT NOT NULL,
            lifecycle TEXT DEFAULT 'annual',
            parent_id TEXT REFERENCES plants(id),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Table: planted_items - one occupant per cell
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS planted_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            patch_id TEXT NOT NULL REFERENCES patches(id) ON DELETE CASCADE,
            plant_id TEXT NOT NULL REFERENCES plants(id),
            position_x INTEGER NOT NULL,
            position_y INTEGER NOT NULL,
            stage TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(patch_id, position_x, position_y)
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_planted_items_plant
        ON planted_items(plant_id)
    """)

    # Table: patch_tasks
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS patch_tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            patch_id TEXT NOT NULL REFERENCES patches(id) ON DELETE CASCADE,
            task TEXT NOT NULL,
            completed BOOLEAN DEFAULT 0,
            user_id TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.commit()
    conn.close()


DEFAULT_PLANTS = [
    ('Tomato', '🍅', 'vegetable', 'annual'),
    ('Carrot', '🥕', 'vegetable', 'annual'),
    ('Lettuce', '🥬', 'vegetable', 'annual'),
    ('Pepper', '🫑', 'vegetable', 'annual'),
    ('Strawberry', '🍓', 'fruit', 'perennial'),
    ('Apple Tree', '🍎', 'tree', 'tree'),
    ('Basil', '🌿', 'herb', 'annual'),
    ('Sunflower', '🌻', 'flower', 'annual'),
    ('Blueberry', '🫐', 'shrub', 'bush'),
]


def seed_defaults(db_path=None):
    """Populate default data if tables are empty. Idempotent - skips if data exists."""
    conn = get_db(db_path)
    cursor = conn.cursor()

    # --- Anonymous profile ---
    cursor.execute(
        "INSERT OR IGNORE INTO profiles (id, name) VALUES (?, ?)",
        (ANONYMOUS_USER_ID, ANONYMOUS_USER_NAME)
    )

    # --- Plant catalog ---
    existing = cursor.execute("SELECT COUNT(*) FROM plants").fetchone()[0]
    if existing == 0:
        cursor.executemany(
            "INSERT INTO plants (id, name, icon, category, lifecycle) VALUES (?, ?, ?, ?, ?)",
            [(str(uuid.uuid4()), name, icon, category, lifecycle)
             for name, icon, category, lifecycle in DEFAULT_PLANTS]
        )

    conn.commit()
    conn.close()


def get_setting(key, default=None, db_path=None):
    """Get a setting value by key."""
    conn = get_db(db_path)
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    if row:
        return row['value']
    return default


def update_setting(key, value, db_path=None):
    conn = get_db(db_path)
    conn.execute(
        "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
        (key, value)
    )
    conn.commit()
    conn.close()


class SqliteStore(PersistenceAdapter):
    """PersistenceAdapter backed by the local SQLite file."""

    def __init__(self, db_path=None, seed=True):
        self.db_path = db_path or get_db_path()
        init_db(self.db_path)
        if seed:
            seed_defaults(self.db_path)

    def _conn(self):
        return get_db(self.db_path)

    # ========================================
    # Patches
    # ========================================

    def load_patches(self):
        conn = self._conn()
        try:
            rows = conn.execute("SELECT * FROM patches ORDER BY created_at, rowid").fetchall()
            return [patch_from_row(row) for row in rows]
        finally:
            conn.close()

    def create_patch(self, fields, user_id):
        row = patch_fields_to_row(fields)
        row['id'] = str(uuid.uuid4())
        row['user_id'] = user_id
        columns = ', '.join(row)
        placeholders = ', '.join('?' for _ in row)

        conn = self._conn()
        try:
            conn.execute(f"INSERT INTO patches ({columns}) VALUES ({placeholders})", tuple(row.values()))
            conn.commit()
            created = conn.execute("SELECT * FROM patches WHERE id = ?", (row['id'],)).fetchone()
            return patch_from_row(created)
        finally:
            conn.close()

    def update_patch(self, patch_id, fields):
        row = patch_fields_to_row(fields)
        if not row:
            return
        assignments = ', '.join(f"{column} = ?" for column in row)

        conn = self._conn()
        try:
            conn.execute(
                f"UPDATE patches SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*row.values(), patch_id)
            )
            conn.commit()
        finally:
            conn.close()

    def delete_patch(self, patch_id):
        # planted_items and patch_tasks cascade through their foreign keys
        conn = self._conn()
        try:
            conn.execute("DELETE FROM patches WHERE id = ?", (patch_id,))
            conn.commit()
        finally:
            conn.close()

    # ========================================
    # Planted Items
    # ========================================

    def load_planted_items(self):
        conn = self._conn()
        try:
            rows = conn.execute("""
                SELECT pi.patch_id, pi.plant_id, pi.position_x, pi.position_y, pi.stage,
                       pa.type AS patch_type,
                       p.id, p.name, p.icon, p.category, p.lifecycle, p.parent_id
                FROM planted_items pi
                JOIN patches pa ON pi.patch_id = pa.id
                LEFT JOIN plants p ON pi.plant_id = p.id
                ORDER BY pi.patch_id, pi.position_y, pi.position_x
            """).fetchall()
        finally:
            conn.close()

        items = []
        for row in rows:
            plant = plant_from_row(row) if row['id'] is not None else None
            items.append(planted_item_from_row(row, plant=plant, patch_type=row['patch_type']))
        return group_by_patch(items)

    def upsert_planted_item(self, patch_id, x, y, plant_id, stage):
        conn = self._conn()
        try:
            conn.execute(
                """INSERT INTO planted_items (patch_id, position_x, position_y, plant_id, stage)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(patch_id, position_x, position_y)
                   DO UPDATE SET plant_id = excluded.plant_id, stage = excluded.stage""",
                (patch_id, x, y, plant_id, stage)
            )
            conn.commit()
        finally:
            conn.close()

    def delete_planted_item(self, patch_id, x, y):
        conn = self._conn()
        try:
            conn.execute(
                "DELETE FROM planted_items WHERE patch_id = ? AND position_x = ? AND position_y = ?",
                (patch_id, x, y)
            )
            conn.commit()
        finally:
            conn.close()

    def bulk_insert_planted_items(self, rows):
        if not rows:
            return
        conn = self._conn()
        try:
            conn.executemany(
                """INSERT INTO planted_items (patch_id, position_x, position_y, plant_id, stage)
                   VALUES (?, ?, ?, ?, ?)""",
                [(r['patch_id'], r['x'], r['y'], r['plant_id'], r['stage']) for r in rows]
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ========================================
    # Plants
    # ========================================

    def load_plants(self):
        conn = self._conn()
        try:
            rows = conn.execute("SELECT * FROM plants ORDER BY name").fetchall()
            return [plant_from_row(row) for row in rows]
        finally:
            conn.close()

    def create_plant(self, plant):
        plant_id = plant.id or str(uuid.uuid4())
        conn = self._conn()
        try:
            conn.execute(
                "INSERT INTO plants (id, name, icon, category, lifecycle, parent_id) VALUES (?, ?, ?, ?, ?, ?)",
                (plant_id, plant.name, plant.icon, plant.category, plant.lifecycle, plant.parent_id)
            )
            conn.commit()
        finally:
            conn.close()
        return PlantItem(
            id=plant_id, name=plant.name, icon=plant.icon, category=plant.category,
            lifecycle=plant.lifecycle, parent_id=plant.parent_id,
        )

    def delete_plant(self, plant_id):
        conn = self._conn()
        try:
            conn.execute("DELETE FROM plants WHERE id = ?", (plant_id,))
            conn.commit()
        finally:
            conn.close()

    # ========================================
    # Patch Tasks
    # ========================================

    def load_patch_tasks(self):
        conn = self._conn()
        try:
            rows = conn.execute("SELECT patch_id, task FROM patch_tasks ORDER BY id").fetchall()
        finally:
            conn.close()
        tasks: Dict[str, List[str]] = {}
        for row in rows:
            tasks.setdefault(row['patch_id'], []).append(row['task'])
        return tasks

    def add_patch_task(self, patch_id, task, user_id):
        conn = self._conn()
        try:
            conn.execute(
                "INSERT INTO patch_tasks (patch_id, task, user_id) VALUES (?, ?, ?)",
                (patch_id, task, user_id)
            )
            conn.commit()
        finally:
            conn.close()

    def delete_patch_task(self, patch_id, task):
        # Only the first matching row: the same text can be listed twice
        conn = self._conn()
        try:
            conn.execute(
                """DELETE FROM patch_tasks WHERE id = (
                       SELECT id FROM patch_tasks WHERE patch_id = ? AND task = ? ORDER BY id LIMIT 1
                   )""",
                (patch_id, task)
            )
            conn.commit()
        finally:
            conn.close()

    # ========================================
    # Profiles
    # ========================================

    def load_profile(self, user_id) -> Optional[UserProfile]:
        conn = self._conn()
        try:
            row = conn.execute("SELECT id, name FROM profiles WHERE id = ?", (user_id,)).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return UserProfile(id=row['id'], name=row['name'])

    # ========================================
    # Snapshots
    # ========================================

    def _write_snapshot(self, key, payload):
        update_setting(key, json.dumps(payload, ensure_ascii=False), db_path=self.db_path)

    def _read_snapshot(self, key):
        raw = get_setting(key, db_path=self.db_path)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def cache_patches(self, patches):
        self._write_snapshot(PATCHES_CACHE_KEY, [patch.to_dict() for patch in patches])

    def cache_planted_items(self, planted):
        self._write_snapshot(PLANTED_ITEMS_CACHE_KEY, {
            patch_id: [item.to_dict() for item in items]
            for patch_id, items in planted.items()
        })

    def cache_plants(self, plants):
        self._write_snapshot(PLANTS_CACHE_KEY, [plant.to_dict() for plant in plants])

    def load_cached_patches(self):
        data = self._read_snapshot(PATCHES_CACHE_KEY) or []
        fields = set(Patch.__dataclass_fields__)
        return [Patch(**{k: v for k, v in entry.items() if k in fields}) for entry in data]

    def load_cached_planted_items(self) -> Dict[str, List[PlantedItem]]:
        data = self._read_snapshot(PLANTED_ITEMS_CACHE_KEY) or {}
        return {
            patch_id: [planted_item_from_dict(entry) for entry in entries]
            for patch_id, entries in data.items()
        }

    def load_cached_plants(self):
        data = self._read_snapshot(PLANTS_CACHE_KEY) or []
        return [plant_from_row(entry) for entry in data]
