"""
persistence.py — Persistence adapter interface and the two-tier fallback.

A PersistenceAdapter is the durable store behind the garden core. Two
implementations ship with the app:
- SupabaseStore (supabase_store.py): the remote primary
- SqliteStore (database.py): local file, used as the offline cache

FallbackAdapter composes them: reads go to the primary and fall back to the
secondary's last cached snapshot when the primary fails; writes go to the
primary only; cache_* calls go to the secondary.

Row helpers translate between the storage schema and the dataclasses. The
patches table keeps the historical column layout: its `width` column holds
the patch length and its `height` column holds the patch width.
"""

import logging
from typing import Dict, List, Optional

from models import (
    Patch, PlantItem, PlantedItem, Position, UserProfile,
    DEFAULT_SLOTS_LENGTH, DEFAULT_SLOTS_WIDTH,
)
from growth import normalize_stage

logger = logging.getLogger(__name__)

PATCHES_CACHE_KEY = 'garden-patches'
PLANTED_ITEMS_CACHE_KEY = 'garden-planted-items'
PLANTS_CACHE_KEY = 'garden-plants'


# ========================================
# Row Conversion
# ========================================

def patch_from_row(row) -> Patch:
    """Build a Patch from a patches-table row (dict or sqlite3.Row)."""
    row = dict(row)
    return Patch(
        id=str(row['id']),
        name=row.get('name') or '',
        type=row.get('type') or 'outdoor-soil',
        placement_type=row.get('placement_type') or 'free',
        length=float(row.get('width') or 0),
        width=float(row.get('height') or 0),
        slots_length=int(row.get('slots_length') or DEFAULT_SLOTS_LENGTH),
        slots_width=int(row.get('slots_width') or DEFAULT_SLOTS_WIDTH),
        heated=bool(row.get('heated')),
        artificial_light=bool(row.get('artificial_light')),
        natural_light_percentage=_light_percentage(row.get('natural_light_percentage')),
        containing_patch_id=row.get('containing_patch_id') or None,
    )


def _light_percentage(value):
    if value is None or value == '':
        return 100
    return int(value)


# Patch attribute → patches-table column
PATCH_COLUMNS = {
    'name': 'name',
    'type': 'type',
    'placement_type': 'placement_type',
    'length': 'width',
    'width': 'height',
    'slots_length': 'slots_length',
    'slots_width': 'slots_width',
    'heated': 'heated',
    'artificial_light': 'artificial_light',
    'natural_light_percentage': 'natural_light_percentage',
    'containing_patch_id': 'containing_patch_id',
}


def patch_fields_to_row(fields: dict) -> dict:
    """Translate Patch attribute names to storage columns, dropping unknown keys."""
    return {PATCH_COLUMNS[key]: value for key, value in fields.items() if key in PATCH_COLUMNS}


def plant_from_row(row) -> PlantItem:
    row = dict(row)
    return PlantItem(
        id=str(row['id']),
        name=row.get('name') or '',
        icon=row.get('icon') or '',
        category=row.get('category') or 'vegetable',
        lifecycle=row.get('lifecycle') or None,
        parent_id=row.get('parent_id') or None,
    )


def planted_item_from_row(row, plant=None, patch_type=None) -> PlantedItem:
    """Build a PlantedItem from a planted_items row (position_x/position_y columns)."""
    row = dict(row)
    return PlantedItem(
        plant_id=str(row['plant_id']),
        position=Position(int(row['position_x']), int(row['position_y']), str(row['patch_id'])),
        stage=normalize_stage(row.get('stage'), patch_type),
        plant=plant,
    )


def planted_item_from_dict(data) -> PlantedItem:
    """Inverse of PlantedItem.to_dict (used for cached snapshots)."""
    position = data['position']
    plant = plant_from_row(data['plant']) if data.get('plant') else None
    return PlantedItem(
        plant_id=str(data['plant_id']),
        position=Position(int(position['x']), int(position['y']), str(position['patch_id'])),
        stage=normalize_stage(data.get('stage')),
        plant=plant,
    )


def group_by_patch(items) -> Dict[str, List[PlantedItem]]:
    grouped: Dict[str, List[PlantedItem]] = {}
    for item in items:
        grouped.setdefault(item.patch_id, []).append(item)
    return grouped


# ========================================
# Adapter Interface
# ========================================

class PersistenceAdapter:
    """
    Durable store for patches, planted items, plants, tasks and profiles.

    Write methods raise on failure; callers convert to PersistenceError.
    The cache hooks are no-ops unless the adapter keeps local snapshots.
    """

    # --- Patches ---

    def load_patches(self) -> List[Patch]:
        raise NotImplementedError

    def create_patch(self, fields: dict, user_id: str) -> Patch:
        raise NotImplementedError

    def update_patch(self, patch_id: str, fields: dict) -> None:
        raise NotImplementedError

    def delete_patch(self, patch_id: str) -> None:
        """Delete a patch; the store cascades to its planted items and tasks."""
        raise NotImplementedError

    # --- Planted items ---

    def load_planted_items(self) -> Dict[str, List[PlantedItem]]:
        raise NotImplementedError

    def upsert_planted_item(self, patch_id, x, y, plant_id, stage) -> None:
        raise NotImplementedError

    def delete_planted_item(self, patch_id, x, y) -> None:
        raise NotImplementedError

    def bulk_insert_planted_items(self, rows: List[dict]) -> None:
        """Insert many rows of {patch_id, x, y, plant_id, stage} in one call."""
        raise NotImplementedError

    # --- Plant catalog ---

    def load_plants(self) -> List[PlantItem]:
        raise NotImplementedError

    def create_plant(self, plant: PlantItem) -> PlantItem:
        raise NotImplementedError

    def delete_plant(self, plant_id: str) -> None:
        raise NotImplementedError

    # --- Patch tasks ---

    def load_patch_tasks(self) -> Dict[str, List[str]]:
        raise NotImplementedError

    def add_patch_task(self, patch_id: str, task: str, user_id: str) -> None:
        raise NotImplementedError

    def delete_patch_task(self, patch_id: str, task: str) -> None:
        raise NotImplementedError

    # --- Profiles ---

    def load_profile(self, user_id: str) -> Optional[UserProfile]:
        raise NotImplementedError

    # --- Local snapshots ---

    def cache_patches(self, patches: List[Patch]) -> None:
        pass

    def cache_planted_items(self, planted: Dict[str, List[PlantedItem]]) -> None:
        pass

    def cache_plants(self, plants: List[PlantItem]) -> None:
        pass

    def load_cached_patches(self) -> List[Patch]:
        return []

    def load_cached_planted_items(self) -> Dict[str, List[PlantedItem]]:
        return {}

    def load_cached_plants(self) -> List[PlantItem]:
        return []


class FallbackAdapter(PersistenceAdapter):
    """
    Primary store with a local snapshot tier.

    Successful loads refresh the snapshot; failed loads are served from it.
    """

    def __init__(self, primary: PersistenceAdapter, secondary: PersistenceAdapter):
        self.primary = primary
        self.secondary = secondary

    def _load(self, label, load, fallback, cache):
        try:
            data = load()
        except Exception as e:
            logger.warning("Could not load %s from primary store, using local cache: %s", label, e)
            return fallback()
        try:
            cache(data)
        except Exception as e:
            logger.warning("Could not refresh local %s cache: %s", label, e)
        return data

    def load_patches(self):
        return self._load('patches', self.primary.load_patches,
                          self.secondary.load_cached_patches, self.secondary.cache_patches)

    def load_planted_items(self):
        return self._load('planted items', self.primary.load_planted_items,
                          self.secondary.load_cached_planted_items, self.secondary.cache_planted_items)

    def load_plants(self):
        return self._load('plants', self.primary.load_plants,
                          self.secondary.load_cached_plants, self.secondary.cache_plants)

    def load_patch_tasks(self):
        try:
            return self.primary.load_patch_tasks()
        except Exception as e:
            logger.warning("Could not load patch tasks from primary store: %s", e)
            return {}

    def load_profile(self, user_id):
        return self.primary.load_profile(user_id)

    # Writes go to the primary only

    def create_patch(self, fields, user_id):
        return self.primary.create_patch(fields, user_id)

    def update_patch(self, patch_id, fields):
        self.primary.update_patch(patch_id, fields)

    def delete_patch(self, patch_id):
        self.primary.delete_patch(patch_id)

    def upsert_planted_item(self, patch_id, x, y, plant_id, stage):
        self.primary.upsert_planted_item(patch_id, x, y, plant_id, stage)

    def delete_planted_item(self, patch_id, x, y):
        self.primary.delete_planted_item(patch_id, x, y)

    def bulk_insert_planted_items(self, rows):
        self.primary.bulk_insert_planted_items(rows)

    def create_plant(self, plant):
        return self.primary.create_plant(plant)

    def delete_plant(self, plant_id):
        self.primary.delete_plant(plant_id)

    def add_patch_task(self, patch_id, task, user_id):
        self.primary.add_patch_task(patch_id, task, user_id)

    def delete_patch_task(self, patch_id, task):
        self.primary.delete_patch_task(patch_id, task)

    # Snapshots go to the secondary

    def cache_patches(self, patches):
        self.secondary.cache_patches(patches)

    def cache_planted_items(self, planted):
        self.secondary.cache_planted_items(planted)

    def cache_plants(self, plants):
        self.secondary.cache_plants(plants)

    def load_cached_patches(self):
        return self.secondary.load_cached_patches()

    def load_cached_planted_items(self):
        return self.secondary.load_cached_planted_items()

    def load_cached_plants(self):
        return self.secondary.load_cached_plants()
