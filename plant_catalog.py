"""
plant_catalog.py — Catalog of plants that can be dropped into patches.

Manages:
- Plants with icon, category and lifecycle tag
- Varieties: a plant whose parent_id points to another catalog plant
  (one level only; a variety cannot have varieties of its own)
- Deletion guards: a plant in use in the garden, or a parent that still has
  varieties, cannot be deleted
- Accent/case-insensitive name search
"""

import logging
import re
import unicodedata
import warnings
from typing import Callable, List, Optional, Tuple

from errors import PersistenceError, IntegrityWarning
from models import PlantItem, PLANT_CATEGORIES, PLANT_LIFECYCLES

logger = logging.getLogger(__name__)


# ========================================
# Normalization Helper
# ========================================

def normalize_name(name: str) -> str:
    """
    Normalize a plant name for duplicate detection and searching.

    Rules:
    - lowercase
    - trim whitespace
    - remove diacritics (accents)
    - replace hyphens and punctuation with spaces
    - collapse multiple whitespace to single space

    Examples:
        "Cherry-Tomato" -> "cherry tomato"
        "Épinard" -> "epinard"
        "  Sweet   Basil  " -> "sweet basil"
    """
    if not name:
        return ""

    result = name.lower().strip()

    # NFD decomposition separates base characters from combining diacritical marks
    result = unicodedata.normalize('NFD', result)
    result = ''.join(c for c in result if unicodedata.category(c) != 'Mn')

    result = re.sub(r'[-_.,;:\'\"()]+', ' ', result)
    result = re.sub(r'\s+', ' ', result)
    return result.strip()


class PlantCatalog:

    def __init__(self, adapter, is_in_use: Optional[Callable[[str], bool]] = None):
        self.adapter = adapter
        self.is_in_use = is_in_use
        self._plants: List[PlantItem] = []

    def load(self):
        try:
            plants = self.adapter.load_plants()
        except Exception as e:
            logger.warning("Could not load plants, using local cache: %s", e)
            plants = self.adapter.load_cached_plants()

        unique, seen = [], set()
        for plant in plants:
            if plant.id in seen:
                message = f"Duplicate plant id {plant.id} ({plant.name}); dropping the duplicate"
                logger.warning(message)
                warnings.warn(message, IntegrityWarning, stacklevel=2)
                continue
            seen.add(plant.id)
            unique.append(plant)
        self._plants = sorted(unique, key=lambda p: normalize_name(p.name))
        self._snapshot()
        return self._plants

    def _snapshot(self):
        try:
            self.adapter.cache_plants(self._plants)
        except Exception as e:
            logger.warning("Could not cache plants locally: %s", e)

    # ========================================
    # Queries
    # ========================================

    def get(self, plant_id) -> Optional[PlantItem]:
        for plant in self._plants:
            if plant.id == plant_id:
                return plant
        return None

    def all(self) -> List[PlantItem]:
        return list(self._plants)

    def parents(self) -> List[PlantItem]:
        return [p for p in self._plants if not p.is_variety]

    def varieties(self, parent_id) -> List[PlantItem]:
        return [p for p in self._plants if p.parent_id == parent_id]

    def search(self, query: str, category: Optional[str] = None) -> List[PlantItem]:
        """
        Plants whose normalized name contains the normalized query; prefix matches first.

        A category narrows the result to plants of that category.
        """
        plants = [p for p in self._plants if not category or p.category == category]
        needle = normalize_name(query)
        if not needle:
            return plants
        prefix, contains = [], []
        for plant in plants:
            name = normalize_name(plant.name)
            if name.startswith(needle):
                prefix.append(plant)
            elif needle in name:
                contains.append(plant)
        return prefix + contains

    def find_duplicate(self, name, parent_id=None) -> Optional[PlantItem]:
        """A sibling (same parent_id) whose normalized name matches."""
        norm = normalize_name(name)
        for plant in self._plants:
            if plant.parent_id == parent_id and normalize_name(plant.name) == norm:
                return plant
        return None

    # ========================================
    # Mutations
    # ========================================

    def _insert(self, plant) -> Tuple[Optional[PlantItem], Optional[str]]:
        try:
            created = self.adapter.create_plant(plant)
        except Exception as e:
            logger.error("Could not create plant %s: %s", plant.name, e, exc_info=True)
            return None, str(PersistenceError('create plant', e))
        self._plants.append(created)
        self._plants.sort(key=lambda p: normalize_name(p.name))
        self._snapshot()
        return created, None

    def add(self, name, icon, category, lifecycle=None):
        """
        Add a plant to the catalog.

        Returns:
            (plant, None) on success, or (None, error_message).
        """
        name = (name or '').strip()
        if not name:
            return None, "Plant name is required."
        if category not in PLANT_CATEGORIES:
            return None, f"Unknown category: {category}"
        lifecycle = lifecycle or 'annual'
        if lifecycle not in PLANT_LIFECYCLES:
            return None, f"Unknown lifecycle: {lifecycle}"

        existing = self.find_duplicate(name)
        if existing:
            return None, f"This plant already exists: {existing.name}"

        return self._insert(PlantItem(name=name, icon=icon or '', category=category, lifecycle=lifecycle))

    def add_variety(self, parent_id, name):
        """
        Add a variety of an existing plant. Icon, category and lifecycle are
        inherited from the parent.

        Returns:
            (variety, None) on success, or (None, error_message).
        """
        parent = self.get(parent_id)
        if parent is None:
            return None, "Plant not found."
        if parent.is_variety:
            return None, "A variety cannot have varieties of its own."

        name = (name or '').strip()
        if not name:
            return None, "Variety name is required."
        existing = self.find_duplicate(name, parent_id=parent.id)
        if existing:
            return None, f"This variety already exists: {existing.name}"

        return self._insert(PlantItem(
            name=name, icon=parent.icon, category=parent.category,
            lifecycle=parent.lifecycle, parent_id=parent.id,
        ))

    def delete(self, plant_id) -> Tuple[bool, Optional[str]]:
        """
        Delete a plant that is neither planted anywhere nor the parent of varieties.

        Returns:
            (True, None) on success, or (False, error_message).
        """
        plant = self.get(plant_id)
        if plant is None:
            return False, "Plant not found."
        if self.is_in_use is not None and self.is_in_use(plant_id):
            return False, "Cannot delete a plant that is in use in your garden"
        if self.varieties(plant_id):
            return False, "Cannot delete a plant that has varieties"

        try:
            self.adapter.delete_plant(plant_id)
        except Exception as e:
            logger.error("Could not delete plant %s: %s", plant_id, e, exc_info=True)
            return False, str(PersistenceError('delete plant', e))

        self._plants = [p for p in self._plants if p.id != plant_id]
        self._snapshot()
        return True, None
