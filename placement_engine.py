"""
placement_engine.py — Plant placement engine.

Owns the in-memory occupant map (patch_id → list of PlantedItem) and enacts
every mutation on it:
- place:  drop a catalog plant on a cell; an occupied cell is overwritten
- move:   clear the source cell and occupy the target in one step; an
          occupied target rejects the move
- grow:   advance or revert the growth stage by one
- remove: clear a cell; removing an empty cell is a no-op
- copy:   duplicate a plant into randomly chosen empty cells of its patch

Invariant: at most one PlantedItem per (patch_id, x, y).

Every mutation is applied to memory first, then snapshotted to the local
cache, then committed to the store. A failed commit never reverts memory: the
error is logged, handed to the error listeners and returned in the
OperationResult. Expected conditions (bad position, occupied target, empty
cell) come back as a 'rejected' result instead of an exception.

Move commits are two store calls (delete at source, insert at target). If the
insert fails after the delete went through, it is retried once as an upsert;
memory stays on the intended end state either way.
"""

import logging
import random
import warnings
from typing import Callable, Dict, List, Optional

from errors import PersistenceError, IntegrityWarning
from grid import is_coordinate, is_valid_position, find_occupant, empty_cells
from growth import initial_stage, next_stage, DIRECTIONS
from models import PlantedItem, Position, OperationResult

logger = logging.getLogger(__name__)


def _rejected(message):
    return OperationResult(status='rejected', message=message)


class PlacementEngine:

    def __init__(self, adapter, session, registry, rng=None, executor=None):
        """
        Args:
            adapter: PersistenceAdapter receiving the commits.
            session: GardenSession of the garden owner.
            registry: PatchRegistry used to resolve patch shapes; the engine
                attaches itself so patch deletes/edits cascade here.
            rng: random.Random used by copy (seed it for reproducible layouts).
            executor: optional concurrent.futures.Executor; when given, store
                commits run there and failures only reach the error listeners.
        """
        self.adapter = adapter
        self.session = session
        self.registry = registry
        self.rng = rng or random.Random()
        self.executor = executor
        self.planted: Dict[str, List[PlantedItem]] = {}
        self._error_listeners: List[Callable] = []
        registry.attach_engine(self)

    # ========================================
    # Loading and Queries
    # ========================================

    def load(self):
        """
        Replace the occupant map with the store's content.

        Rows are dropped with an IntegrityWarning when their patch is unknown,
        their cell is outside the patch grid, or their cell is already taken
        (the first row wins).
        """
        try:
            planted = self.adapter.load_planted_items()
        except Exception as e:
            logger.warning("Could not load planted items, using local cache: %s", e)
            planted = self.adapter.load_cached_planted_items()

        cleaned: Dict[str, List[PlantedItem]] = {}
        for items in planted.values():
            for item in items:
                patch = self.registry.get(item.patch_id)
                occupants = cleaned.setdefault(item.patch_id, [])
                if patch is None:
                    message = (f"Planted item at ({item.x}, {item.y}) references "
                               f"unknown patch {item.patch_id}; dropping it")
                elif not is_valid_position(patch, item.x, item.y):
                    message = (f"Planted item at ({item.x}, {item.y}) is outside "
                               f"patch {item.patch_id}; dropping it")
                elif find_occupant(occupants, item.x, item.y, item.patch_id):
                    message = (f"Duplicate planted item at ({item.x}, {item.y}) "
                               f"in patch {item.patch_id}; keeping the first one")
                else:
                    occupants.append(item)
                    continue
                logger.warning(message)
                warnings.warn(message, IntegrityWarning, stacklevel=2)
        cleaned = {patch_id: items for patch_id, items in cleaned.items() if items}

        self.planted = cleaned
        self._snapshot()
        logger.info("Loaded %d planted items in %d patches for user %s",
                    sum(len(items) for items in cleaned.values()), len(cleaned), self.session.user_id)
        return self.planted

    def occupants(self, patch_id) -> List[PlantedItem]:
        return list(self.planted.get(patch_id, []))

    def item_at(self, patch_id, x, y) -> Optional[PlantedItem]:
        if not is_coordinate(x) or not is_coordinate(y):
            return None
        return find_occupant(self.planted.get(patch_id, []), x, y, patch_id)

    def plant_in_use(self, plant_id) -> bool:
        return any(item.plant_id == plant_id for items in self.planted.values() for item in items)

    def attach_plants(self, lookup):
        """Fill in missing catalog entries on occupants; lookup maps plant_id → PlantItem."""
        for items in self.planted.values():
            for item in items:
                if item.plant is None:
                    item.plant = lookup(item.plant_id)

    # ========================================
    # Error Listeners
    # ========================================

    def add_error_listener(self, listener):
        if listener not in self._error_listeners:
            self._error_listeners.append(listener)

    def remove_error_listener(self, listener):
        if listener in self._error_listeners:
            self._error_listeners.remove(listener)

    def _notify(self, error):
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Error listener failed")

    # ========================================
    # Commit Helpers
    # ========================================

    def _snapshot(self):
        try:
            self.adapter.cache_planted_items(self.planted)
        except Exception as e:
            logger.warning("Could not cache planted items locally: %s", e)

    def _run_commit(self, operation, fn, args):
        try:
            fn(*args)
            return None
        except Exception as e:
            error = PersistenceError(operation, e)
            logger.error("Persistence failure during %s: %s", operation, e, exc_info=True)
            self._notify(error)
            return str(error)

    def _commit(self, operation, fn, *args):
        """Run a store call; returns the error message or None (always None when deferred)."""
        if self.executor is not None:
            self.executor.submit(self._run_commit, operation, fn, args)
            return None
        return self._run_commit(operation, fn, args)

    def close(self):
        if self.executor is not None:
            self.executor.shutdown(wait=True)
            self.executor = None

    # ========================================
    # Operations
    # ========================================

    def place(self, plant, x, y, patch_id) -> OperationResult:
        """
        Put a catalog plant on a cell.

        An empty cell gets a new occupant; an occupied cell has its plant and
        stage replaced. The stage is the initial stage for the patch type.
        """
        patch = self.registry.get(patch_id)
        if patch is None:
            return _rejected(f"Unknown patch: {patch_id}")
        if plant is None or not plant.id:
            return _rejected("Unknown plant")
        if not is_valid_position(patch, x, y):
            return _rejected(f"Position ({x}, {y}) is outside {patch.name}")

        stage = initial_stage(patch.type)
        item = PlantedItem(plant_id=plant.id, position=Position(x, y, patch_id), stage=stage, plant=plant)

        occupants = self.planted.setdefault(patch_id, [])
        existing = find_occupant(occupants, x, y, patch_id)
        if existing is not None:
            occupants[occupants.index(existing)] = item
            status, message = 'replaced', f"Replaced {existing.plant_id} with {plant.name}"
        else:
            occupants.append(item)
            status, message = 'placed', f"Placed {plant.name} in {patch.name}"

        self._snapshot()
        error = self._commit('place', self.adapter.upsert_planted_item, patch_id, x, y, plant.id, stage)
        return OperationResult(status=status, message=message, item=item, error=error)

    def move(self, item, source_x, source_y, source_patch_id,
             target_x, target_y, target_patch_id) -> OperationResult:
        """
        Move the occupant of the source cell to the target cell.

        Identical source and target is a no-op. An occupied or out-of-bounds
        target rejects the move and leaves both cells untouched.
        """
        if (source_x, source_y, source_patch_id) == (target_x, target_y, target_patch_id):
            return OperationResult(status='unchanged', message="Source and target are the same cell",
                                   item=self.item_at(source_patch_id, source_x, source_y))

        target_patch = self.registry.get(target_patch_id)
        if target_patch is None:
            return _rejected(f"Unknown patch: {target_patch_id}")
        if not is_valid_position(target_patch, target_x, target_y):
            return _rejected(f"Position ({target_x}, {target_y}) is outside {target_patch.name}")

        source_items = self.planted.get(source_patch_id, [])
        source = self.item_at(source_patch_id, source_x, source_y)
        if source is None:
            return _rejected(f"No plant at ({source_x}, {source_y})")
        if item is not None and item.plant_id != source.plant_id:
            return _rejected("Plant at the source cell has changed")

        target_items = self.planted.get(target_patch_id, [])
        if find_occupant(target_items, target_x, target_y, target_patch_id) is not None:
            return _rejected("Position occupied")

        moved = PlantedItem(
            plant_id=source.plant_id,
            position=Position(target_x, target_y, target_patch_id),
            stage=source.stage,
            plant=source.plant,
        )

        # Build both lists before assigning so no reader sees the item twice or not at all
        new_source = [i for i in source_items if i is not source]
        if source_patch_id == target_patch_id:
            new_source.append(moved)
            self.planted[source_patch_id] = new_source
        else:
            new_target = list(target_items) + [moved]
            self.planted[source_patch_id] = new_source
            self.planted[target_patch_id] = new_target

        self._snapshot()
        error = self._commit('move', self._persist_move, source, moved)
        return OperationResult(status='moved', message=f"Moved to ({target_x}, {target_y})",
                               item=moved, error=error)

    def _persist_move(self, source, moved):
        self.adapter.delete_planted_item(source.patch_id, source.x, source.y)
        row = {
            'patch_id': moved.patch_id,
            'x': moved.x,
            'y': moved.y,
            'plant_id': moved.plant_id,
            'stage': moved.stage,
        }
        try:
            self.adapter.bulk_insert_planted_items([row])
        except Exception as e:
            logger.warning("Insert at move target failed, retrying as upsert: %s", e)
            self.adapter.upsert_planted_item(moved.patch_id, moved.x, moved.y, moved.plant_id, moved.stage)

    def grow(self, item, direction) -> OperationResult:
        """Advance ('up') or revert ('down') the occupant's stage by one step."""
        if direction not in DIRECTIONS:
            return _rejected(f"Unknown direction: {direction}")

        current = self.item_at(item.patch_id, item.x, item.y)
        if current is None:
            return _rejected(f"No plant at ({item.x}, {item.y})")

        stage = next_stage(current.stage, direction)
        if stage == current.stage:
            return OperationResult(status='unchanged', message=f"Already at stage {stage}", item=current)

        current.stage = stage
        self._snapshot()
        error = self._commit('grow', self.adapter.upsert_planted_item,
                             current.patch_id, current.x, current.y, current.plant_id, stage)
        return OperationResult(status='grown', message=f"Stage is now {stage}", item=current, error=error)

    def remove(self, item) -> OperationResult:
        """Clear the occupant's cell. An already empty cell is not an error."""
        occupants = self.planted.get(item.patch_id, [])
        current = find_occupant(occupants, item.x, item.y, item.patch_id)
        if current is None:
            return OperationResult(status='unchanged', message="Nothing to remove")

        self.planted[item.patch_id] = [i for i in occupants if i is not current]
        self._snapshot()
        error = self._commit('remove', self.adapter.delete_planted_item, current.patch_id, current.x, current.y)
        return OperationResult(status='removed', message="Plant removed", item=current, error=error)

    def copy(self, item, count) -> OperationResult:
        """
        Duplicate the occupant into random empty cells of its own patch.

        Creates min(count, empty cells) copies with the same plant and stage;
        the result reports created vs requested instead of failing on a
        shortfall.
        """
        try:
            requested = int(count)
        except (TypeError, ValueError, OverflowError):
            return _rejected(f"Invalid copy count: {count!r}")

        source = self.item_at(item.patch_id, item.x, item.y)
        if source is None:
            return _rejected(f"No plant at ({item.x}, {item.y})")
        patch = self.registry.get(source.patch_id)
        if patch is None:
            return _rejected(f"Unknown patch: {source.patch_id}")

        occupants = self.planted.setdefault(patch.id, [])
        free = empty_cells(patch, occupants)
        self.rng.shuffle(free)
        targets = free[:max(min(requested, len(free)), 0)]

        copies = [
            PlantedItem(plant_id=source.plant_id, position=Position(x, y, patch.id),
                        stage=source.stage, plant=source.plant)
            for x, y in targets
        ]
        requested = max(requested, 0)
        message = f"Copied {len(copies)} of {requested} requested"
        if not copies:
            return OperationResult(status='copied', message=message, created=0, requested=requested)

        occupants.extend(copies)
        self._snapshot()
        rows = [
            {'patch_id': c.patch_id, 'x': c.x, 'y': c.y, 'plant_id': c.plant_id, 'stage': c.stage}
            for c in copies
        ]
        error = self._commit('copy', self.adapter.bulk_insert_planted_items, rows)
        return OperationResult(status='copied', message=message, created=len(copies),
                               requested=requested, error=error, items=copies)

    # ========================================
    # Patch Cascades (called by the registry)
    # ========================================

    def drop_patch(self, patch_id) -> int:
        """Forget every occupant of a deleted patch. The store cascades on its own."""
        removed = self.planted.pop(patch_id, [])
        self._snapshot()
        return len(removed)

    def clip_patch(self, patch):
        """
        Remove occupants left outside a patch's grid after a resize or mode change.

        Returns:
            (clipped_items, error_message_or_None)
        """
        occupants = self.planted.get(patch.id, [])
        inside = [i for i in occupants if is_valid_position(patch, i.x, i.y)]
        outside = [i for i in occupants if not is_valid_position(patch, i.x, i.y)]
        if not outside:
            return [], None

        self.planted[patch.id] = inside
        self._snapshot()
        logger.info("Clipped %d plants outside the new bounds of %s", len(outside), patch.name)
        error = self._commit('clip', self._persist_clip, outside)
        return outside, error

    def _persist_clip(self, items):
        for item in items:
            self.adapter.delete_planted_item(item.patch_id, item.x, item.y)
