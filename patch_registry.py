"""
patch_registry.py — In-memory registry of the session's patches.

Provides:
- lookup by id, containment views (children of a patch, top-level patches)
- add / edit (field-level merge) / delete of patches
- free-text tasks attached to each patch
- template trays and patch creation from a template
- typed change notifications (PatchAdded, PatchEdited, PatchDeleted)

Patch ids are unique: duplicates arriving from the store are dropped with an
IntegrityWarning. The containment relation (containing_patch_id) is a tree;
an edit that would close a cycle is rejected.

Deleting a patch drops its occupants through the attached PlacementEngine and
its tasks here. Shrinking a patch (or switching its placement mode) clips the
occupants left outside the new grid.
"""

import dataclasses
import logging
import warnings
from typing import Dict, List, Optional

from errors import PersistenceError, IntegrityWarning
from events import EventChannel, PatchAdded, PatchEdited, PatchDeleted
from grid import grid_shape
from models import Patch, OperationResult, PATCH_TYPES, PLACEMENT_TYPES

logger = logging.getLogger(__name__)

FLOAT_FIELDS = ('length', 'width')
INT_FIELDS = ('slots_length', 'slots_width', 'natural_light_percentage')
BOOL_FIELDS = ('heated', 'artificial_light')
EDITABLE_FIELDS = ('name', 'type', 'placement_type', 'containing_patch_id') + FLOAT_FIELDS + INT_FIELDS + BOOL_FIELDS


def _to_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


class PatchRegistry:

    def __init__(self, adapter, session, channel=None):
        self.adapter = adapter
        self.session = session
        self.channel = channel or EventChannel()
        self._patches: List[Patch] = []
        self._tasks: Dict[str, List[str]] = {}
        self._engine = None

    def attach_engine(self, engine):
        self._engine = engine

    def subscribe(self, event_type, handler):
        self.channel.subscribe(event_type, handler)

    def unsubscribe(self, event_type, handler):
        self.channel.unsubscribe(event_type, handler)

    # ========================================
    # Loading
    # ========================================

    def load(self):
        """Load patches and tasks from the store (local cache when it is unreachable)."""
        try:
            patches = self.adapter.load_patches()
        except Exception as e:
            logger.warning("Could not load patches, using local cache: %s", e)
            patches = self.adapter.load_cached_patches()

        unique = []
        seen = set()
        for patch in patches:
            if patch.id in seen:
                message = f"Duplicate patch id {patch.id} ({patch.name}); dropping the duplicate"
                logger.warning(message)
                warnings.warn(message, IntegrityWarning, stacklevel=2)
                continue
            seen.add(patch.id)
            unique.append(patch)
        self._patches = unique

        # Dangling or cyclic containment is cleared rather than trusted
        for patch in self._patches:
            parent_id = patch.containing_patch_id
            if parent_id is None:
                continue
            if parent_id not in seen or self._would_cycle(patch.id, parent_id):
                message = f"Patch {patch.id} has an invalid containing patch {parent_id}; clearing it"
                logger.warning(message)
                warnings.warn(message, IntegrityWarning, stacklevel=2)
                patch.containing_patch_id = None

        try:
            tasks = self.adapter.load_patch_tasks()
        except Exception as e:
            logger.warning("Could not load patch tasks: %s", e)
            tasks = {}
        self._tasks = {pid: list(items) for pid, items in tasks.items() if pid in seen}

        self._snapshot()
        return self._patches

    def _snapshot(self):
        try:
            self.adapter.cache_patches(self._patches)
        except Exception as e:
            logger.warning("Could not cache patches locally: %s", e)

    # ========================================
    # Queries
    # ========================================

    def get(self, patch_id) -> Optional[Patch]:
        for patch in self._patches:
            if patch.id == patch_id:
                return patch
        return None

    def all(self) -> List[Patch]:
        return list(self._patches)

    def children(self, patch_id) -> List[Patch]:
        return [p for p in self._patches if p.containing_patch_id == patch_id]

    def top_level(self) -> List[Patch]:
        return [p for p in self._patches if p.containing_patch_id is None]

    def templates(self) -> List[Patch]:
        return [p for p in self._patches if p.type == 'template']

    def tasks(self, patch_id) -> List[str]:
        return list(self._tasks.get(patch_id, []))

    def _would_cycle(self, patch_id, parent_id):
        """True if making parent_id the container of patch_id closes a loop."""
        visited = set()
        current = parent_id
        while current is not None and current not in visited:
            if current == patch_id:
                return True
            visited.add(current)
            parent = self.get(current)
            current = parent.containing_patch_id if parent else None
        return current is not None

    # ========================================
    # Field Validation
    # ========================================

    def _clean_fields(self, fields, patch_id=None):
        """
        Coerce and validate patch fields.

        Returns:
            (clean_fields, None) on success, or (None, error_message).
        """
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            return None, f"Unknown patch fields: {', '.join(sorted(unknown))}"

        clean = {}
        try:
            for key, value in fields.items():
                if key in FLOAT_FIELDS:
                    clean[key] = float(value)
                elif key in INT_FIELDS:
                    clean[key] = int(value)
                elif key in BOOL_FIELDS:
                    clean[key] = _to_bool(value)
                elif key == 'name':
                    clean[key] = (value or '').strip()
                elif key == 'containing_patch_id':
                    clean[key] = value or None
                else:
                    clean[key] = value
        except (TypeError, ValueError):
            return None, f"Invalid value for {key}: {value!r}"

        if 'name' in clean and not clean['name']:
            return None, "Patch name is required."
        if 'type' in clean and clean['type'] not in PATCH_TYPES:
            return None, f"Unknown patch type: {clean['type']}"
        if 'placement_type' in clean and clean['placement_type'] not in PLACEMENT_TYPES:
            return None, f"Unknown placement type: {clean['placement_type']}"
        for key in FLOAT_FIELDS:
            if key in clean and clean[key] <= 0:
                return None, f"{key} must be positive."
        for key in ('slots_length', 'slots_width'):
            if key in clean and clean[key] < 1:
                return None, f"{key} must be at least 1."
        if 'natural_light_percentage' in clean and not 0 <= clean['natural_light_percentage'] <= 100:
            return None, "natural_light_percentage must be between 0 and 100."

        parent_id = clean.get('containing_patch_id')
        if parent_id is not None:
            if self.get(parent_id) is None:
                return None, f"Unknown containing patch: {parent_id}"
            if patch_id is not None and self._would_cycle(patch_id, parent_id):
                return None, "A patch cannot be contained in itself or one of its children."

        return clean, None

    # ========================================
    # Mutations
    # ========================================

    def add(self, fields):
        """
        Create a patch. The store assigns its id, so nothing changes in memory
        when the store rejects it.

        Returns:
            (patch, None) on success, or (None, error_message) on failure.
        """
        clean, error = self._clean_fields(fields)
        if error:
            return None, error
        if not clean.get('name'):
            return None, "Patch name is required."

        draft = Patch(**clean)
        record = {key: getattr(draft, key) for key in EDITABLE_FIELDS}
        try:
            patch = self.adapter.create_patch(record, self.session.user_id)
        except Exception as e:
            error = PersistenceError('create patch', e)
            logger.error("Could not create patch %s: %s", draft.name, e, exc_info=True)
            return None, str(error)

        if self.get(patch.id) is not None:
            logger.warning("Store returned an existing patch id %s", patch.id)
            return None, f"Duplicate patch id: {patch.id}"

        self._patches.append(patch)
        self._snapshot()
        self.channel.publish(PatchAdded(patch_id=patch.id, patch=patch))
        return patch, None

    def edit(self, patch_id, fields) -> OperationResult:
        """Merge the given fields into a patch, clipping occupants that no longer fit."""
        patch = self.get(patch_id)
        if patch is None:
            return OperationResult(status='rejected', message=f"Unknown patch: {patch_id}")

        clean, error = self._clean_fields(fields, patch_id=patch_id)
        if error:
            return OperationResult(status='rejected', message=error)

        changed = {key: value for key, value in clean.items() if getattr(patch, key) != value}
        if not changed:
            return OperationResult(status='unchanged', message="Nothing to update", patch=patch)

        old_shape = grid_shape(patch)
        updated = dataclasses.replace(patch, **changed)
        self._patches[self._patches.index(patch)] = updated

        clipped, clip_error = [], None
        if grid_shape(updated) != old_shape and self._engine is not None:
            clipped, clip_error = self._engine.clip_patch(updated)

        self._snapshot()
        error = None
        try:
            self.adapter.update_patch(patch_id, changed)
        except Exception as e:
            error = str(PersistenceError('update patch', e))
            logger.error("Could not update patch %s: %s", patch_id, e, exc_info=True)

        self.channel.publish(PatchEdited(patch_id=patch_id, patch=updated,
                                         changed=tuple(sorted(changed)), clipped=len(clipped)))
        message = "Patch updated"
        if clipped:
            message = f"Patch updated, {len(clipped)} plants outside the new bounds were removed"
        return OperationResult(status='edited', message=message, patch=updated,
                               clipped=len(clipped), items=clipped, error=error or clip_error)

    def delete(self, patch_id) -> OperationResult:
        """Delete a patch together with its planted items and tasks."""
        patch = self.get(patch_id)
        if patch is None:
            return OperationResult(status='rejected', message=f"Unknown patch: {patch_id}")

        self._patches = [p for p in self._patches if p.id != patch_id]
        for child in self._patches:
            if child.containing_patch_id == patch_id:
                child.containing_patch_id = None
        self._tasks.pop(patch_id, None)
        removed = self._engine.drop_patch(patch_id) if self._engine is not None else 0

        self._snapshot()
        error = None
        try:
            self.adapter.delete_patch(patch_id)
        except Exception as e:
            error = str(PersistenceError('delete patch', e))
            logger.error("Could not delete patch %s: %s", patch_id, e, exc_info=True)

        self.channel.publish(PatchDeleted(patch_id=patch_id, removed_items=removed))
        return OperationResult(status='deleted', message=f"Patch {patch.name} removed",
                               patch=patch, clipped=removed, error=error)

    def create_from_template(self, template_id, name=None, containing_patch_id=None):
        """
        Create a working patch from a template tray.

        Returns:
            (patch, None) on success, or (None, error_message).
        """
        template = self.get(template_id)
        if template is None or template.type != 'template':
            return None, f"Unknown template: {template_id}"

        fields = {
            'name': name or template.name,
            'type': 'indoor' if template.is_slots else 'outdoor-soil',
            'placement_type': template.placement_type,
            'length': template.length,
            'width': template.width,
            'slots_length': template.slots_length,
            'slots_width': template.slots_width,
            'heated': template.heated,
            'artificial_light': template.artificial_light,
            'natural_light_percentage': template.natural_light_percentage,
            'containing_patch_id': containing_patch_id,
        }
        return self.add(fields)

    # ========================================
    # Tasks
    # ========================================

    def add_task(self, patch_id, task):
        """
        Append a task to a patch. Blank text is ignored.

        Returns:
            (tasks, error_message_or_None); tasks is None for an unknown patch.
        """
        if self.get(patch_id) is None:
            return None, f"Unknown patch: {patch_id}"
        task = (task or '').strip()
        if not task:
            return self.tasks(patch_id), None

        self._tasks.setdefault(patch_id, []).append(task)
        try:
            self.adapter.add_patch_task(patch_id, task, self.session.user_id)
        except Exception as e:
            logger.error("Could not save task for patch %s: %s", patch_id, e, exc_info=True)
            return self.tasks(patch_id), str(PersistenceError('add task', e))
        return self.tasks(patch_id), None

    def delete_task(self, patch_id, index):
        """
        Remove the task at `index` from a patch.

        Returns:
            (tasks, error_message_or_None); tasks is None when nothing was removed.
        """
        tasks = self._tasks.get(patch_id, [])
        if self.get(patch_id) is None:
            return None, f"Unknown patch: {patch_id}"
        if not isinstance(index, int) or not 0 <= index < len(tasks):
            return None, f"No task at index {index}"

        task = tasks.pop(index)
        try:
            self.adapter.delete_patch_task(patch_id, task)
        except Exception as e:
            logger.error("Could not delete task for patch %s: %s", patch_id, e, exc_info=True)
            return self.tasks(patch_id), str(PersistenceError('delete task', e))
        return self.tasks(patch_id), None
