"""
grid.py — Spatial grid model for patches.

A patch exposes a rectangular cell grid whose shape depends on its placement
mode:
- free:  columns = width, rows = length (meters, fractional parts dropped)
- slots: columns = slots_width, rows = slots_length

All functions here are pure predicates/helpers over a Patch and a list of
PlantedItems; nothing is mutated.
"""

from typing import Iterable, Iterator, List, Optional, Tuple

from models import Patch, PlantedItem


def grid_shape(patch: Patch) -> Tuple[int, int]:
    """Return (columns, rows) for the patch's placement mode."""
    if patch.is_slots:
        return max(int(patch.slots_width), 0), max(int(patch.slots_length), 0)
    return max(int(patch.width), 0), max(int(patch.length), 0)


def cell_count(patch: Patch) -> int:
    columns, rows = grid_shape(patch)
    return columns * rows


def is_coordinate(value) -> bool:
    """True iff value is a plain int. bool is an int subclass and is refused."""
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_position(patch: Patch, x, y) -> bool:
    """True iff (x, y) is an integer cell inside the patch grid."""
    if not is_coordinate(x) or not is_coordinate(y):
        return False
    columns, rows = grid_shape(patch)
    return 0 <= x < columns and 0 <= y < rows


def find_occupant(occupants: Iterable[PlantedItem], x, y, patch_id) -> Optional[PlantedItem]:
    for item in occupants:
        if item.x == x and item.y == y and item.patch_id == patch_id:
            return item
    return None


def is_occupied(occupants: Iterable[PlantedItem], x, y, patch_id) -> bool:
    """
    True iff some occupant sits at exactly (x, y) in patch_id.

    The patch id is part of the match: coordinates repeat across patches.
    """
    return find_occupant(occupants, x, y, patch_id) is not None


def iter_cells(patch: Patch) -> Iterator[Tuple[int, int]]:
    """Yield every (x, y) of the patch, row by row."""
    columns, rows = grid_shape(patch)
    for y in range(rows):
        for x in range(columns):
            yield x, y


def empty_cells(patch: Patch, occupants: Iterable[PlantedItem]) -> List[Tuple[int, int]]:
    """All cells of the patch with no occupant, in row-major order."""
    taken = {(item.x, item.y) for item in occupants if item.patch_id == patch.id}
    return [cell for cell in iter_cells(patch) if cell not in taken]
