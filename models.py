"""
models.py — Python dataclasses for the garden planner.

Maps to the tables shared by the Supabase backend and the local SQLite cache:
patches, plants, planted_items, patch_tasks, profiles.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional


PATCH_TYPES = ('outdoor-soil', 'perennials', 'indoor', 'protected', 'template')
PLACEMENT_TYPES = ('free', 'slots')
PLANT_CATEGORIES = ('vegetable', 'fruit', 'herb', 'flower', 'tree', 'shrub')
PLANT_LIFECYCLES = ('annual', 'tree', 'perennial', 'bush', 'rhizome')

DEFAULT_SLOTS_LENGTH = 4
DEFAULT_SLOTS_WIDTH = 6

ANONYMOUS_USER_ID = '00000000-0000-0000-0000-000000000000'
ANONYMOUS_USER_NAME = 'Gardener'


@dataclass
class Patch:
    """A named garden area (bed, seed tray, greenhouse)."""
    id: Optional[str] = None
    name: str = ""
    type: str = 'outdoor-soil'
    placement_type: str = 'free'
    length: float = 2.0
    width: float = 2.0
    slots_length: int = DEFAULT_SLOTS_LENGTH
    slots_width: int = DEFAULT_SLOTS_WIDTH
    heated: bool = False
    artificial_light: bool = False
    natural_light_percentage: int = 100
    containing_patch_id: Optional[str] = None

    @property
    def height(self) -> float:
        """Row extent of a free patch; kept as an alias of length."""
        return self.length

    @property
    def is_slots(self) -> bool:
        return self.placement_type == 'slots'

    def to_dict(self):
        data = asdict(self)
        data['height'] = self.height
        return data


@dataclass
class PlantItem:
    """Catalog entry. A plant with parent_id set is a variety of that parent."""
    id: Optional[str] = None
    name: str = ""
    icon: str = ""
    category: str = 'vegetable'
    lifecycle: Optional[str] = None
    parent_id: Optional[str] = None

    @property
    def is_variety(self) -> bool:
        return self.parent_id is not None

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Position:
    """Cell coordinates; only unique within a single patch."""
    x: int
    y: int
    patch_id: str


@dataclass
class PlantedItem:
    """One plant instance occupying a single cell of a patch."""
    plant_id: str
    position: Position
    stage: str = 'young'
    plant: Optional[PlantItem] = None

    @property
    def x(self) -> int:
        return self.position.x

    @property
    def y(self) -> int:
        return self.position.y

    @property
    def patch_id(self) -> str:
        return self.position.patch_id

    def to_row(self):
        """Flat row as stored in planted_items."""
        return {
            'patch_id': self.patch_id,
            'position_x': self.x,
            'position_y': self.y,
            'plant_id': self.plant_id,
            'stage': self.stage,
        }

    def to_dict(self):
        data = {
            'plant_id': self.plant_id,
            'position': {'x': self.x, 'y': self.y, 'patch_id': self.patch_id},
            'stage': self.stage,
        }
        if self.plant is not None:
            data['plant'] = self.plant.to_dict()
        return data


@dataclass
class UserProfile:
    id: str = ANONYMOUS_USER_ID
    name: str = ANONYMOUS_USER_NAME


@dataclass
class OperationResult:
    """
    Outcome of a mutating garden operation.

    status: placed, replaced, moved, unchanged, grown, removed, copied,
            edited, deleted or rejected.
    error:  persistence failure message; the in-memory change still holds.
    """
    status: str
    message: str = ""
    item: Optional[PlantedItem] = None
    created: int = 0
    requested: int = 0
    error: Optional[str] = None
    items: list = field(default_factory=list)
    patch: Optional[Patch] = None
    clipped: int = 0

    @property
    def ok(self) -> bool:
        return self.status != 'rejected'

    @property
    def persisted(self) -> bool:
        return self.error is None

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.created, 0)

    def to_dict(self):
        data = {
            'success': self.ok,
            'status': self.status,
            'message': self.message,
            'persisted': self.persisted,
        }
        if self.error:
            data['error'] = self.error
        if self.item is not None:
            data['item'] = self.item.to_dict()
        if self.status == 'copied' or self.requested:
            data['created'] = self.created
            data['requested'] = self.requested
            data['shortfall'] = self.shortfall
        if self.patch is not None:
            data['patch'] = self.patch.to_dict()
        if self.clipped:
            data['clipped'] = self.clipped
        if self.items:
            data['items'] = [item.to_dict() for item in self.items]
        return data
