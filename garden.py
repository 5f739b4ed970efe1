"""
garden.py — Wires the garden core together.

build_adapter() picks the persistence tiers from configuration:
- Supabase configured: FallbackAdapter(SupabaseStore, SqliteStore)
- otherwise: SqliteStore alone

Garden owns one session, catalog, registry and placement engine sharing that
adapter, and loads them in dependency order.
"""

import logging
import random
from concurrent.futures import ThreadPoolExecutor

from database import SqliteStore
from models import ANONYMOUS_USER_ID
from patch_registry import PatchRegistry
from persistence import FallbackAdapter
from placement_engine import PlacementEngine
from plant_catalog import PlantCatalog
from session import GardenSession
from supabase_store import create_store

logger = logging.getLogger(__name__)


def build_adapter(config):
    """Build the persistence adapter described by a config mapping."""
    local = SqliteStore(config.get('GARDEN_DB_PATH'))
    remote = create_store(config.get('SUPABASE_URL', ''), config.get('SUPABASE_ANON_KEY', ''))
    if remote is None:
        return local
    return FallbackAdapter(remote, local)


class Garden:

    def __init__(self, adapter, user_id=ANONYMOUS_USER_ID, rng=None, background_commits=False):
        self.adapter = adapter
        self.session = GardenSession(adapter, user_id=user_id)
        self.registry = PatchRegistry(adapter, self.session)
        executor = ThreadPoolExecutor(max_workers=1) if background_commits else None
        self.engine = PlacementEngine(adapter, self.session, self.registry, rng=rng, executor=executor)
        self.catalog = PlantCatalog(adapter, is_in_use=self.engine.plant_in_use)

    @classmethod
    def from_config(cls, config):
        seed = config.get('GARDEN_RANDOM_SEED')
        rng = random.Random(int(seed)) if seed not in (None, '') else None
        return cls(
            build_adapter(config),
            user_id=config.get('GARDEN_USER_ID') or ANONYMOUS_USER_ID,
            rng=rng,
            background_commits=bool(config.get('GARDEN_BACKGROUND_COMMITS')),
        )

    def load(self):
        """Load profile, catalog, patches and planted items, in that order."""
        self.session.initialize()
        self.catalog.load()
        self.registry.load()
        self.engine.load()
        self.engine.attach_plants(self.catalog.get)
        logger.info("Garden loaded for %s: %d patches, %d plants",
                    self.session.profile.name, len(self.registry.all()), len(self.catalog.all()))
        return self

    def refresh(self):
        self.session.refresh()
        return self.load()

    def close(self):
        self.engine.close()

    def state(self):
        """Full garden state as plain data."""
        return {
            'user': {'id': self.session.user_id,
                     'name': self.session.profile.name if self.session.profile else None},
            'patches': [patch.to_dict() for patch in self.registry.all()],
            'planted_items': {
                patch_id: [item.to_dict() for item in items]
                for patch_id, items in self.engine.planted.items()
            },
            'plants': [plant.to_dict() for plant in self.catalog.all()],
            'tasks': {patch.id: self.registry.tasks(patch.id) for patch in self.registry.all()},
        }
