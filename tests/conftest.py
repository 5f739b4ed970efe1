"""Shared fixtures: a temporary SQLite store and a loaded Garden on top of it."""

import os
import random
import tempfile

import pytest

from database import SqliteStore
from garden import Garden


class FlakyStore(SqliteStore):
    """SqliteStore whose listed methods raise, for persistence failure tests."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.failing = set()
        self.calls = []

    def _check(self, name):
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    def load_patches(self):
        self._check('load_patches')
        return super().load_patches()

    def load_planted_items(self):
        self._check('load_planted_items')
        return super().load_planted_items()

    def load_plants(self):
        self._check('load_plants')
        return super().load_plants()

    def load_profile(self, user_id):
        self._check('load_profile')
        return super().load_profile(user_id)

    def update_patch(self, patch_id, fields):
        self._check('update_patch')
        super().update_patch(patch_id, fields)

    def upsert_planted_item(self, patch_id, x, y, plant_id, stage):
        self._check('upsert_planted_item')
        super().upsert_planted_item(patch_id, x, y, plant_id, stage)

    def delete_planted_item(self, patch_id, x, y):
        self._check('delete_planted_item')
        super().delete_planted_item(patch_id, x, y)

    def bulk_insert_planted_items(self, rows):
        self._check('bulk_insert_planted_items')
        super().bulk_insert_planted_items(rows)

    def add_patch_task(self, patch_id, task, user_id):
        self._check('add_patch_task')
        super().add_patch_task(patch_id, task, user_id)


def _unlink_db(db_path):
    for suffix in ('', '-wal', '-shm'):
        try:
            os.unlink(db_path + suffix)
        except (FileNotFoundError, PermissionError):
            pass


@pytest.fixture
def db_path():
    """Path of a throwaway SQLite file."""
    db_fd, path = tempfile.mkstemp(suffix='.db')
    yield path
    os.close(db_fd)
    _unlink_db(path)


@pytest.fixture
def store(db_path):
    return SqliteStore(db_path)


@pytest.fixture
def flaky_store(db_path):
    return FlakyStore(db_path)


@pytest.fixture
def garden(store):
    garden = Garden(store, rng=random.Random(1234)).load()
    yield garden
    garden.close()


@pytest.fixture
def flaky_garden(flaky_store):
    garden = Garden(flaky_store, rng=random.Random(1234)).load()
    yield garden
    garden.close()


@pytest.fixture
def reload(store):
    """Build a fresh Garden from the same store, to check what was persisted."""
    def _reload():
        return Garden(store, rng=random.Random(1234)).load()
    return _reload


def make_patch(garden, name='Bed A', **fields):
    """Create a patch through the registry and fail loudly if it was rejected."""
    patch, error = garden.registry.add({'name': name, **fields})
    assert error is None, error
    return patch


def plant_named(garden, name):
    return next(p for p in garden.catalog.all() if p.name == name)
