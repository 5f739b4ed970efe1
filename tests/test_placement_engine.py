"""
tests/test_placement_engine.py — Tests for the placement engine.

Tests cover:
- place / move / grow / remove / copy semantics and their rejections
- One occupant per cell after arbitrary operation sequences
- Store contents matching memory after each commit
- Persistence failures: memory kept, error reported, listeners notified
- Move commit retry, background commits, duplicate and stale rows on load
"""

import dataclasses
import random

import pytest

from conftest import make_patch, plant_named
from database import SqliteStore
from errors import PersistenceError, IntegrityWarning
from garden import Garden
from models import Position


def cells(garden, patch_id):
    return {(i.x, i.y): (i.plant_id, i.stage) for i in garden.engine.occupants(patch_id)}


# ========================================
# place
# ========================================

class TestPlace:

    def test_place_on_empty_cell(self, garden, reload):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        tomato = plant_named(garden, 'Tomato')

        result = garden.engine.place(tomato, 0, 0, bed.id)

        assert result.status == 'placed'
        assert result.persisted
        assert result.item.stage == 'young'
        assert result.item.plant == tomato
        assert cells(garden, bed.id) == {(0, 0): (tomato.id, 'young')}
        assert cells(reload(), bed.id) == {(0, 0): (tomato.id, 'young')}

    def test_indoor_patch_starts_from_seed(self, garden):
        tray = make_patch(garden, 'Tray', type='indoor', placement_type='slots',
                          slots_length=2, slots_width=3)
        result = garden.engine.place(plant_named(garden, 'Basil'), 2, 1, tray.id)
        assert result.status == 'placed'
        assert result.item.stage == 'seed'

    def test_place_on_occupied_cell_overwrites(self, garden, reload):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        tomato = plant_named(garden, 'Tomato')
        carrot = plant_named(garden, 'Carrot')
        garden.engine.place(tomato, 0, 0, bed.id)
        garden.engine.grow(garden.engine.item_at(bed.id, 0, 0), 'up')

        result = garden.engine.place(carrot, 0, 0, bed.id)

        assert result.status == 'replaced'
        assert cells(garden, bed.id) == {(0, 0): (carrot.id, 'young')}
        assert cells(reload(), bed.id) == {(0, 0): (carrot.id, 'young')}

    @pytest.mark.parametrize('x, y', [(2, 0), (0, 2), (-1, 0), (0.5, 0)])
    def test_out_of_bounds_is_rejected(self, garden, x, y):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        result = garden.engine.place(plant_named(garden, 'Tomato'), x, y, bed.id)
        assert result.status == 'rejected'
        assert not result.ok
        assert garden.engine.occupants(bed.id) == []

    def test_unknown_patch_is_rejected(self, garden):
        result = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, 'no-such-patch')
        assert result.status == 'rejected'

    def test_missing_plant_is_rejected(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        assert garden.engine.place(None, 0, 0, bed.id).status == 'rejected'


# ========================================
# move
# ========================================

class TestMove:

    def test_move_to_empty_cell(self, garden, reload):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        tomato = plant_named(garden, 'Tomato')
        item = garden.engine.place(tomato, 0, 0, bed.id).item
        garden.engine.grow(item, 'up')

        result = garden.engine.move(item, 0, 0, bed.id, 1, 1, bed.id)

        assert result.status == 'moved'
        assert result.persisted
        assert cells(garden, bed.id) == {(1, 1): (tomato.id, 'ready')}
        assert cells(reload(), bed.id) == {(1, 1): (tomato.id, 'ready')}

    def test_move_onto_occupied_cell_is_rejected(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        tomato = plant_named(garden, 'Tomato')
        carrot = plant_named(garden, 'Carrot')
        garden.engine.place(tomato, 0, 0, bed.id)
        carrot_item = garden.engine.place(carrot, 1, 0, bed.id).item

        result = garden.engine.move(carrot_item, 1, 0, bed.id, 0, 0, bed.id)

        assert result.status == 'rejected'
        assert result.message == 'Position occupied'
        assert cells(garden, bed.id) == {(0, 0): (tomato.id, 'young'), (1, 0): (carrot.id, 'young')}

    def test_move_between_patches(self, garden, reload):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        other = make_patch(garden, 'Bed B', length=1, width=3)
        tomato = plant_named(garden, 'Tomato')
        item = garden.engine.place(tomato, 1, 1, bed.id).item

        result = garden.engine.move(item, 1, 1, bed.id, 2, 0, other.id)

        assert result.status == 'moved'
        assert garden.engine.occupants(bed.id) == []
        assert cells(garden, other.id) == {(2, 0): (tomato.id, 'young')}
        reloaded = reload()
        assert reloaded.engine.occupants(bed.id) == []
        assert cells(reloaded, other.id) == {(2, 0): (tomato.id, 'young')}

    def test_move_to_same_cell_is_a_noop(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item
        result = garden.engine.move(item, 0, 0, bed.id, 0, 0, bed.id)
        assert result.status == 'unchanged'
        assert len(garden.engine.occupants(bed.id)) == 1

    def test_move_out_of_bounds_is_rejected(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item
        result = garden.engine.move(item, 0, 0, bed.id, 5, 5, bed.id)
        assert result.status == 'rejected'
        assert garden.engine.item_at(bed.id, 0, 0) is not None

    def test_move_from_empty_cell_is_rejected(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        result = garden.engine.move(None, 0, 0, bed.id, 1, 1, bed.id)
        assert result.status == 'rejected'


# ========================================
# grow / remove
# ========================================

class TestGrowAndRemove:

    def test_grow_is_capped_at_mature(self, garden, reload):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item

        statuses = [garden.engine.grow(item, 'up').status for _ in range(3)]

        assert statuses == ['grown', 'grown', 'unchanged']
        assert garden.engine.item_at(bed.id, 0, 0).stage == 'mature'
        assert reload().engine.item_at(bed.id, 0, 0).stage == 'mature'

    def test_grow_down(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item
        result = garden.engine.grow(item, 'down')
        assert result.status == 'grown'
        assert result.item.stage == 'sprout'

    def test_grow_down_stops_at_seed(self, flaky_garden, flaky_store):
        tray = make_patch(flaky_garden, 'Tray', type='indoor', placement_type='slots',
                          slots_length=2, slots_width=2)
        item = flaky_garden.engine.place(plant_named(flaky_garden, 'Basil'), 0, 0, tray.id).item
        assert item.stage == 'seed'
        flaky_store.calls.clear()

        results = [flaky_garden.engine.grow(item, 'down') for _ in range(2)]

        assert [r.status for r in results] == ['unchanged', 'unchanged']
        assert flaky_garden.engine.item_at(tray.id, 0, 0).stage == 'seed'
        assert flaky_store.calls == []

    def test_item_at_needs_integer_coordinates(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        garden.engine.place(plant_named(garden, 'Tomato'), 1, 1, bed.id)
        assert garden.engine.item_at(bed.id, 1, 1) is not None
        assert garden.engine.item_at(bed.id, True, True) is None
        assert garden.engine.item_at(bed.id, 1.0, 1) is None

    def test_grow_rejects_unknown_direction(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item
        assert garden.engine.grow(item, 'sideways').status == 'rejected'
        assert garden.engine.item_at(bed.id, 0, 0).stage == 'young'

    def test_remove(self, garden, reload):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item

        assert garden.engine.remove(item).status == 'removed'
        assert garden.engine.occupants(bed.id) == []
        assert reload().engine.occupants(bed.id) == []

    def test_remove_empty_cell_is_a_noop(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item
        garden.engine.remove(item)
        assert garden.engine.remove(item).status == 'unchanged'


# ========================================
# copy
# ========================================

class TestCopy:

    def test_copy_fills_remaining_cells_and_reports_shortfall(self, garden, reload):
        bed = make_patch(garden, 'Bed B', length=1, width=3)
        tomato = plant_named(garden, 'Tomato')
        item = garden.engine.place(tomato, 0, 0, bed.id).item

        result = garden.engine.copy(item, 5)

        assert result.status == 'copied'
        assert (result.created, result.requested, result.shortfall) == (2, 5, 3)
        assert result.message == 'Copied 2 of 5 requested'
        expected = {(0, 0): (tomato.id, 'young'), (1, 0): (tomato.id, 'young'), (2, 0): (tomato.id, 'young')}
        assert cells(garden, bed.id) == expected
        assert cells(reload(), bed.id) == expected

    def test_copy_into_full_tray_creates_nothing(self, garden):
        tray = make_patch(garden, 'Tray', type='indoor', placement_type='slots',
                          slots_length=1, slots_width=1)
        item = garden.engine.place(plant_named(garden, 'Basil'), 0, 0, tray.id).item
        assert item.stage == 'seed'

        result = garden.engine.copy(item, 5)

        assert result.created == 0
        assert result.shortfall == 5
        assert len(garden.engine.occupants(tray.id)) == 1

    def test_copy_keeps_plant_and_stage(self, garden):
        bed = make_patch(garden, 'Bed A', length=3, width=3)
        item = garden.engine.place(plant_named(garden, 'Pepper'), 1, 1, bed.id).item
        garden.engine.grow(item, 'up')

        result = garden.engine.copy(item, 4)

        assert result.created == 4
        assert all(c.plant_id == item.plant_id and c.stage == 'ready' for c in result.items)
        positions = [(i.x, i.y) for i in garden.engine.occupants(bed.id)]
        assert len(positions) == len(set(positions)) == 5

    def test_copy_is_reproducible_with_a_seeded_rng(self, garden, tmp_path):
        other = Garden(SqliteStore(str(tmp_path / 'other.db')), rng=random.Random(1234)).load()
        layouts = []
        for g in (garden, other):
            bed = make_patch(g, 'Bed A', length=4, width=4)
            item = g.engine.place(plant_named(g, 'Tomato'), 0, 0, bed.id).item
            g.engine.copy(item, 6)
            layouts.append(set(cells(g, bed.id)))
        other.close()
        assert layouts[0] == layouts[1]

    @pytest.mark.parametrize('count', ['many', None, float('inf'), float('-inf'), float('nan')])
    def test_invalid_count_is_rejected(self, garden, count):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item
        assert garden.engine.copy(item, count).status == 'rejected'
        assert len(garden.engine.occupants(bed.id)) == 1

    def test_copy_of_empty_cell_is_rejected(self, garden):
        bed = make_patch(garden, 'Bed A', length=2, width=2)
        item = garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id).item
        garden.engine.remove(item)
        assert garden.engine.copy(item, 2).status == 'rejected'


# ========================================
# Invariants
# ========================================

def test_random_operation_sequence_keeps_one_occupant_per_cell(garden, reload):
    bed = make_patch(garden, 'Bed A', length=2, width=3)
    tray = make_patch(garden, 'Tray', type='indoor', placement_type='slots', slots_length=2, slots_width=2)
    patches = [bed, tray]
    plants = garden.catalog.all()
    rng = random.Random(7)

    def random_cell():
        patch = rng.choice(patches)
        return rng.randint(-1, 3), rng.randint(-1, 3), patch.id

    for _ in range(200):
        op = rng.choice(['place', 'move', 'grow', 'remove', 'copy'])
        x, y, patch_id = random_cell()
        item = garden.engine.item_at(patch_id, x, y)
        if op == 'place':
            garden.engine.place(rng.choice(plants), x, y, patch_id)
        elif op == 'move':
            tx, ty, tp = random_cell()
            garden.engine.move(item, x, y, patch_id, tx, ty, tp)
        elif item is None:
            continue
        elif op == 'grow':
            garden.engine.grow(item, rng.choice(['up', 'down']))
        elif op == 'remove':
            garden.engine.remove(item)
        else:
            garden.engine.copy(item, rng.randint(0, 3))

        for patch in patches:
            positions = [(i.x, i.y) for i in garden.engine.occupants(patch.id)]
            assert len(positions) == len(set(positions))

    reloaded = reload()
    for patch in patches:
        assert cells(reloaded, patch.id) == cells(garden, patch.id)


def test_deleting_a_patch_drops_its_occupants(garden, reload):
    bed = make_patch(garden, 'Bed A', length=2, width=2)
    other = make_patch(garden, 'Bed B', length=2, width=2)
    tomato = plant_named(garden, 'Tomato')
    garden.engine.place(tomato, 0, 0, bed.id)
    garden.engine.place(tomato, 1, 1, bed.id)
    garden.engine.place(tomato, 0, 0, other.id)

    result = garden.registry.delete(bed.id)

    assert result.clipped == 2
    assert bed.id not in garden.engine.planted
    assert all(i.patch_id != bed.id for items in garden.engine.planted.values() for i in items)
    assert len(garden.engine.occupants(other.id)) == 1
    assert reload().engine.occupants(bed.id) == []


# ========================================
# Persistence Failures
# ========================================

class TestPersistenceFailures:

    def test_failed_place_keeps_memory_and_notifies(self, flaky_garden, flaky_store):
        errors = []
        flaky_garden.engine.add_error_listener(errors.append)
        bed = make_patch(flaky_garden, 'Bed A', length=2, width=2)
        flaky_store.failing = {'upsert_planted_item'}

        result = flaky_garden.engine.place(plant_named(flaky_garden, 'Tomato'), 0, 0, bed.id)

        assert result.status == 'placed'
        assert not result.persisted
        assert 'Failed to save changes (place)' in result.error
        assert flaky_garden.engine.item_at(bed.id, 0, 0) is not None
        assert len(errors) == 1
        assert isinstance(errors[0], PersistenceError)
        assert errors[0].operation == 'place'

    def test_removed_listener_is_not_notified(self, flaky_garden, flaky_store):
        errors = []
        flaky_garden.engine.add_error_listener(errors.append)
        flaky_garden.engine.remove_error_listener(errors.append)
        bed = make_patch(flaky_garden, 'Bed A', length=2, width=2)
        flaky_store.failing = {'upsert_planted_item'}

        flaky_garden.engine.place(plant_named(flaky_garden, 'Tomato'), 0, 0, bed.id)

        assert errors == []

    def test_failing_listener_does_not_break_the_operation(self, flaky_garden, flaky_store):
        def broken(error):
            raise RuntimeError('listener bug')

        flaky_garden.engine.add_error_listener(broken)
        bed = make_patch(flaky_garden, 'Bed A', length=2, width=2)
        flaky_store.failing = {'upsert_planted_item'}

        result = flaky_garden.engine.place(plant_named(flaky_garden, 'Tomato'), 0, 0, bed.id)
        assert result.status == 'placed'

    def test_move_insert_failure_is_retried_as_upsert(self, flaky_garden, flaky_store):
        bed = make_patch(flaky_garden, 'Bed A', length=2, width=2)
        tomato = plant_named(flaky_garden, 'Tomato')
        item = flaky_garden.engine.place(tomato, 0, 0, bed.id).item
        flaky_store.failing = {'bulk_insert_planted_items'}
        flaky_store.calls.clear()

        result = flaky_garden.engine.move(item, 0, 0, bed.id, 1, 1, bed.id)

        assert result.persisted
        assert flaky_store.calls == ['delete_planted_item', 'bulk_insert_planted_items', 'upsert_planted_item']
        flaky_store.failing = set()
        reloaded = Garden(flaky_store).load()
        assert cells(reloaded, bed.id) == {(1, 1): (tomato.id, 'young')}

    def test_move_failure_keeps_memory_at_target(self, flaky_garden, flaky_store):
        errors = []
        flaky_garden.engine.add_error_listener(errors.append)
        bed = make_patch(flaky_garden, 'Bed A', length=2, width=2)
        item = flaky_garden.engine.place(plant_named(flaky_garden, 'Tomato'), 0, 0, bed.id).item
        flaky_store.failing = {'bulk_insert_planted_items', 'upsert_planted_item'}

        result = flaky_garden.engine.move(item, 0, 0, bed.id, 1, 1, bed.id)

        assert result.status == 'moved'
        assert not result.persisted
        assert flaky_garden.engine.item_at(bed.id, 0, 0) is None
        assert flaky_garden.engine.item_at(bed.id, 1, 1) is not None
        assert [e.operation for e in errors] == ['move']

    def test_failed_copy_keeps_the_copies(self, flaky_garden, flaky_store):
        errors = []
        flaky_garden.engine.add_error_listener(errors.append)
        bed = make_patch(flaky_garden, 'Bed A', length=3, width=3)
        item = flaky_garden.engine.place(plant_named(flaky_garden, 'Tomato'), 0, 0, bed.id).item
        flaky_store.failing = {'bulk_insert_planted_items'}

        result = flaky_garden.engine.copy(item, 4)

        assert result.status == 'copied'
        assert result.created == 4
        assert not result.persisted
        assert 'Failed to save changes (copy)' in result.error
        assert [e.operation for e in errors] == ['copy']
        assert len(flaky_garden.engine.occupants(bed.id)) == 5

    def test_load_falls_back_to_local_snapshot(self, flaky_garden, flaky_store):
        bed = make_patch(flaky_garden, 'Bed A', length=2, width=2)
        tomato = plant_named(flaky_garden, 'Tomato')
        flaky_garden.engine.place(tomato, 1, 0, bed.id)
        flaky_store.failing = {'load_planted_items'}

        reloaded = Garden(flaky_store).load()

        assert cells(reloaded, bed.id) == {(1, 0): (tomato.id, 'young')}


def test_background_commits_reach_the_store(store, reload):
    garden = Garden(store, background_commits=True).load()
    bed = make_patch(garden, 'Bed A', length=2, width=2)
    tomato = plant_named(garden, 'Tomato')
    item = garden.engine.place(tomato, 0, 0, bed.id).item
    garden.engine.copy(item, 3)
    garden.close()

    assert len(reload().engine.occupants(bed.id)) == 4


def test_duplicate_rows_on_load_keep_the_first(garden, db_path):
    class DuplicatingStore(SqliteStore):
        def load_planted_items(self):
            planted = super().load_planted_items()
            return {pid: items + [dataclasses.replace(items[0], stage='mature')]
                    for pid, items in planted.items()}

    bed = make_patch(garden, 'Bed A', length=2, width=2)
    garden.engine.place(plant_named(garden, 'Tomato'), 0, 0, bed.id)

    with pytest.warns(IntegrityWarning):
        reloaded = Garden(DuplicatingStore(db_path)).load()

    occupants = reloaded.engine.occupants(bed.id)
    assert len(occupants) == 1
    assert occupants[0].stage == 'young'


def test_stale_rows_on_load_are_dropped(garden, db_path):
    class StaleStore(SqliteStore):
        def load_planted_items(self):
            planted = super().load_planted_items()
            item = next(iter(planted.values()))[0]
            carrot = plant_named(garden, 'Carrot')
            planted['gone'] = [dataclasses.replace(item, plant_id=carrot.id,
                                                   position=Position(0, 0, 'gone'))]
            planted[item.patch_id].append(dataclasses.replace(item, position=Position(7, 0, item.patch_id)))
            return planted

    bed = make_patch(garden, 'Bed A', length=2, width=2)
    tomato = plant_named(garden, 'Tomato')
    garden.engine.place(tomato, 0, 0, bed.id)

    with pytest.warns(IntegrityWarning) as record:
        reloaded = Garden(StaleStore(db_path)).load()

    messages = [str(w.message) for w in record]
    assert any('unknown patch gone' in m for m in messages)
    assert any('outside patch' in m for m in messages)
    assert cells(reloaded, bed.id) == {(0, 0): (tomato.id, 'young')}
    assert 'gone' not in reloaded.engine.planted
    assert reloaded.catalog.delete(plant_named(garden, 'Carrot').id) == (True, None)
