"""Tests for the growth stage machine."""

import pytest

from errors import ValidationError
from growth import STAGES, initial_stage, next_stage, normalize_stage


def test_up_walks_every_stage_in_order():
    stage = 'seed'
    visited = [stage]
    for _ in range(len(STAGES) - 1):
        stage = next_stage(stage, 'up')
        visited.append(stage)
    assert visited == list(STAGES)


def test_up_is_capped_at_mature():
    assert next_stage('mature', 'up') == 'mature'


def test_down_is_floored_at_seed():
    assert next_stage('seed', 'down') == 'seed'


def test_mature_can_go_back_down():
    assert next_stage('mature', 'down') == 'ready'


@pytest.mark.parametrize('stage, direction', [
    ('wilted', 'up'),
    (None, 'down'),
    ('young', 'sideways'),
])
def test_unknown_input_raises(stage, direction):
    with pytest.raises(ValidationError):
        next_stage(stage, direction)
    # ValidationError is also a ValueError
    with pytest.raises(ValueError):
        next_stage(stage, direction)


def test_initial_stage_depends_on_patch_type():
    assert initial_stage('indoor') == 'seed'
    assert initial_stage('outdoor-soil') == 'young'
    assert initial_stage('protected') == 'young'


def test_normalize_stage():
    assert normalize_stage('ready') == 'ready'
    assert normalize_stage(None) == 'young'
    assert normalize_stage('bogus', 'indoor') == 'seed'
