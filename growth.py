"""
growth.py — Growth stage machine for planted items.

Stages are ordered: seed → sprout → young → ready → mature.
- up:   one step forward, capped at mature
- down: one step back, floored at seed
No stage is absorbing; mature can go back down.

Indoor patches start plants from seed; every other patch type is assumed to
receive started plants, which enter at the young stage.
"""

from errors import ValidationError

STAGES = ('seed', 'sprout', 'young', 'ready', 'mature')
DIRECTIONS = ('up', 'down')

INDOOR_INITIAL_STAGE = 'seed'
DEFAULT_INITIAL_STAGE = 'young'


def initial_stage(patch_type):
    """Stage given to a plant newly placed into a patch of this type."""
    if patch_type == 'indoor':
        return INDOOR_INITIAL_STAGE
    return DEFAULT_INITIAL_STAGE


def is_valid_stage(stage):
    return stage in STAGES


def next_stage(stage, direction):
    """
    Compute the stage after one transition.

    Args:
        stage: Current stage (one of STAGES).
        direction: 'up' or 'down'.

    Returns:
        The new stage; equal to `stage` when already at the ceiling/floor.

    Raises:
        ValidationError: on an unknown stage or direction.
    """
    if stage not in STAGES:
        raise ValidationError(f"Unknown growth stage: {stage!r}")
    if direction not in DIRECTIONS:
        raise ValidationError(f"Unknown growth direction: {direction!r}")

    index = STAGES.index(stage)
    if direction == 'up':
        index = min(index + 1, len(STAGES) - 1)
    else:
        index = max(index - 1, 0)
    return STAGES[index]


def normalize_stage(stage, patch_type=None):
    """Stage read from storage; missing or unknown values fall back to the initial stage."""
    if stage in STAGES:
        return stage
    return initial_stage(patch_type)
