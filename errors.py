"""
errors.py — Error taxonomy for the garden planner core.

- ValidationError: unknown growth stage or direction (also a ValueError).
- PersistenceError: the backing store rejected or never received a commit.
- IntegrityWarning: inconsistent data detected on load (logged, never raised).
"""


class GardenError(Exception):
    """Base class for garden planner errors."""


class ValidationError(GardenError, ValueError):
    """Input rejected before any state was touched."""


class PersistenceError(GardenError):
    """A commit to the backing store failed. In-memory state is kept."""

    def __init__(self, operation, cause=None):
        self.operation = operation
        self.cause = cause
        message = f"Failed to save changes ({operation})"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class IntegrityWarning(UserWarning):
    """Duplicate or dangling records found while loading."""
