"""
events.py — Typed change notifications for patches.

The PatchRegistry owns an EventChannel; consumers subscribe to one event
class (PatchAdded, PatchEdited, PatchDeleted) and receive instances of it.
A failing subscriber is logged and does not stop delivery to the others.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Type

from models import Patch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatchEvent:
    patch_id: str


@dataclass(frozen=True)
class PatchAdded(PatchEvent):
    patch: Optional[Patch] = None


@dataclass(frozen=True)
class PatchEdited(PatchEvent):
    patch: Optional[Patch] = None
    changed: tuple = field(default_factory=tuple)
    clipped: int = 0


@dataclass(frozen=True)
class PatchDeleted(PatchEvent):
    removed_items: int = 0


class EventChannel:
    """Minimal publish/subscribe keyed by event class."""

    def __init__(self):
        self._handlers: Dict[Type[PatchEvent], List[Callable]] = defaultdict(list)

    def subscribe(self, event_type, handler):
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type, handler):
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event):
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except Exception:
                logger.exception("Error in %s handler", type(event).__name__)
