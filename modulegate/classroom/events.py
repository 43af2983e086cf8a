"""
Progress events - Notification sink for the progression engine.

Provides:
- ProgressEvent and its subclasses (PageUnlocked, ModuleCompleted)
- EventBus: synchronous publish/subscribe with per-type and global handlers

Events are informational. A handler that raises is logged and skipped so a
broken subscriber never affects progress state.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProgressEvent:
    """Base class for all progress events."""
    learner_id: str
    module_id: str
    occurred_at: datetime = field(default_factory=_utcnow, compare=False)


@dataclass(frozen=True)
class PageUnlocked(ProgressEvent):
    """A page went from locked to reachable."""
    page_index: int = 0
    page_title: str = ""


@dataclass(frozen=True)
class ModuleCompleted(ProgressEvent):
    """A module reached completed status (emitted once)."""
    overall_score: int = 0


Handler = Callable[[ProgressEvent], None]


class EventBus:
    """
    Synchronous pub-sub for progress events.

    Handlers run in registration order, global handlers first.

    Usage:
        bus = EventBus()
        bus.subscribe(PageUnlocked, show_toast)
        bus.publish(PageUnlocked(learner_id="u1", module_id="m1", page_index=2))
    """

    def __init__(self):
        self._handlers: dict[type[ProgressEvent], list[Handler]] = defaultdict(list)
        self._global_handlers: list[Handler] = []

    def subscribe(self, event_type: type[ProgressEvent], handler: Handler):
        """Register `handler` for one event type."""
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler):
        """Register `handler` for every event."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: type[ProgressEvent], handler: Handler) -> bool:
        """Remove `handler` from `event_type`. Returns True if it was registered."""
        handlers = self._handlers.get(event_type, [])
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    def publish(self, event: ProgressEvent):
        """Deliver `event` to global handlers, then to handlers of its type."""
        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Error in global event handler %r", handler)

        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except Exception:
                logger.exception("Error in handler %r for %s", handler, type(event).__name__)

    def handler_count(self, event_type: Optional[type[ProgressEvent]] = None) -> int:
        """Number of registered handlers, for one type or overall."""
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(hs) for hs in self._handlers.values()) + len(self._global_handlers)


class EventRecorder:
    """Handler that keeps every event it receives, for inspection."""

    def __init__(self):
        self.events: list[ProgressEvent] = []

    def __call__(self, event: ProgressEvent):
        self.events.append(event)

    def of_type(self, event_type: type[ProgressEvent]) -> list[ProgressEvent]:
        return [event for event in self.events if isinstance(event, event_type)]
