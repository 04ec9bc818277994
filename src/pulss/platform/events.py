"""
In-process event bus.

Domain events are published after the owning database transaction commits.
Handlers (notification dispatch, analytics, webhooks) subscribe by event type;
a failing handler is logged and never affects the publisher.
"""

from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

import structlog

logger = structlog.get_logger(__name__)


class EventPriority(str, Enum):
    """Delivery priority hint for downstream dispatchers."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Event:
    """A published domain event."""

    event_type: str
    payload: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)
    priority: EventPriority = EventPriority.NORMAL
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Dispatches events to subscribed async handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler; ``"*"`` receives every event."""
        self._handlers[event_type].append(handler)

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Event:
        event = Event(
            event_type=event_type,
            payload=payload,
            metadata=metadata or {},
            priority=priority,
        )

        handlers = [*self._handlers.get(event_type, []), *self._handlers.get("*", [])]
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "event.handler_failed",
                    event_type=event_type,
                    event_id=event.event_id,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )

        logger.debug("event.published", event_type=event_type, handlers=len(handlers))
        return event


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def set_event_bus(bus: EventBus | None) -> None:
    """Replace the process-wide event bus (mainly for testing)."""
    global _event_bus
    _event_bus = bus


__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "EventPriority",
    "get_event_bus",
    "set_event_bus",
]
