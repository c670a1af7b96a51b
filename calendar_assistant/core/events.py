"""
Event bus between the conversation core and whatever renders it.

The core never holds a reference to the view; it publishes events and the
view (the terminal chat in run.py, or tests) subscribes to them.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from loguru import logger


class EventType(Enum):
    """What the view is told about."""
    TURN_APPENDED = "turn_appended"            # turn
    STATE_CHANGED = "state_changed"            # previous, state
    CONFIRMATION_REQUESTED = "confirmation_requested"  # draft
    CALENDAR_CHANGED = "calendar_changed"      # calendar_id, date
    BUSY_CHANGED = "busy_changed"              # busy
    SESSION_RESET = "session_reset"


@dataclass
class Event:
    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    Publish/subscribe hub for view notifications.

    A failing view handler is logged and never reaches the core. Recent
    events are kept so a view attached late can catch up.
    """

    def __init__(self, max_history: int = 100):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._history: Deque[Event] = deque(maxlen=max_history)

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"View subscribed to {event_type.value}")

    async def publish(self, event_type: EventType, **data: Any) -> Event:
        """Record the event and hand it to each subscriber in order."""
        event = Event(event_type=event_type, data=data)
        self._history.append(event)

        for handler in list(self._handlers.get(event_type, [])):
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"View handler failed on {event_type.value}: {e}")
        return event

    def get_history(self, event_type: Optional[EventType] = None, limit: int = 10) -> List[Event]:
        """Most recent events, oldest first."""
        events = [e for e in self._history if event_type is None or e.event_type == event_type]
        return events[-limit:]
