"""
Tools Module

Google integrations used by the assistant:
- Scheduling: Calendar, Tasks, Contacts (People) and Docs APIs
- Identity: OAuth sign-in and sign-out
- Agenda: upcoming list, month grid and day views
"""

from __future__ import annotations

from .agenda import CalendarEvent, day_events, month_event_days, upcoming_across
from .identity import GoogleIdentity
from .scheduling import SchedulingClient

__all__ = [
    "CalendarEvent",
    "GoogleIdentity",
    "SchedulingClient",
    "day_events",
    "month_event_days",
    "upcoming_across",
]
