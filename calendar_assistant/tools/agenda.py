"""
Calendar view helpers.

Read-only queries behind the calendar pane: the upcoming list merged across
calendars, the days of a month that have events, and one day's events.
"""

from __future__ import annotations

import asyncio
import calendar as month_calendar
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Sequence, Set
from zoneinfo import ZoneInfo

from loguru import logger

from .scheduling import SchedulingClient


@dataclass
class CalendarEvent:
    """Represents a calendar event."""
    id: str
    summary: str
    start: datetime
    end: datetime
    calendar_id: str = "primary"
    description: Optional[str] = None
    location: Optional[str] = None
    attendees: List[str] = field(default_factory=list)
    is_all_day: bool = False
    status: str = "confirmed"
    html_link: Optional[str] = None
    hangout_link: Optional[str] = None

    @classmethod
    def from_google_event(
        cls,
        event: Dict[str, Any],
        tz: ZoneInfo,
        calendar_id: str = "primary",
    ) -> "CalendarEvent":
        """
        Create CalendarEvent from Google Calendar API response.

        All-day events become [local midnight, local midnight) bounds.
        """
        start_data = event.get("start", {})
        end_data = event.get("end", {})

        if "date" in start_data:
            start = datetime.combine(date.fromisoformat(start_data["date"]), time.min, tzinfo=tz)
            end_date = end_data.get("date")
            end = (
                datetime.combine(date.fromisoformat(end_date), time.min, tzinfo=tz)
                if end_date else start + timedelta(days=1)
            )
            is_all_day = True
        else:
            start = datetime.fromisoformat(start_data.get("dateTime", "").replace("Z", "+00:00"))
            end = datetime.fromisoformat(end_data.get("dateTime", "").replace("Z", "+00:00"))
            if start.tzinfo is None:
                start = start.replace(tzinfo=tz)
            if end.tzinfo is None:
                end = end.replace(tzinfo=tz)
            is_all_day = False

        return cls(
            id=event.get("id", ""),
            summary=event.get("summary", "No Title"),
            start=start,
            end=end,
            calendar_id=calendar_id,
            description=event.get("description"),
            location=event.get("location"),
            attendees=[a["email"] for a in event.get("attendees", []) if a.get("email")],
            is_all_day=is_all_day,
            status=event.get("status", "confirmed"),
            html_link=event.get("htmlLink"),
            hangout_link=event.get("hangoutLink"),
        )

    def format_display(self, tz: Optional[ZoneInfo] = None) -> str:
        """Format event for display."""
        start = self.start.astimezone(tz) if tz else self.start
        end = self.end.astimezone(tz) if tz else self.end
        if self.is_all_day:
            time_str = "All day"
        else:
            time_str = f"{start.strftime('%I:%M %p')} - {end.strftime('%I:%M %p')}"

        lines = [f"📅 **{self.summary}**"]
        lines.append(f"   {start.strftime('%A, %B %d, %Y')}")
        lines.append(f"   {time_str}")

        if self.location:
            lines.append(f"   📍 {self.location}")
        if self.hangout_link:
            lines.append(f"   🎥 {self.hangout_link}")
        lines.append(f"   id: {self.id}")

        return "\n".join(lines)


def parse_events(items: Sequence[Dict[str, Any]], tz: ZoneInfo, calendar_id: str = "primary") -> List[CalendarEvent]:
    """Parse event resources, skipping ones without usable times."""
    events = []
    for item in items:
        try:
            events.append(CalendarEvent.from_google_event(item, tz, calendar_id))
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to parse event {item.get('id')}: {e}")
    return events


def format_event_list(events: Sequence[CalendarEvent], tz: Optional[ZoneInfo] = None) -> str:
    if not events:
        return "No events found."
    return "\n\n".join(event.format_display(tz) for event in events)


async def upcoming_across(
    client: SchedulingClient,
    calendar_ids: Sequence[str],
    tz: ZoneInfo,
    now: Optional[datetime] = None,
    max_results: int = 10,
) -> List[CalendarEvent]:
    """
    Upcoming events from several calendars.

    The calendars are queried concurrently; a calendar that fails is logged
    and skipped without aborting the others.
    """
    now = now or datetime.now(tz)
    calendar_ids = list(calendar_ids)
    results = await asyncio.gather(
        *(client.list_events(cid, time_min=now, max_results=max_results) for cid in calendar_ids),
        return_exceptions=True,
    )

    merged: List[CalendarEvent] = []
    for calendar_id, result in zip(calendar_ids, results):
        if isinstance(result, BaseException):
            logger.warning(f"Skipping calendar {calendar_id}: {result}")
            continue
        merged.extend(parse_events(result, tz, calendar_id))

    merged.sort(key=lambda e: e.start)
    return merged[:max_results]


async def month_event_days(
    client: SchedulingClient,
    calendar_id: str,
    year: int,
    month: int,
    tz: ZoneInfo,
) -> Set[int]:
    """Days of the month that have at least one event (multi-day events mark every day)."""
    first = datetime(year, month, 1, tzinfo=tz)
    days_in_month = month_calendar.monthrange(year, month)[1]
    after_last = first + timedelta(days=days_in_month)

    items = await client.list_events(calendar_id, time_min=first, time_max=after_last, max_results=250)

    days: Set[int] = set()
    for event in parse_events(items, tz, calendar_id):
        start = max(event.start.astimezone(tz), first)
        # End bound is exclusive
        end = min(event.end.astimezone(tz), after_last)
        current = start.date()
        while datetime.combine(current, time.min, tzinfo=tz) < end:
            if current.month == month:
                days.add(current.day)
            current += timedelta(days=1)
    return days


async def day_events(
    client: SchedulingClient,
    calendar_id: str,
    day: date,
    tz: ZoneInfo,
) -> List[CalendarEvent]:
    """Events overlapping one local day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    items = await client.list_events(calendar_id, time_min=start, time_max=start + timedelta(days=1))
    return parse_events(items, tz, calendar_id)
