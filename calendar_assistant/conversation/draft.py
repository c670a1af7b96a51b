"""
Event drafts.

The working, possibly incomplete, event under construction or edit. Drafts
are immutable values: `merged` returns a new draft, so a half-applied merge
is never observable by the state machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from zoneinfo import ZoneInfo

from .intents import EventFields, EventTime

# Field names in the order the user is asked for them
REQUIRED_FIELDS = ("summary", "start", "end")

# Questions for each missing field
CLARIFICATION_QUESTIONS = {
    "summary": "What should I call this event?",
    "start": "When should it start?",
    "end": "When should it end?",
    "title": "What should the task say?",
    "event_id": "Which event do you mean?",
    "query": "Whose contact details should I look up?",
    "document_title": "What should the document be called?",
}


def is_email(value: str) -> bool:
    """A token counts as resolved once it looks like an address."""
    return "@" in value


def _union(existing: Tuple[str, ...], new: List[str]) -> Tuple[str, ...]:
    seen = {a.lower() for a in existing}
    merged = list(existing)
    for attendee in new:
        if attendee.lower() not in seen:
            seen.add(attendee.lower())
            merged.append(attendee)
    return tuple(merged)


@dataclass(frozen=True)
class EventDraft:
    """Possibly incomplete event."""
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None
    attendees: Tuple[str, ...] = ()
    # Existing conference on the source event; new links come from trigger words
    conference_requested: bool = False
    calendar_id: str = "primary"
    source_event_id: Optional[str] = None
    end_explicit: bool = False
    touched: FrozenSet[str] = field(default_factory=frozenset)
    failed: bool = False

    @property
    def is_edit(self) -> bool:
        return self.source_event_id is not None

    @property
    def is_empty(self) -> bool:
        return not (self.summary or self.start or self.touched or self.is_edit)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()

    @property
    def has_valid_range(self) -> bool:
        """False when the end is at or before the start."""
        if self.start is None or self.end is None:
            return True
        utc = ZoneInfo("UTC")
        return self.end.as_datetime(utc) > self.start.as_datetime(utc)

    @property
    def is_all_day(self) -> bool:
        return bool(self.start and self.start.is_all_day)

    def missing_fields(self) -> List[str]:
        missing = [name for name in REQUIRED_FIELDS if not getattr(self, name)]
        # An end at or before the start has to be asked for again
        if "end" not in missing and not self.has_valid_range:
            missing.append("end")
        return missing

    def unresolved_attendees(self) -> List[str]:
        return [a for a in self.attendees if not is_email(a)]

    def merged(self, fields: EventFields, default_duration: timedelta = timedelta(hours=1)) -> "EventDraft":
        """
        Overlay a partial payload.

        Later values overwrite earlier ones, attendees are unioned. A derived
        end follows the start; an explicit end is kept, or shifted with the
        start when the start moves without a new end.

        Args:
            fields: Partial payload from the interpreter
            default_duration: Duration used to derive a missing end

        Returns:
            New draft
        """
        supplied = fields.supplied()
        updates: Dict[str, Any] = {
            key: value for key, value in supplied.items() if key not in ("attendees", "start", "end")
        }
        if "attendees" in supplied:
            updates["attendees"] = _union(self.attendees, supplied["attendees"])

        start = supplied.get("start", self.start)
        end = self.end
        end_explicit = self.end_explicit

        if "end" in supplied:
            end = supplied["end"]
            end_explicit = True
        elif "start" in supplied and start is not None:
            if end_explicit and self.start is not None and end is not None and not start.is_all_day:
                old_start = self.start.date_time
                old_end = end.date_time
                if old_start is not None and old_end is not None and old_end > old_start:
                    end = start.shifted(old_end - old_start)
                else:
                    end, end_explicit = None, False
            else:
                end, end_explicit = None, False

        if start is not None and end is None:
            end = start.shifted(default_duration if not start.is_all_day else timedelta(days=1))
            end_explicit = False

        touched = self.touched | frozenset(supplied)
        if end != self.end:
            touched |= {"end"}

        updates.update(start=start, end=end, end_explicit=end_explicit)
        return replace(self, **updates, touched=touched, failed=False)

    def with_attendees(self, attendees: Tuple[str, ...]) -> "EventDraft":
        return replace(self, attendees=tuple(attendees), touched=self.touched | {"attendees"})

    def to_resource(self) -> Dict[str, Any]:
        """Google Calendar event resource for insert."""
        event: Dict[str, Any] = {"summary": self.summary}
        if self.description:
            event["description"] = self.description
        if self.location:
            event["location"] = self.location
        if self.start:
            event["start"] = self.start.to_resource()
        if self.end:
            event["end"] = self.end.to_resource()
        if self.attendees:
            event["attendees"] = [{"email": email} for email in self.attendees]
        return event

    def to_patch(self) -> Dict[str, Any]:
        """Only the fields changed during this edit session."""
        full = self.to_resource()
        patch: Dict[str, Any] = {}
        for name in ("summary", "description", "location", "start", "end", "attendees"):
            if name in self.touched:
                patch[name] = full.get(name)
        return patch

    def to_context(self) -> Dict[str, Any]:
        """JSON-friendly snapshot for the interpreter."""
        data = self.to_resource()
        data["conferenceRequested"] = self.conference_requested
        data["calendarId"] = self.calendar_id
        if self.source_event_id:
            data["eventId"] = self.source_event_id
        return data

    @classmethod
    def from_event(cls, event: Dict[str, Any], calendar_id: str) -> "EventDraft":
        """Seed an edit-mode draft from a fetched event."""
        return cls(
            summary=event.get("summary"),
            description=event.get("description"),
            location=event.get("location"),
            start=EventTime.from_resource(event.get("start")),
            end=EventTime.from_resource(event.get("end")),
            attendees=tuple(a["email"] for a in event.get("attendees", []) if a.get("email")),
            conference_requested=bool(event.get("conferenceData") or event.get("hangoutLink")),
            calendar_id=calendar_id,
            source_event_id=event.get("id"),
            end_explicit=True,
        )
