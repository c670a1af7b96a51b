"""
Action Dispatcher.

Maps a committed draft or a non-draft intent onto Scheduling Service calls,
applying the business rules on the way: conference-link insertion from
trigger words, attendee validation, PATCH-only edits, idempotent deletes.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from loguru import logger

from ..core.config import CalendarConfig
from ..core.errors import EventNotFound, UnresolvedAttendee
from ..core.events import EventBus, EventType
from ..tools.agenda import format_event_list, parse_events
from ..tools.scheduling import SchedulingClient
from .draft import EventDraft
from .intents import (
    Action,
    AttachDocumentIntent,
    BaseIntent,
    CreateTaskIntent,
    DeleteEventIntent,
    FindContactsIntent,
    ListEventsIntent,
)

DOCUMENT_URL = "https://docs.google.com/document/d/{document_id}/edit"
DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"


class OperationStatus(Enum):
    OK = "ok"
    WARNING = "warning"


@dataclass
class OperationResult:
    """Outcome of one dispatched operation."""
    status: OperationStatus
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    affected_date: Optional[date] = None

    @property
    def ok(self) -> bool:
        return self.status == OperationStatus.OK

    def to_payload(self) -> Dict[str, Any]:
        """Tool-result payload replayed to the model."""
        return {"status": self.status.value, "message": self.message, **self.data}


def trigger_pattern(words: Iterable[str]) -> Optional[re.Pattern]:
    """Case-insensitive match of any word at a word start ("meet" matches "meeting")."""
    words = [w.strip() for w in words if w and w.strip()]
    if not words:
        return None
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")", re.IGNORECASE)


def conference_request() -> Dict[str, Any]:
    """A createRequest with a fresh requestId."""
    return {
        "createRequest": {
            "requestId": uuid.uuid4().hex,
            "conferenceSolutionKey": {"type": "hangoutsMeet"},
        }
    }


class ActionDispatcher:
    """Executes intents against the Scheduling Service."""

    def __init__(
        self,
        client: SchedulingClient,
        timezone: ZoneInfo,
        calendar_config: Optional[CalendarConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.client = client
        self.timezone = timezone
        self.calendar_config = calendar_config or CalendarConfig()
        self.event_bus = event_bus
        self._trigger = trigger_pattern(self.calendar_config.conference_trigger_words)

    def wants_conference(self, utterances: Sequence[str]) -> bool:
        if self._trigger is None:
            return False
        return any(self._trigger.search(text or "") for text in utterances)

    async def _calendar_changed(self, calendar_id: str, affected: Optional[date]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(EventType.CALENDAR_CHANGED, calendar_id=calendar_id, date=affected)

    def _affected_date(self, resource: Dict[str, Any]) -> Optional[date]:
        events = parse_events([resource], self.timezone)
        return events[0].start.astimezone(self.timezone).date() if events else None

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def commit(self, draft: EventDraft, utterances: Sequence[str] = ()) -> OperationResult:
        """
        Create or update the event described by a complete draft.

        Raises:
            UnresolvedAttendee: an attendee is not an email address
            SchedulingServiceError: the service call failed
        """
        unresolved = draft.unresolved_attendees()
        if unresolved:
            raise UnresolvedAttendee(unresolved)

        conference = self.wants_conference(utterances)
        if draft.is_edit:
            return await self._update(draft, conference)
        return await self._create(draft, conference)

    async def _create(self, draft: EventDraft, conference: bool) -> OperationResult:
        body = draft.to_resource()
        if conference:
            body["conferenceData"] = conference_request()

        created = await self.client.insert_event(body, draft.calendar_id, with_conference=conference)
        logger.info(f"Created event {created.get('id')} ({draft.summary})")

        affected = self._affected_date(created)
        await self._calendar_changed(draft.calendar_id, affected)

        message = f"Event created: {created.get('summary', draft.summary)}"
        if created.get("hangoutLink"):
            message += f"\nMeet link: {created['hangoutLink']}"
        if created.get("htmlLink"):
            message += f"\n{created['htmlLink']}"
        return OperationResult(
            OperationStatus.OK,
            message,
            data={"eventId": created.get("id"), "conferenceRequested": conference},
            affected_date=affected,
        )

    async def _update(self, draft: EventDraft, conference: bool) -> OperationResult:
        current = await self.client.get_event(draft.source_event_id, draft.calendar_id)
        patch = draft.to_patch()

        if "attendees" in patch:
            existing = current.get("attendees", [])
            known = {a.get("email", "").lower() for a in existing}
            patch["attendees"] = list(existing) + [
                {"email": email} for email in draft.attendees if email.lower() not in known
            ]

        # An existing conference is never removed
        add_conference = conference and not (current.get("conferenceData") or current.get("hangoutLink"))
        if add_conference:
            patch["conferenceData"] = conference_request()

        if not patch:
            return OperationResult(OperationStatus.WARNING, "Nothing to change.", data={"eventId": draft.source_event_id})

        updated = await self.client.patch_event(
            draft.source_event_id,
            patch,
            draft.calendar_id,
            with_conference=add_conference,
        )
        logger.info(f"Updated event {draft.source_event_id}: {sorted(patch)}")

        affected = self._affected_date(updated)
        await self._calendar_changed(draft.calendar_id, affected)
        return OperationResult(
            OperationStatus.OK,
            f"Event updated: {updated.get('summary', draft.summary)}",
            data={"eventId": draft.source_event_id, "changed": sorted(patch)},
            affected_date=affected,
        )

    # ------------------------------------------------------------------
    # Other intents
    # ------------------------------------------------------------------

    async def execute(self, intent: BaseIntent) -> OperationResult:
        """
        Run a non-draft intent.

        Raises:
            SchedulingServiceError: the service call failed
        """
        handlers = {
            Action.LIST_EVENTS: self.list_events,
            Action.CREATE_TASK: self.create_task,
            Action.DELETE_EVENT: self.delete_event,
            Action.FIND_CONTACTS: self.find_contacts,
            Action.ATTACH_DOCUMENT: self.attach_document,
        }
        handler = handlers.get(intent.kind)
        if handler is None:
            raise ValueError(f"{intent.kind.value} is not dispatched directly")
        return await handler(intent)

    async def list_events(self, intent: ListEventsIntent) -> OperationResult:
        calendar_id = intent.calendar_id or self.calendar_config.default_calendar_id
        time_min = intent.time_min
        if time_min is None and not intent.query:
            time_min = datetime.now(self.timezone)

        items = await self.client.list_events(
            calendar_id,
            time_min=time_min,
            time_max=intent.time_max,
            query=intent.query,
            max_results=intent.max_results or self.calendar_config.list_max_results,
        )
        events = parse_events(items, self.timezone, calendar_id)
        return OperationResult(
            OperationStatus.OK,
            format_event_list(events, self.timezone),
            data={
                "events": [
                    {"eventId": e.id, "summary": e.summary, "start": e.start.isoformat(), "end": e.end.isoformat()}
                    for e in events
                ]
            },
        )

    async def create_task(self, intent: CreateTaskIntent) -> OperationResult:
        body: Dict[str, Any] = {"title": intent.title}
        if intent.notes:
            body["notes"] = intent.notes
        if intent.due is not None:
            # Tasks only keeps the date part of `due`
            due = intent.due.astimezone(self.timezone).date()
            body["due"] = f"{due.isoformat()}T00:00:00.000Z"

        task = await self.client.insert_task(body, intent.task_list or self.calendar_config.default_task_list)
        logger.info(f"Created task {task.get('id')} ({intent.title})")

        message = f"Task created: {intent.title}"
        if intent.due is not None:
            message += f" (due {intent.due.astimezone(self.timezone).date().isoformat()})"
        return OperationResult(OperationStatus.OK, message, data={"taskId": task.get("id")})

    async def delete_event(self, intent: DeleteEventIntent) -> OperationResult:
        """Deleting a missing event is reported as a warning, not a failure."""
        calendar_id = intent.calendar_id or self.calendar_config.default_calendar_id
        label = intent.summary or intent.event_id
        try:
            current = await self.client.get_event(intent.event_id, calendar_id)
            await self.client.delete_event(intent.event_id, calendar_id)
        except EventNotFound:
            logger.warning(f"Event {intent.event_id} was already gone")
            return OperationResult(
                OperationStatus.WARNING,
                f"The event {label} no longer exists; nothing to delete.",
                data={"eventId": intent.event_id},
            )

        affected = self._affected_date(current)
        await self._calendar_changed(calendar_id, affected)
        return OperationResult(
            OperationStatus.OK,
            f"Event deleted: {current.get('summary', label)}",
            data={"eventId": intent.event_id},
            affected_date=affected,
        )

    async def find_contacts(self, intent: FindContactsIntent) -> OperationResult:
        contacts = await self.client.search_contacts(intent.query, self.calendar_config.contacts_page_size)
        with_email = [c for c in contacts if c["emails"]]
        if not with_email:
            return OperationResult(
                OperationStatus.WARNING,
                f"No contact with an email address matches {intent.query!r}.",
                data={"query": intent.query, "contacts": []},
            )

        lines = [f"{c['name']}: {', '.join(c['emails'])}" for c in with_email]
        return OperationResult(
            OperationStatus.OK,
            "\n".join(lines),
            data={"query": intent.query, "contacts": with_email},
        )

    async def attach_document(self, intent: AttachDocumentIntent) -> OperationResult:
        """Create a Google Doc and add it to the event's attachments."""
        calendar_id = intent.calendar_id or self.calendar_config.default_calendar_id
        current = await self.client.get_event(intent.event_id, calendar_id)

        document = await self.client.create_document(intent.document_title)
        url = DOCUMENT_URL.format(document_id=document["documentId"])
        attachments: List[Dict[str, Any]] = list(current.get("attachments", []))
        attachments.append({"fileUrl": url, "title": intent.document_title, "mimeType": DOCUMENT_MIME_TYPE})

        await self.client.patch_event(
            intent.event_id,
            {"attachments": attachments},
            calendar_id,
            supports_attachments=True,
        )
        logger.info(f"Attached document {document['documentId']} to event {intent.event_id}")

        affected = self._affected_date(current)
        await self._calendar_changed(calendar_id, affected)
        return OperationResult(
            OperationStatus.OK,
            f"Document \"{intent.document_title}\" attached to {current.get('summary', 'the event')}: {url}",
            data={"eventId": intent.event_id, "documentUrl": url},
            affected_date=affected,
        )
