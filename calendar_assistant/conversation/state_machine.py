"""
Draft & Confirmation State Machine.

Decides, per interpreted turn, whether to ask a follow-up question, check
for conflicts, request confirmation, or execute. It is the only writer of
the session's draft, and every transition it makes is recorded in the
transcript.

    IDLE -> COLLECTING -> CONFLICT_CHECK -> AWAITING_CONFIRMATION
         -> COMMITTING -> IDLE            (or CANCELLED -> IDLE)
"""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import timedelta
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from loguru import logger

from ..core.config import AssistantConfig
from ..core.errors import AssistantError, EventNotFound, SchedulingServiceError, UnresolvedAttendee
from ..core.events import EventBus, EventType
from .conflicts import ConflictChecker, ConflictSet
from .dispatcher import ActionDispatcher, OperationResult
from .draft import CLARIFICATION_QUESTIONS, EventDraft
from .intents import Action, BaseIntent, CreateEventIntent, EditEventIntent, FindContactsIntent
from .interpreter import Interpretation, IntentInterpreter
from .session import DraftState, SessionContext
from .transcript import ToolCall, TranscriptManager, Turn

# Intents that abandon a pending draft
TOPIC_SWITCHES = {Action.CREATE_TASK, Action.DELETE_EVENT, Action.ATTACH_DOCUMENT}

# Required fields of the non-draft intents
REQUIRED_INTENT_FIELDS = {
    Action.CREATE_TASK: ("title",),
    Action.DELETE_EVENT: ("event_id",),
    Action.FIND_CONTACTS: ("query",),
    Action.ATTACH_DOCUMENT: ("event_id", "document_title"),
}

CONFLICT_NOTE = (
    "The proposed time overlaps the events listed under conflicts in the context. "
    "Tell me about them and suggest how to resolve it."
)


def _normalize(text: str) -> str:
    return re.sub(r"[^\w\s]", "", text or "").strip().lower()


class DraftStateMachine:
    """Owns the draft lifecycle for one session."""

    def __init__(
        self,
        session: SessionContext,
        transcript: TranscriptManager,
        interpreter: IntentInterpreter,
        dispatcher: ActionDispatcher,
        conflict_checker: ConflictChecker,
        event_bus: EventBus,
        config: AssistantConfig,
    ):
        self.session = session
        self.transcript = transcript
        self.interpreter = interpreter
        self.dispatcher = dispatcher
        self.conflict_checker = conflict_checker
        self.event_bus = event_bus
        self.config = config
        self.timezone: ZoneInfo = config.tz
        self.default_duration = timedelta(minutes=config.calendar.default_event_duration_minutes)
        self._confirm_words = {_normalize(w) for w in config.conversation.confirm_words}
        self._cancel_words = {_normalize(w) for w in config.conversation.cancel_words}

    @property
    def state(self) -> DraftState:
        return self.session.state

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record(self, turn: Turn) -> Turn:
        """Append a turn and notify the view."""
        self.transcript.append(turn)
        await self.event_bus.publish(EventType.TURN_APPENDED, turn=turn)
        return turn

    async def say(self, text: str) -> Turn:
        return await self.record(Turn.model(text))

    async def _set_state(self, state: DraftState) -> None:
        if state == self.session.state:
            return
        logger.info(f"Draft state: {self.session.state.value} -> {state.value}")
        previous = self.session.state
        self.session.state = state
        await self.event_bus.publish(EventType.STATE_CHANGED, previous=previous, state=state)

    def auxiliary_context(self, conflicts: Optional[ConflictSet] = None) -> Dict[str, Any]:
        """Calendars, current draft, conflicts and unresolved attendee names for the interpreter."""
        draft = self.session.draft
        return {
            "calendars": self.session.calendars,
            "currentDraft": draft.to_context() if draft is not None and not draft.is_empty else None,
            "editingEventId": self.session.edit_event_id,
            "conflicts": [c.to_context() for c in (conflicts or {}).values()],
            "unresolvedAttendeeNames": list(self.session.pending_attendee_names),
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def on_user_turn(self, turn: Turn) -> None:
        """
        Handle one recorded user turn.

        Raises:
            ProviderError, MalformedResponse: nothing has been changed
            SchedulingServiceError: reported by the caller
        """
        if self.state == DraftState.AWAITING_CONFIRMATION and not turn.images:
            answer = _normalize(turn.text or "")
            if answer in self._confirm_words:
                await self.confirm()
                return
            if answer in self._cancel_words:
                await self.cancel()
                return

        interpretation = await self.interpreter.interpret(
            self.transcript.as_context(), turn, self.auxiliary_context()
        )
        await self._handle(interpretation, turn)

    async def _handle(self, interpretation: Interpretation, turn: Turn, reentry: bool = False) -> None:
        """Apply an interpretation; a recorded tool call always gets its result recorded."""
        call = interpretation.call
        if call is not None:
            await self.record(Turn.model(call))
        try:
            await self._apply(interpretation.intent, call, turn, reentry)
        except AssistantError as e:
            if call is not None and not self._call_answered(call):
                await self.record(Turn.tool(call, {"status": "error", "message": e.message}))
            raise

    def _call_answered(self, call: ToolCall) -> bool:
        last = self.transcript.last()
        return last is not None and last.is_tool_result and last.content.call_id == call.call_id

    async def _answer(self, call: Optional[ToolCall], payload: Dict[str, Any]) -> None:
        if call is not None and not self._call_answered(call):
            await self.record(Turn.tool(call, payload))

    async def _apply(self, intent: BaseIntent, call: Optional[ToolCall], turn: Turn, reentry: bool) -> None:
        kind = intent.kind

        if kind in (Action.CREATE_EVENT, Action.EDIT_EVENT):
            await self._collect(intent, call, turn, reentry)
            return

        if kind == Action.GENERAL_QUERY:
            await self.say(intent.reply or intent.follow_up_question or "How can I help with your calendar?")
            return

        # A question from the model defers execution even when the payload is complete
        missing = [name for name in REQUIRED_INTENT_FIELDS.get(kind, ()) if not getattr(intent, name)]
        if missing or intent.follow_up_question:
            question = intent.follow_up_question or CLARIFICATION_QUESTIONS[missing[0]]
            await self._answer(call, {"status": "needs_input", "missing": missing})
            await self.say(question)
            return

        if kind in TOPIC_SWITCHES and self.session.draft is not None:
            logger.info(f"{kind.value} replaces the pending draft")
            self.session.discard_draft()
            await self._set_state(DraftState.IDLE)

        result = await self.dispatcher.execute(intent)
        await self._answer(call, result.to_payload())
        await self._report(intent, result)

    async def _report(self, intent: BaseIntent, result: OperationResult) -> None:
        # Listings are formatted locally; the model's reply is a preface at most
        if intent.reply and intent.kind in (Action.LIST_EVENTS, Action.FIND_CONTACTS):
            await self.say(f"{intent.reply}\n\n{result.message}")
        else:
            await self.say(result.message)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def _continues(self, intent: BaseIntent, event_id: Optional[str]) -> bool:
        draft = self.session.draft
        if draft is None or intent.start_new:
            return False
        if not (self.session.has_live_draft or draft.failed):
            return False
        if isinstance(intent, CreateEventIntent):
            return not draft.is_edit
        return draft.is_edit and draft.source_event_id == event_id

    async def _seed(self, intent: BaseIntent, event_id: Optional[str]) -> EventDraft:
        """A fresh draft for a new CREATE, or one seeded from the event being edited."""
        calendar_id = intent.event.calendar_id or self.config.calendar.default_calendar_id
        if isinstance(intent, EditEventIntent):
            event = await self.dispatcher.client.get_event(event_id, calendar_id)
            return EventDraft.from_event(event, calendar_id)
        return EventDraft(calendar_id=calendar_id)

    async def _collect(self, intent: BaseIntent, call: Optional[ToolCall], turn: Turn, reentry: bool) -> None:
        current = self.session.draft
        event_id = intent.event.event_id
        if isinstance(intent, EditEventIntent) and event_id is None and current is not None and current.is_edit:
            event_id = current.source_event_id

        if isinstance(intent, EditEventIntent) and event_id is None:
            await self._answer(call, {"status": "needs_input", "missing": ["event_id"]})
            await self.say(intent.follow_up_question or CLARIFICATION_QUESTIONS["event_id"])
            return

        if not self._continues(intent, event_id):
            try:
                seeded = await self._seed(intent, event_id)
            except EventNotFound:
                await self._answer(call, {"status": "warning", "message": "event not found"})
                await self.say("I couldn't find that event. It may have been deleted.")
                return
            self.session.start_draft(seeded)

        draft = self.session.draft.merged(intent.event, self.default_duration)
        if turn.text and (not self.session.draft_utterances or self.session.draft_utterances[-1] != turn.text):
            self.session.draft_utterances.append(turn.text)

        supplied = intent.event.attendees
        if supplied and not any("@" not in a for a in supplied):
            self.session.pending_attendee_names = []

        self.session.draft = draft
        await self._set_state(DraftState.COLLECTING)

        unresolved = draft.unresolved_attendees()
        if unresolved:
            await self._resolve_attendees(UnresolvedAttendee(unresolved), call)
            return

        if intent.follow_up_question or not draft.is_complete:
            question = intent.follow_up_question or CLARIFICATION_QUESTIONS[draft.missing_fields()[0]]
            await self._answer(call, {"status": "needs_input", "missing": draft.missing_fields(), "draft": draft.to_context()})
            await self.say(question)
            return

        await self._check_conflicts(intent, call, turn, reentry)

    async def _check_conflicts(self, intent: BaseIntent, call: Optional[ToolCall], turn: Turn, reentry: bool) -> None:
        draft = self.session.draft
        conflicts: ConflictSet = {}
        if not draft.is_all_day:
            await self._set_state(DraftState.CONFLICT_CHECK)
            conflicts = await self.conflict_checker.find_conflicts(
                draft.calendar_id,
                draft.start.as_datetime(self.timezone),
                draft.end.as_datetime(self.timezone),
                exclude_event_id=draft.source_event_id,
            )
            fresh = {k: v for k, v in conflicts.items() if k not in self.session.acknowledged_conflicts}
            if fresh:
                await self._set_state(DraftState.COLLECTING)
                self.session.acknowledged_conflicts.update(fresh)
                await self._answer(call, {"status": "conflict", "conflicts": [c.to_context() for c in fresh.values()]})
                if reentry:
                    await self.say(self._describe_conflicts(fresh))
                    return
                follow_up = await self.interpreter.interpret(
                    self.transcript.as_context(),
                    Turn.user(CONFLICT_NOTE),
                    self.auxiliary_context(fresh),
                )
                await self._handle(follow_up, turn, reentry=True)
                return

        await self._set_state(DraftState.AWAITING_CONFIRMATION)
        await self._answer(call, {"status": "awaiting_confirmation", "draft": draft.to_context()})
        text = intent.reply or self._describe_draft(draft)
        if conflicts:
            # Overlaps the user already saw and chose to keep
            text = "Note: this still overlaps " + ", ".join(c.summary for c in conflicts.values()) + ".\n" + text
        await self.say(text)
        await self.event_bus.publish(EventType.CONFIRMATION_REQUESTED, draft=draft)

    async def _resolve_attendees(self, error: UnresolvedAttendee, call: Optional[ToolCall]) -> None:
        """Move bare names out of the draft and look each one up in Contacts."""
        draft = self.session.draft
        names = error.names
        self.session.draft = draft.with_attendees(tuple(a for a in draft.attendees if a not in names))
        for name in names:
            if name not in self.session.pending_attendee_names:
                self.session.pending_attendee_names.append(name)
        await self._set_state(DraftState.COLLECTING)
        await self._answer(call, {"status": "unresolved_attendees", "names": names})

        lines = [error.message]
        for name in names:
            search = ToolCall(name="find_contacts", arguments={"query": name})
            await self.record(Turn.model(search))
            try:
                result = await self.dispatcher.find_contacts(FindContactsIntent(query=name))
            except SchedulingServiceError as e:
                await self.record(Turn.tool(search, {"status": "error", "message": e.message}))
                lines.append(f"{name}: contact lookup failed ({e.message})")
                continue
            await self.record(Turn.tool(search, result.to_payload()))
            lines.append(result.message if result.ok else f"{name}: no match in your contacts")
        lines.append("Which address should I use?")
        await self.say("\n".join(lines))

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def confirm(self) -> Optional[OperationResult]:
        """
        Commit the pending draft, or retry one whose commit failed.

        Raises:
            SchedulingServiceError: the draft is kept and marked failed
        """
        draft = self.session.draft
        retry = draft is not None and draft.failed and draft.is_complete
        if self.state != DraftState.AWAITING_CONFIRMATION and not retry:
            await self.say("There is nothing to confirm.")
            return None

        await self._set_state(DraftState.COMMITTING)
        try:
            result = await self.dispatcher.commit(draft, self.session.draft_utterances)
        except UnresolvedAttendee as e:
            await self._resolve_attendees(e, None)
            return None
        except SchedulingServiceError:
            self.session.draft = replace(draft, failed=True)
            await self._set_state(DraftState.IDLE)
            logger.warning("Commit failed; draft kept for retry")
            raise

        self.session.discard_draft()
        await self._set_state(DraftState.IDLE)
        await self.say(result.message)
        return result

    async def cancel(self) -> None:
        if self.session.draft is None:
            await self.say("There is nothing to cancel.")
            return
        await self._set_state(DraftState.CANCELLED)
        self.session.discard_draft()
        await self._set_state(DraftState.IDLE)
        await self.say("Cancelled.")

    async def start_edit(self, event_id: str, calendar_id: Optional[str] = None) -> None:
        """Enter COLLECTING with a draft seeded from an existing event."""
        calendar_id = calendar_id or self.config.calendar.default_calendar_id
        event = await self.dispatcher.client.get_event(event_id, calendar_id)
        self.session.start_draft(EventDraft.from_event(event, calendar_id))
        await self._set_state(DraftState.COLLECTING)
        await self.say(f"Editing \"{event.get('summary', 'event')}\". What would you like to change?")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _describe_draft(self, draft: EventDraft) -> str:
        title = "Please confirm the changes:" if draft.is_edit else "Please confirm the new event:"
        lines = [title, f"  Title: {draft.summary}"]
        if draft.is_all_day:
            lines.append(f"  Date: {draft.start.all_day.isoformat()} (all day)")
        else:
            start = draft.start.as_datetime(self.timezone).astimezone(self.timezone)
            end = draft.end.as_datetime(self.timezone).astimezone(self.timezone)
            lines.append(f"  Start: {start.strftime('%a %d %b %Y %H:%M')}")
            lines.append(f"  End: {end.strftime('%a %d %b %Y %H:%M')}")
        if draft.location:
            lines.append(f"  Location: {draft.location}")
        if draft.description:
            lines.append(f"  Description: {draft.description}")
        if draft.attendees:
            lines.append(f"  Attendees: {', '.join(draft.attendees)}")
        if self.dispatcher.wants_conference(self.session.draft_utterances):
            lines.append("  Google Meet link will be added")
        lines.append("Confirm or cancel?")
        return "\n".join(lines)

    def _describe_conflicts(self, conflicts: ConflictSet) -> str:
        lines = ["That time overlaps:"]
        for conflict in conflicts.values():
            start = conflict.start.astimezone(self.timezone).strftime("%a %d %b %H:%M")
            end = conflict.end.astimezone(self.timezone).strftime("%H:%M")
            lines.append(f"  {conflict.summary} ({start} - {end})")
        lines.append("Should I keep this time or pick another one?")
        return "\n".join(lines)
