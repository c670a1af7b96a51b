"""
Calendar Assistant - session facade.

Wires the conversation core together and is the propagation boundary:
every failure below this point ends as a transcript entry, never as an
exception in the view.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set

from loguru import logger

from .core.config import AssistantConfig, config
from .core.errors import AssistantError, MalformedResponse, SchedulingServiceError, user_message
from .core.events import EventBus, EventType
from .core.llm import BaseLLMClient
from .conversation.conflicts import ConflictChecker
from .conversation.dispatcher import ActionDispatcher
from .conversation.draft import EventDraft
from .conversation.interpreter import IntentInterpreter
from .conversation.session import DraftState, SessionContext
from .conversation.state_machine import DraftStateMachine
from .conversation.transcript import ImagePart, TranscriptManager, Turn, TurnRole
from .tools.agenda import CalendarEvent, day_events, month_event_days, upcoming_across
from .tools.identity import GoogleIdentity
from .tools.scheduling import SchedulingClient

BUSY_NOTICE = "Still working on the previous request, please wait."


@dataclass
class AssistantReply:
    """Turns appended by one interaction cycle."""
    turns: List[Turn] = field(default_factory=list)
    state: DraftState = DraftState.IDLE
    notice: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n".join(t.text for t in self.turns if t.text and t.role == TurnRole.MODEL)


class CalendarAssistant:
    """
    Conversational calendar assistant for one user session.

    Input is processed one cycle at a time; input that arrives while a cycle
    is in flight is rejected with a notice and not interpreted.
    """

    def __init__(
        self,
        llm: BaseLLMClient,
        client: SchedulingClient,
        assistant_config: Optional[AssistantConfig] = None,
        identity: Optional[GoogleIdentity] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize the assistant.

        Args:
            llm: Client for the configured LLM provider
            client: Scheduling Service client (may start signed out)
            assistant_config: Configuration; the global one by default
            identity: Google identity used for sign-in and sign-out
            event_bus: Bus the view subscribes to
        """
        self.config = assistant_config or config()
        self.event_bus = event_bus or EventBus()
        self.client = client
        self.identity = identity
        self.session = SessionContext(signed_in=client.is_available)
        self.transcript = TranscriptManager(self.config.llm.max_context_turns)
        self._cycle: Optional[asyncio.Future] = None

        tz = self.config.tz
        self.interpreter = IntentInterpreter(
            llm,
            tz,
            language=self.config.general.language,
            trigger_words=self.config.calendar.conference_trigger_words,
        )
        self.conflict_checker = ConflictChecker(client, tz)
        self.dispatcher = ActionDispatcher(client, tz, self.config.calendar, self.event_bus)
        self.state_machine = DraftStateMachine(
            session=self.session,
            transcript=self.transcript,
            interpreter=self.interpreter,
            dispatcher=self.dispatcher,
            conflict_checker=self.conflict_checker,
            event_bus=self.event_bus,
            config=self.config,
        )
        logger.info(f"Calendar assistant ready (timezone {tz.key})")

    @property
    def state(self) -> DraftState:
        return self.session.state

    @property
    def draft(self) -> Optional[EventDraft]:
        return self.session.draft

    @property
    def busy(self) -> bool:
        return self.session.busy

    async def _set_busy(self, busy: bool) -> None:
        self.session.busy = busy
        await self.event_bus.publish(EventType.BUSY_CHANGED, busy=busy)

    async def _run(self, action: Callable[[], Awaitable[Any]]) -> AssistantReply:
        """
        Run one cycle under the busy flag.

        The cycle runs as its own task so that sign-out can cancel it; a
        cycle whose session was reset meanwhile returns no turns.
        """
        if self.session.busy:
            logger.warning("Input rejected while a request is in flight")
            return AssistantReply(state=self.session.state, notice=BUSY_NOTICE)

        generation = self.session.generation
        start = len(self.transcript)
        await self._set_busy(True)
        if not self.session.is_current(generation):
            return AssistantReply(state=self.session.state)

        cycle = asyncio.ensure_future(self._report_failures(action))
        self._cycle = cycle
        try:
            await cycle
        except asyncio.CancelledError:
            if self.session.is_current(generation):
                raise
            logger.info("Request abandoned after sign-out")
            return AssistantReply(state=self.session.state)
        finally:
            if self.session.is_current(generation):
                self._cycle = None
                await self._set_busy(False)

        return AssistantReply(turns=list(self.transcript)[start:], state=self.session.state)

    async def _report_failures(self, action: Callable[[], Awaitable[Any]]) -> None:
        """Turn failures into transcript entries."""
        try:
            await action()
        except MalformedResponse as e:
            logger.warning(f"Malformed model output: {e.message} | raw={e.raw!r}")
            await self.state_machine.say(e.user_message())
        except AssistantError as e:
            logger.warning(f"{e.category}: {e.message}")
            await self.state_machine.say(e.user_message())
        except Exception as e:
            await self.state_machine.say(user_message(e))

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def handle_user_input(self, text: str, images: Sequence[ImagePart] = ()) -> AssistantReply:
        """
        Process one user utterance (text and/or images).

        Returns:
            The turns appended by this cycle
        """
        text = (text or "").strip()
        if not text and not images:
            return AssistantReply(state=self.session.state)

        async def cycle() -> None:
            turn = await self.state_machine.record(Turn.user(text, tuple(images)))
            await self.state_machine.on_user_turn(turn)

        return await self._run(cycle)

    async def confirm(self) -> AssistantReply:
        return await self._run(self.state_machine.confirm)

    async def cancel(self) -> AssistantReply:
        return await self._run(self.state_machine.cancel)

    async def start_edit(self, event_id: str, calendar_id: Optional[str] = None) -> AssistantReply:
        """Open an existing event for editing."""
        return await self._run(lambda: self.state_machine.start_edit(event_id, calendar_id))

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def sign_in(self, interactive: bool = True) -> bool:
        """
        Connect the Google services.

        Returns:
            True when signed in
        """
        if self.identity is None:
            return self.client.is_available

        credentials = await self.identity.sign_in(interactive)
        if credentials is None:
            return False
        self.client.attach(credentials)
        self.session.signed_in = True
        await self.refresh_calendars()
        return True

    async def sign_out(self) -> None:
        """
        Discard draft and transcript in one step, then revoke the session.

        A request still in flight is cancelled before the reset, so it cannot
        write into the fresh session.
        """
        if self._cycle is not None and not self._cycle.done():
            logger.info("Cancelling the request in flight")
            self._cycle.cancel()
        self._cycle = None
        was_busy = self.session.busy
        self.client.detach()
        self.session.reset()
        self.transcript.clear()

        if was_busy:
            await self.event_bus.publish(EventType.BUSY_CHANGED, busy=False)
        if self.identity is not None:
            await self.identity.sign_out()
        await self.event_bus.publish(EventType.SESSION_RESET)

    async def refresh_calendars(self) -> None:
        """Load the calendar list offered to the model."""
        try:
            items = await self.client.list_calendars()
        except SchedulingServiceError as e:
            logger.warning(f"Could not load calendars: {e.message}")
            return
        self.session.calendars = [
            {"id": c["id"], "summary": c.get("summary", c["id"]), "primary": bool(c.get("primary"))}
            for c in items
        ]
        logger.info(f"Loaded {len(self.session.calendars)} calendar(s)")

    # ------------------------------------------------------------------
    # Calendar view
    # ------------------------------------------------------------------

    def _calendar_ids(self) -> List[str]:
        return [c["id"] for c in self.session.calendars] or [self.config.calendar.default_calendar_id]

    async def upcoming(self) -> List[CalendarEvent]:
        return await upcoming_across(
            self.client,
            self._calendar_ids(),
            self.config.tz,
            max_results=self.config.calendar.upcoming_max_results,
        )

    async def month_days(self, year: int, month: int, calendar_id: Optional[str] = None) -> Set[int]:
        return await month_event_days(
            self.client,
            calendar_id or self.config.calendar.default_calendar_id,
            year,
            month,
            self.config.tz,
        )

    async def day(self, day: date, calendar_id: Optional[str] = None) -> List[CalendarEvent]:
        return await day_events(
            self.client,
            calendar_id or self.config.calendar.default_calendar_id,
            day,
            self.config.tz,
        )
