"""
Intent Interpreter.

Sends the transcript window, the system policy and auxiliary context to the
LLM with the function schema, and normalizes whatever comes back (a function
call, JSON text, or prose) into one validated Intent.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from loguru import logger

from ..core.errors import MalformedResponse
from ..core.llm import BaseLLMClient, ToolSpec
from .intents import Action, BaseIntent, GeneralQueryIntent, parse_intent
from .transcript import ToolCall, Turn


SYSTEM_POLICY = """You are a scheduling assistant connected to the user's Google Calendar, Google Tasks, Google Contacts and Google Docs.
Current date and time: {now} (timezone {timezone}). Resolve relative phrases such as "tomorrow" or "next Friday" against it.
Write every date-time as ISO-8601 with an explicit UTC offset. Always reply in {language}.

Rules:
- Whenever one of the functions applies, call it rather than answering in prose.
- An event needs a summary, a start and an end. If the user gave no end, leave it out; it defaults to one hour after the start.
- If required information is missing, call the function with what you know and put exactly one short question in followUpQuestion. Never ask more than one question at a time.
- A Google Meet link is added automatically when the user mentions any of: {trigger_words}. Do not ask about it.
- Attendees must be email addresses. Never invent an address. If the user names a person without an address, pass the bare name; the app will look it up.
- Use edit_calendar_event with the eventId from the context to change an existing event, and send only the fields that change.
- Use create_task for to-do items without a fixed time, and create_calendar_event for anything with a time.
- To attach an agenda document to a meeting, find the meeting first to learn its eventId.
- If the context lists conflicting events, tell the user about them and propose a different time, or ask whether to keep the time anyway.
- For anything else, answer briefly in prose.

If you cannot call functions, answer with a single JSON object instead:
{{"action": "CREATE_EVENT|EDIT_EVENT|LIST_EVENTS|CREATE_TASK|DELETE_EVENT|FIND_CONTACTS|ATTACH_DOCUMENT|GENERAL_QUERY",
 "eventDetails": {{"summary": "...", "start": {{"dateTime": "..."}}, "end": {{"dateTime": "..."}}, "attendees": []}},
 "listParameters": {{"timeMin": "...", "timeMax": "...", "query": "..."}},
 "taskDetails": {{"title": "...", "notes": "...", "due": "..."}},
 "followUpQuestion": null, "generalResponse": null}}
"""


def _string(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


_EVENT_PROPERTIES: Dict[str, Any] = {
    "summary": _string("Event title"),
    "description": _string("Event description"),
    "location": _string("Event location"),
    "startDateTime": _string("Start as ISO-8601 date-time with offset"),
    "endDateTime": _string("End as ISO-8601 date-time with offset"),
    "startDate": _string("Start date YYYY-MM-DD for all-day events"),
    "endDate": _string("Exclusive end date YYYY-MM-DD for all-day events"),
    "timeZone": _string("IANA timezone of the times"),
    "attendees": {
        "type": "array",
        "items": {"type": "string"},
        "description": "Attendee email addresses, or bare names when no address is known",
    },
    "calendarId": _string("Calendar to use"),
    "followUpQuestion": _string("One question for missing required information"),
}

TOOL_SPECS: List[ToolSpec] = [
    ToolSpec(
        name="create_calendar_event",
        description="Create a new event in Google Calendar.",
        parameters={
            "type": "object",
            "properties": {
                **_EVENT_PROPERTIES,
                "startNew": {"type": "boolean", "description": "True when this is a different event from the draft"},
            },
        },
    ),
    ToolSpec(
        name="edit_calendar_event",
        description="Change fields of an existing event in Google Calendar.",
        parameters={
            "type": "object",
            "properties": {**_EVENT_PROPERTIES, "eventId": _string("Id of the event to change")},
            "required": ["eventId"],
        },
    ),
    ToolSpec(
        name="find_calendar_events",
        description="Find events in Google Calendar by text and/or time range.",
        parameters={
            "type": "object",
            "properties": {
                "query": _string("Free text search"),
                "timeMin": _string("Range start, ISO-8601"),
                "timeMax": _string("Range end, ISO-8601"),
                "calendarId": _string("Calendar to search"),
                "maxResults": {"type": "integer", "description": "Maximum number of events"},
            },
        },
    ),
    ToolSpec(
        name="create_task",
        description="Create a new task in Google Tasks.",
        parameters={
            "type": "object",
            "properties": {
                "title": _string("Task title"),
                "notes": _string("Task notes"),
                "due": _string("Due date, ISO-8601"),
            },
            "required": ["title"],
        },
    ),
    ToolSpec(
        name="delete_calendar_event",
        description="Delete an event from Google Calendar.",
        parameters={
            "type": "object",
            "properties": {
                "eventId": _string("Id of the event to delete"),
                "summary": _string("Title of the event, for the reply"),
                "calendarId": _string("Calendar holding the event"),
            },
            "required": ["eventId"],
        },
    ),
    ToolSpec(
        name="find_contacts",
        description="Look up email addresses in the user's Google Contacts by name.",
        parameters={
            "type": "object",
            "properties": {"query": _string("Name to search for")},
            "required": ["query"],
        },
    ),
    ToolSpec(
        name="create_document_for_event",
        description="Create a Google Doc for a meeting agenda and attach it to the event.",
        parameters={
            "type": "object",
            "properties": {
                "eventId": _string("Id of the event"),
                "documentTitle": _string("Title of the document"),
                "calendarId": _string("Calendar holding the event"),
            },
            "required": ["eventId", "documentTitle"],
        },
    ),
]

ACTION_BY_FUNCTION: Dict[str, Action] = {
    "create_calendar_event": Action.CREATE_EVENT,
    "edit_calendar_event": Action.EDIT_EVENT,
    "find_calendar_events": Action.LIST_EVENTS,
    "create_task": Action.CREATE_TASK,
    "delete_calendar_event": Action.DELETE_EVENT,
    "find_contacts": Action.FIND_CONTACTS,
    "create_document_for_event": Action.ATTACH_DOCUMENT,
}

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class Interpretation:
    """One interpreter result."""
    intent: BaseIntent
    call: Optional[ToolCall] = None
    raw_text: Optional[str] = None


def _event_time(value: Any, date: Any = None, time_zone: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Accept a resource dict, an ISO string, or a bare date."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        value = value.strip()
        if len(value) == 10:
            return {"date": value}
        return {"dateTime": value, "timeZone": time_zone}
    if isinstance(date, str) and date.strip():
        return {"date": date.strip()}
    return None


def _event_from_arguments(args: Dict[str, Any]) -> Dict[str, Any]:
    time_zone = args.get("timeZone")
    return {
        "summary": args.get("summary"),
        "description": args.get("description"),
        "location": args.get("location"),
        "start": _event_time(args.get("startDateTime") or args.get("start"), args.get("startDate"), time_zone),
        "end": _event_time(args.get("endDateTime") or args.get("end"), args.get("endDate"), time_zone),
        "attendees": args.get("attendees"),
        "calendar_id": args.get("calendarId"),
        "event_id": args.get("eventId") or args.get("id"),
    }


def normalize_function_call(call: ToolCall, text: Optional[str] = None) -> Dict[str, Any]:
    """
    Map a function call onto the intent payload shape.

    Raises:
        MalformedResponse: unknown function name
    """
    action = ACTION_BY_FUNCTION.get(call.name)
    if action is None:
        raise MalformedResponse(f"unknown function {call.name!r}")

    args = call.arguments or {}
    data: Dict[str, Any] = {
        "action": action.value,
        "follow_up_question": args.get("followUpQuestion"),
        "reply": args.get("generalResponse") or text,
    }

    if action in (Action.CREATE_EVENT, Action.EDIT_EVENT):
        data["event"] = _event_from_arguments(args)
        data["start_new"] = bool(args.get("startNew", False))
    elif action == Action.LIST_EVENTS:
        data.update(
            time_min=args.get("timeMin"),
            time_max=args.get("timeMax"),
            query=args.get("query"),
            calendar_id=args.get("calendarId"),
            max_results=args.get("maxResults"),
        )
    elif action == Action.CREATE_TASK:
        data.update(title=args.get("title"), notes=args.get("notes"), due=args.get("due"), task_list=args.get("taskList"))
    elif action == Action.DELETE_EVENT:
        data.update(event_id=args.get("eventId"), calendar_id=args.get("calendarId"), summary=args.get("summary"))
    elif action == Action.FIND_CONTACTS:
        data["query"] = args.get("query")
    elif action == Action.ATTACH_DOCUMENT:
        data.update(
            event_id=args.get("eventId"),
            document_title=args.get("documentTitle"),
            calendar_id=args.get("calendarId"),
        )
    return data


def normalize_json_text(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Map the JSON-text reply shape onto the intent payload shape."""
    action = str(payload.get("action") or "").strip().upper()
    data: Dict[str, Any] = {
        "action": action,
        "follow_up_question": payload.get("followUpQuestion"),
        "reply": payload.get("generalResponse"),
    }

    details = payload.get("eventDetails") or {}
    if action in (Action.CREATE_EVENT.value, Action.EDIT_EVENT.value):
        event = _event_from_arguments(details)
        event["event_id"] = event["event_id"] or payload.get("eventId")
        data["event"] = event
        data["start_new"] = bool(payload.get("startNew", False))
    elif action == Action.LIST_EVENTS.value:
        params = payload.get("listParameters") or {}
        data.update(
            time_min=params.get("timeMin"),
            time_max=params.get("timeMax"),
            query=params.get("query"),
            calendar_id=params.get("calendarId"),
            max_results=params.get("maxResults"),
        )
    elif action == Action.CREATE_TASK.value:
        task = payload.get("taskDetails") or {}
        data.update(title=task.get("title"), notes=task.get("notes"), due=task.get("due"), task_list=task.get("taskList"))
    elif action == Action.DELETE_EVENT.value:
        data.update(
            event_id=payload.get("eventId") or details.get("eventId") or details.get("id"),
            calendar_id=payload.get("calendarId") or details.get("calendarId"),
            summary=details.get("summary"),
        )
    elif action == Action.FIND_CONTACTS.value:
        data["query"] = payload.get("query") or payload.get("contactQuery")
    elif action == Action.ATTACH_DOCUMENT.value:
        data.update(
            event_id=payload.get("eventId") or details.get("eventId"),
            document_title=payload.get("documentTitle"),
            calendar_id=payload.get("calendarId"),
        )
    return data


def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE.match(text.strip())
    return match.group(1) if match else text.strip()


class IntentInterpreter:
    """
    Turns one user turn, in context, into an Intent.

    Exactly one LLM request is made per `interpret` call.
    """

    def __init__(
        self,
        llm: BaseLLMClient,
        timezone: ZoneInfo,
        language: str = "English",
        trigger_words: Sequence[str] = ("call", "sync", "meet", "online"),
        tools: Optional[List[ToolSpec]] = None,
    ):
        self.llm = llm
        self.timezone = timezone
        self.language = language
        self.trigger_words = list(trigger_words)
        self.tools = tools if tools is not None else TOOL_SPECS

    def build_system_instruction(self, auxiliary: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None) -> str:
        """System policy plus the auxiliary JSON context."""
        now = now or datetime.now(self.timezone)
        instruction = SYSTEM_POLICY.format(
            now=now.isoformat(timespec="seconds"),
            timezone=self.timezone.key,
            language=self.language,
            trigger_words=", ".join(f'"{w}"' for w in self.trigger_words),
        )
        context = {key: value for key, value in (auxiliary or {}).items() if value}
        if context:
            instruction += "\nContext:\n" + json.dumps(context, ensure_ascii=False, default=str, indent=2)
        return instruction

    async def interpret(
        self,
        context: Sequence[Turn],
        utterance: Optional[Turn] = None,
        auxiliary: Optional[Dict[str, Any]] = None,
    ) -> Interpretation:
        """
        Interpret the latest turn.

        Args:
            context: Transcript window, oldest first
            utterance: The new turn, when it is not already the last turn of `context`
            auxiliary: Calendars, current draft, conflicts, unresolved attendee names

        Returns:
            Interpretation with a validated intent, localized to the configured timezone

        Raises:
            ProviderError: the LLM call failed
            MalformedResponse: the output could not be turned into an intent
        """
        turns = list(context)
        if utterance is not None and (not turns or turns[-1] is not utterance):
            turns.append(utterance)

        system = self.build_system_instruction(auxiliary)
        logger.debug(f"Interpreting with {len(turns)} turns of context")
        response = await self.llm.agenerate(system, turns, self.tools)

        if response.function_call is not None:
            call = response.function_call
            logger.info(f"Model called {call.name}")
            intent = parse_intent(normalize_function_call(call, response.text))
            return Interpretation(intent=intent.localized(self.timezone), call=call, raw_text=response.text)

        text = (response.text or "").strip()
        if not text:
            raise MalformedResponse("the model returned an empty reply")

        body = _strip_code_fence(text)
        if body.startswith("{"):
            try:
                payload = json.loads(body)
            except json.JSONDecodeError as e:
                raise MalformedResponse("the reply looked like JSON but could not be parsed", raw=text) from e
            if not isinstance(payload, dict):
                raise MalformedResponse("the JSON reply is not an object", raw=text)
            intent = parse_intent(normalize_json_text(payload))
            logger.info(f"Model answered with JSON action {intent.kind.value}")
            return Interpretation(intent=intent.localized(self.timezone), raw_text=text)

        return Interpretation(intent=GeneralQueryIntent(reply=text), raw_text=text)
