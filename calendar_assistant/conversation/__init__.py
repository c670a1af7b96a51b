"""
Conversation Module

Turns chat input into calendar actions:
- Transcript of user, model and tool turns
- Intents and event drafts
- Draft session state

The interpreter, dispatcher and state machine are imported from their own
modules since they depend on the LLM and Google clients.
"""

from __future__ import annotations

from .draft import EventDraft
from .intents import Action, EventFields, EventTime, parse_intent
from .session import DraftState, SessionContext
from .transcript import ImagePart, ToolCall, ToolResult, TranscriptManager, Turn, TurnRole

__all__ = [
    "Action",
    "DraftState",
    "EventDraft",
    "EventFields",
    "EventTime",
    "ImagePart",
    "SessionContext",
    "ToolCall",
    "ToolResult",
    "TranscriptManager",
    "Turn",
    "TurnRole",
    "parse_intent",
]
