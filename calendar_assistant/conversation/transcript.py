"""
Conversation transcript.

Append-only, ordered log of turns. It is both the audit trail shown to the
user and the context replayed to the intent interpreter.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


class TurnRole(Enum):
    """Role of the turn author."""
    USER = "user"
    MODEL = "model"
    TOOL = "tool"


@dataclass(frozen=True)
class ImagePart:
    """Image bytes attached to a user turn (camera or file input)."""
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class ToolCall:
    """A structured action requested by the model."""
    name: str
    arguments: Dict[str, Any]
    call_id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a tool call, fed back to the model."""
    name: str
    call_id: str
    payload: Dict[str, Any]


TurnContent = Union[str, ToolCall, ToolResult]


@dataclass(frozen=True)
class Turn:
    """One atomic entry in the transcript."""
    role: TurnRole
    content: TurnContent
    images: Tuple[ImagePart, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def text(self) -> Optional[str]:
        """Plain text content, if this is a text turn."""
        return self.content if isinstance(self.content, str) else None

    @property
    def is_tool_call(self) -> bool:
        return isinstance(self.content, ToolCall)

    @property
    def is_tool_result(self) -> bool:
        return isinstance(self.content, ToolResult)

    @classmethod
    def user(cls, text: str, images: Tuple[ImagePart, ...] = ()) -> "Turn":
        return cls(role=TurnRole.USER, content=text, images=tuple(images))

    @classmethod
    def model(cls, content: Union[str, ToolCall]) -> "Turn":
        return cls(role=TurnRole.MODEL, content=content)

    @classmethod
    def tool(cls, call: ToolCall, payload: Dict[str, Any]) -> "Turn":
        return cls(
            role=TurnRole.TOOL,
            content=ToolResult(name=call.name, call_id=call.call_id, payload=payload),
        )


class TranscriptManager:
    """
    Owns the ordered sequence of turns.

    The full log is kept for display; `as_context` returns a bounded window
    for the model. A window always begins at a user turn so that a tool
    result is never sent without the call that produced it.
    """

    def __init__(self, max_context_turns: Optional[int] = None):
        """
        Initialize the transcript.

        Args:
            max_context_turns: Default window size for as_context (None = unbounded)
        """
        self.max_context_turns = max_context_turns
        self._turns: List[Turn] = []

    def append(self, turn: Turn) -> Turn:
        """Append a turn. Never rejects."""
        self._turns.append(turn)
        return turn

    def as_context(self, max_turns: Optional[int] = None) -> List[Turn]:
        """
        Ordered turns suitable for replay to the model.

        Args:
            max_turns: Window size; defaults to the manager's setting

        Returns:
            The most recent turns (oldest first), widened back to the nearest
            user turn
        """
        limit = max_turns if max_turns is not None else self.max_context_turns
        if not limit or len(self._turns) <= limit:
            return list(self._turns)

        start = len(self._turns) - limit
        while start > 0 and self._turns[start].role != TurnRole.USER:
            start -= 1
        return self._turns[start:]

    def clear(self) -> None:
        """Forget every turn (sign-out or reset)."""
        self._turns.clear()

    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))
