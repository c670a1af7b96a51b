"""
Tests for the conversation transcript.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from calendar_assistant.conversation.transcript import (
    ImagePart,
    ToolCall,
    TranscriptManager,
    Turn,
    TurnRole,
)


class TestTurn:
    """Tests for Turn constructors."""

    def test_user_turn_keeps_images(self):
        image = ImagePart(mime_type="image/png", data=b"\x89PNG")
        turn = Turn.user("what's on this poster?", (image,))

        assert turn.role == TurnRole.USER
        assert turn.text == "what's on this poster?"
        assert turn.images == (image,)

    def test_tool_result_pairs_with_call(self):
        call = ToolCall(name="find_contacts", arguments={"query": "Anna"})
        result = Turn.tool(call, {"status": "ok"})

        assert result.is_tool_result
        assert result.content.call_id == call.call_id
        assert result.content.name == "find_contacts"
        assert result.text is None

    def test_call_ids_are_unique(self):
        first = ToolCall(name="create_task", arguments={})
        second = ToolCall(name="create_task", arguments={})
        assert first.call_id != second.call_id


class TestTranscriptManager:
    """Tests for TranscriptManager."""

    def test_append_keeps_order(self):
        transcript = TranscriptManager()
        transcript.append(Turn.user("hi"))
        transcript.append(Turn.model("hello"))

        assert [t.text for t in transcript] == ["hi", "hello"]
        assert len(transcript) == 2
        assert transcript.last().text == "hello"

    def test_unbounded_context_returns_everything(self):
        transcript = TranscriptManager()
        for i in range(50):
            transcript.append(Turn.user(f"message {i}"))

        assert len(transcript.as_context()) == 50

    def test_window_is_bounded(self):
        transcript = TranscriptManager(max_context_turns=4)
        for i in range(10):
            transcript.append(Turn.user(f"message {i}"))

        window = transcript.as_context()
        assert [t.text for t in window] == ["message 6", "message 7", "message 8", "message 9"]

    def test_window_starts_at_user_turn(self):
        """A tool result is never replayed without its call."""
        transcript = TranscriptManager(max_context_turns=3)
        call = ToolCall(name="find_calendar_events", arguments={})
        transcript.append(Turn.user("what's on friday?"))
        transcript.append(Turn.model(call))
        transcript.append(Turn.tool(call, {"status": "ok"}))
        transcript.append(Turn.model("Nothing on Friday."))

        window = transcript.as_context()
        assert window[0].role == TurnRole.USER
        assert len(window) == 4

    def test_explicit_window_overrides_default(self):
        transcript = TranscriptManager(max_context_turns=100)
        for i in range(5):
            transcript.append(Turn.user(f"message {i}"))

        assert len(transcript.as_context(max_turns=2)) == 2

    def test_clear(self):
        transcript = TranscriptManager()
        transcript.append(Turn.user("hi"))
        transcript.clear()

        assert len(transcript) == 0
        assert transcript.last() is None

    def test_iteration_is_a_snapshot(self):
        transcript = TranscriptManager()
        transcript.append(Turn.user("one"))
        for _ in transcript:
            transcript.append(Turn.model("two"))

        assert len(transcript) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
