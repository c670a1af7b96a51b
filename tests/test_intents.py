"""
Tests for intent parsing and event time handling.
"""

import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

BERLIN = ZoneInfo("Europe/Berlin")


class TestParseIntent:
    """Tests for parse_intent."""

    def test_action_is_case_insensitive(self):
        from calendar_assistant.conversation.intents import Action, CreateTaskIntent, parse_intent

        intent = parse_intent({"action": "create_task", "title": "Buy milk"})

        assert isinstance(intent, CreateTaskIntent)
        assert intent.kind == Action.CREATE_TASK
        assert intent.title == "Buy milk"

    def test_unknown_action_is_rejected(self):
        from calendar_assistant.conversation.intents import parse_intent
        from calendar_assistant.core.errors import MalformedResponse

        with pytest.raises(MalformedResponse):
            parse_intent({"action": "BOOK_FLIGHT"})

    def test_missing_action_is_rejected(self):
        from calendar_assistant.conversation.intents import parse_intent
        from calendar_assistant.core.errors import MalformedResponse

        with pytest.raises(MalformedResponse):
            parse_intent({"title": "Buy milk"})

    def test_invalid_fields_are_rejected(self):
        from calendar_assistant.conversation.intents import parse_intent
        from calendar_assistant.core.errors import MalformedResponse

        with pytest.raises(MalformedResponse):
            parse_intent({"action": "LIST_EVENTS", "max_results": 0})

    def test_blank_strings_become_none(self):
        from calendar_assistant.conversation.intents import parse_intent

        intent = parse_intent({"action": "FIND_CONTACTS", "query": "   "})
        assert intent.query is None

    def test_date_only_due_becomes_midnight(self):
        from calendar_assistant.conversation.intents import parse_intent

        intent = parse_intent({"action": "CREATE_TASK", "title": "Report", "due": "2030-05-20"})
        assert intent.due == datetime(2030, 5, 20, 0, 0)

    def test_general_query_keeps_reply(self):
        from calendar_assistant.conversation.intents import GeneralQueryIntent, parse_intent

        intent = parse_intent({"action": "GENERAL_QUERY", "reply": "Hello!"})
        assert isinstance(intent, GeneralQueryIntent)
        assert intent.reply == "Hello!"


class TestEventFields:
    """Tests for the partial event payload."""

    def test_attendees_accept_strings_and_objects(self):
        from calendar_assistant.conversation.intents import EventFields

        fields = EventFields(attendees=["a@example.com", {"email": "b@example.com"}, "  ", "Anna"])
        assert fields.attendees == ["a@example.com", "b@example.com", "Anna"]

    def test_comma_separated_attendees(self):
        from calendar_assistant.conversation.intents import EventFields

        fields = EventFields(attendees="a@example.com, b@example.com")
        assert fields.attendees == ["a@example.com", "b@example.com"]

    def test_supplied_only_lists_present_fields(self):
        from calendar_assistant.conversation.intents import EventFields

        fields = EventFields(location="Room 5")
        assert fields.supplied() == {"location": "Room 5"}


class TestEventTime:
    """Tests for EventTime."""

    def test_requires_date_or_datetime(self):
        from pydantic import ValidationError

        from calendar_assistant.conversation.intents import EventTime

        with pytest.raises(ValidationError):
            EventTime()

    def test_localized_attaches_timezone(self):
        from calendar_assistant.conversation.intents import EventTime

        naive = EventTime(dateTime="2030-05-15T10:00:00")
        local = naive.localized(BERLIN)

        assert local.date_time == datetime(2030, 5, 15, 10, 0, tzinfo=BERLIN)
        assert local.to_resource() == {"dateTime": "2030-05-15T10:00:00+02:00", "timeZone": "Europe/Berlin"}

    def test_localized_keeps_explicit_offset(self):
        from calendar_assistant.conversation.intents import EventTime

        aware = EventTime(dateTime="2030-05-15T10:00:00+00:00")
        assert aware.localized(BERLIN).date_time.utcoffset() == timedelta(0)

    def test_all_day(self):
        from calendar_assistant.conversation.intents import EventTime

        day = EventTime(date="2030-05-15")

        assert day.is_all_day
        assert day.as_datetime(BERLIN) == datetime(2030, 5, 15, tzinfo=BERLIN)
        assert day.to_resource() == {"date": "2030-05-15"}
        assert day.shifted(timedelta(hours=1)).all_day == date(2030, 5, 16)

    def test_from_resource_handles_zulu(self):
        from calendar_assistant.conversation.intents import EventTime

        parsed = EventTime.from_resource({"dateTime": "2030-05-15T08:00:00Z"})
        assert parsed.date_time.utcoffset() == timedelta(0)

    def test_from_resource_empty(self):
        from calendar_assistant.conversation.intents import EventTime

        assert EventTime.from_resource(None) is None
        assert EventTime.from_resource({}) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
