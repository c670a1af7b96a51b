"""
Tests for the conflict checker.
"""

import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from calendar_assistant.conversation.conflicts import ConflictChecker
from calendar_assistant.core.errors import SchedulingServiceError
from fakes import google_event

BERLIN = ZoneInfo("Europe/Berlin")


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 5, 15, hour, minute, tzinfo=BERLIN)


def checker_with(items):
    client = MagicMock()
    client.list_events = AsyncMock(return_value=items)
    return ConflictChecker(client, BERLIN), client


class TestConflictChecker:
    """Tests for ConflictChecker.find_conflicts."""

    @pytest.mark.asyncio
    async def test_overlap_is_reported(self):
        checker, client = checker_with([
            google_event("standup", "Standup", "2030-05-15T10:15:00+02:00", "2030-05-15T10:45:00+02:00"),
        ])

        conflicts = await checker.find_conflicts("primary", at(10), at(11))

        assert list(conflicts) == ["standup"]
        assert conflicts["standup"].summary == "Standup"
        assert conflicts["standup"].to_context()["start"] == "2030-05-15T10:15:00+02:00"
        client.list_events.assert_awaited_once_with("primary", time_min=at(10), time_max=at(11))

    @pytest.mark.asyncio
    async def test_back_to_back_is_not_a_conflict(self):
        checker, _ = checker_with([
            google_event("before", "Before", "2030-05-15T09:00:00+02:00", "2030-05-15T10:00:00+02:00"),
            google_event("after", "After", "2030-05-15T11:00:00+02:00", "2030-05-15T12:00:00+02:00"),
        ])

        assert await checker.find_conflicts("primary", at(10), at(11)) == {}

    @pytest.mark.asyncio
    async def test_edited_event_is_excluded(self):
        checker, _ = checker_with([
            google_event("self", "Planning", "2030-05-15T10:00:00+02:00", "2030-05-15T11:00:00+02:00"),
        ])

        assert await checker.find_conflicts("primary", at(10, 30), at(11, 30), exclude_event_id="self") == {}

    @pytest.mark.asyncio
    async def test_cancelled_events_are_ignored(self):
        checker, _ = checker_with([
            google_event("gone", "Old", "2030-05-15T10:00:00+02:00", "2030-05-15T11:00:00+02:00", status="cancelled"),
        ])

        assert await checker.find_conflicts("primary", at(10), at(11)) == {}

    @pytest.mark.asyncio
    async def test_all_day_event_overlaps_timed_range(self):
        checker, _ = checker_with([
            {"id": "offsite", "summary": "Offsite", "start": {"date": "2030-05-15"}, "end": {"date": "2030-05-16"}},
        ])

        conflicts = await checker.find_conflicts("primary", at(10), at(11))
        assert "offsite" in conflicts

    @pytest.mark.asyncio
    async def test_empty_range_skips_lookup(self):
        checker, client = checker_with([])

        assert await checker.find_conflicts("primary", at(11), at(10)) == {}
        client.list_events.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lookup_failure_fails_open(self):
        client = MagicMock()
        client.list_events = AsyncMock(side_effect=SchedulingServiceError("Could not list events"))
        checker = ConflictChecker(client, BERLIN)

        assert await checker.find_conflicts("primary", at(10), at(11)) == {}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
