"""
Conflict Checker.

Finds existing events that overlap a proposed time range.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from loguru import logger

from ..core.errors import SchedulingServiceError
from ..tools.agenda import parse_events
from ..tools.scheduling import SchedulingClient


@dataclass(frozen=True)
class ConflictingEvent:
    """An existing event overlapping the candidate range."""
    event_id: str
    summary: str
    start: datetime
    end: datetime

    def to_context(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "summary": self.summary,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }


ConflictSet = Dict[str, ConflictingEvent]


class ConflictChecker:
    """
    Overlap queries against the Scheduling Service.

    Fails open: a failed lookup is logged and reported as no conflicts.
    """

    def __init__(self, client: SchedulingClient, timezone: ZoneInfo):
        self.client = client
        self.timezone = timezone

    async def find_conflicts(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        exclude_event_id: Optional[str] = None,
    ) -> ConflictSet:
        """
        Events intersecting [start, end).

        Args:
            calendar_id: Calendar to check
            start: Candidate start (aware)
            end: Candidate end (aware, exclusive)
            exclude_event_id: Event being edited

        Returns:
            Mapping of event id to the conflicting event
        """
        if end <= start:
            return {}

        try:
            items = await self.client.list_events(calendar_id, time_min=start, time_max=end)
        except SchedulingServiceError as e:
            logger.warning(f"Conflict check skipped: {e.message}")
            return {}

        conflicts: ConflictSet = {}
        for event in parse_events(items, self.timezone, calendar_id):
            if event.id == exclude_event_id or event.status == "cancelled":
                continue
            # Back-to-back events touch but do not overlap
            if event.start < end and start < event.end:
                conflicts[event.id] = ConflictingEvent(event.id, event.summary, event.start, event.end)

        if conflicts:
            logger.info(f"Found {len(conflicts)} conflicting event(s)")
        return conflicts
