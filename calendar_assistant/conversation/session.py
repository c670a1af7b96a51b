"""
Session context.

Holds the only shared mutable conversation state: the draft and its state,
the conflict and attendee bookkeeping that goes with it, and whether a
Google session is active. `reset()` replaces everything at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from loguru import logger

from .draft import EventDraft


class DraftState(Enum):
    """States of the draft and confirmation flow."""
    IDLE = "idle"
    COLLECTING = "collecting"
    CONFLICT_CHECK = "conflict_check"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMMITTING = "committing"
    CANCELLED = "cancelled"


@dataclass
class SessionContext:
    """Everything a sign-out must discard."""
    state: DraftState = DraftState.IDLE
    draft: Optional[EventDraft] = None
    draft_utterances: List[str] = field(default_factory=list)
    acknowledged_conflicts: Set[str] = field(default_factory=set)
    pending_attendee_names: List[str] = field(default_factory=list)
    calendars: List[Dict[str, str]] = field(default_factory=list)
    signed_in: bool = False
    busy: bool = False
    # Bumped by every reset; a cycle started under an older value is stale
    generation: int = 0

    @property
    def has_live_draft(self) -> bool:
        return self.draft is not None and self.state in (
            DraftState.COLLECTING,
            DraftState.CONFLICT_CHECK,
            DraftState.AWAITING_CONFIRMATION,
        )

    @property
    def edit_event_id(self) -> Optional[str]:
        return self.draft.source_event_id if self.draft else None

    def start_draft(self, draft: EventDraft) -> None:
        """Replace any previous draft (last writer wins)."""
        if self.draft is not None and not self.draft.is_empty:
            logger.info("Discarding previous draft for a new one")
        self.draft = draft
        self.draft_utterances = []
        self.acknowledged_conflicts = set()
        self.pending_attendee_names = []

    def discard_draft(self) -> None:
        self.draft = None
        self.draft_utterances = []
        self.acknowledged_conflicts = set()
        self.pending_attendee_names = []

    def reset(self) -> None:
        """Return to a fresh session in one step."""
        fresh = SessionContext(generation=self.generation + 1)
        self.__dict__.update(fresh.__dict__)
        logger.info(f"Session reset (generation {self.generation})")

    def is_current(self, generation: int) -> bool:
        return self.generation == generation
