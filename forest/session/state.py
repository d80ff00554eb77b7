"""
Session model — the five-state lifecycle and the FocusSession record.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from ..timing.clock import local_now


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABANDONED)

    @property
    def allowed_transitions(self) -> FrozenSet["SessionState"]:
        return _TRANSITIONS[self]

    def can_transition(self, to: "SessionState") -> bool:
        return to in _TRANSITIONS[self]


_TRANSITIONS = {
    SessionState.IDLE: frozenset({SessionState.ACTIVE}),
    SessionState.ACTIVE: frozenset(
        {SessionState.PAUSED, SessionState.COMPLETED, SessionState.ABANDONED}
    ),
    SessionState.PAUSED: frozenset({SessionState.ACTIVE, SessionState.ABANDONED}),
    SessionState.COMPLETED: frozenset(),
    SessionState.ABANDONED: frozenset(),
}


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class FocusSession:
    """One attempt at a focus interval. Durations are in seconds."""
    id: str = field(default_factory=_new_id)
    start_time: datetime = field(default_factory=local_now)
    end_time: Optional[datetime] = None
    state: SessionState = SessionState.ACTIVE
    active_duration: float = 0.0
    paused_duration: float = 0.0
    created_at: datetime = field(default_factory=local_now)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def can_transition(self, to: SessionState) -> bool:
        return self.state.can_transition(to)

    def transition_to(self, to: SessionState, at: Optional[datetime] = None) -> bool:
        """
        Move to *to* if the lifecycle allows it. Entering a terminal state
        stamps end_time. Returns False (and changes nothing) otherwise.
        """
        if not self.can_transition(to):
            return False
        self.state = to
        if to.is_terminal:
            self.end_time = at or local_now()
        return True
