"""Session state owned by the session engine."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from camera.compliance import Zone

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of a monitored session."""
    IDLE = "idle"
    GRACE = "grace"
    MONITORING = "monitoring"
    ATTENTION_CHECK = "attention_check"
    PENALIZED = "penalized"
    COMPLETE = "complete"


ACTIVE_STATES = frozenset({
    SessionState.GRACE,
    SessionState.MONITORING,
    SessionState.ATTENTION_CHECK,
    SessionState.PENALIZED,
})


@dataclass
class Session:
    """
    Mutable state of one session.

    Only core.engine.SessionEngine writes to it. `epoch` increases on every
    state transition and is what scheduled tasks are checked against; it is
    never reset, so tasks from a previous session can't match a new one.
    """
    zone: Zone
    state: SessionState = SessionState.IDLE
    remaining_seconds: int = 0
    bound_seconds: Optional[int] = None
    violation_count: int = 0
    epoch: int = 0
    grace_remaining: int = 0
    planned_seconds: int = 0
    penalty_seconds_added: int = 0
    attention_checks_passed: int = 0
    attention_checks_failed: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def begin(self, duration_seconds: int, bound_seconds: Optional[int],
              grace_seconds: int) -> None:
        """Reset the per-session fields for a fresh start."""
        self.remaining_seconds = duration_seconds
        self.planned_seconds = duration_seconds
        self.bound_seconds = bound_seconds
        self.grace_remaining = grace_seconds
        self.violation_count = 0
        self.penalty_seconds_added = 0
        self.attention_checks_passed = 0
        self.attention_checks_failed = 0
        self.start_time = datetime.now()
        self.end_time = None

    def advance_epoch(self, new_state: SessionState) -> int:
        """
        Move to new_state and start a new epoch.

        Returns:
            The epoch that just ended.
        """
        previous = self.epoch
        self.epoch += 1
        self.state = new_state
        return previous

    def add_time(self, seconds: int) -> None:
        """Add penalty seconds. Callers clamp against the bound first."""
        if seconds <= 0:
            return
        self.remaining_seconds += seconds
        self.penalty_seconds_added += seconds
        if self.bound_seconds is not None and self.remaining_seconds > self.bound_seconds:
            # clamp_penalty() should make this unreachable
            logger.warning(
                f"Remaining time {self.remaining_seconds}s exceeded bound "
                f"{self.bound_seconds}s, capping"
            )
            self.remaining_seconds = self.bound_seconds

    def reset(self) -> None:
        """Clear the countdown and counters (the epoch survives)."""
        self.remaining_seconds = 0
        self.grace_remaining = 0
        self.violation_count = 0
        self.bound_seconds = None
        if self.start_time and not self.end_time:
            self.end_time = datetime.now()
