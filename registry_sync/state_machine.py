"""
Registry Sync - Submission State Machine.

============================================================
PURPOSE
============================================================
Guards submission status transitions.

STATE MACHINE:

    PENDING ──┬──────────────────► SUCCESS ──┐
              │                      ▲       │ operator retry
              └──► FAILED ──► RETRYING ◄─────┘
                     ▲           │
                     └───────────┘

Processing passes only pick up PENDING and RETRYING; SUCCESS
and FAILED are settled until an operator retry reopens them.

INVARIANTS:
- Every upload attempt ends in SUCCESS or FAILED
- FAILED stays eligible for manual retry indefinitely
- retry_count increases by exactly 1 per failed attempt
  and is never decremented

============================================================
"""

import logging
from typing import Dict, Optional, Set

from core.exceptions import InvalidTransitionError
from domain.models import MIDStatus

from .types import MIDSubmission


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[MIDStatus, Set[MIDStatus]] = {
    MIDStatus.PENDING: {
        MIDStatus.SUCCESS,
        MIDStatus.FAILED,
        MIDStatus.RETRYING,
    },
    MIDStatus.FAILED: {
        MIDStatus.RETRYING,
    },
    MIDStatus.RETRYING: {
        MIDStatus.SUCCESS,
        MIDStatus.FAILED,
    },
    # Re-report after an operator retry
    MIDStatus.SUCCESS: {
        MIDStatus.RETRYING,
    },
}


class TransitionGuard:
    """Checks transitions and explains denials."""

    @staticmethod
    def can_transition(from_status: MIDStatus, to_status: MIDStatus) -> tuple[bool, str]:
        """
        Check if transition is allowed.

        Returns:
            Tuple of (allowed, reason)
        """
        if to_status in VALID_TRANSITIONS.get(from_status, set()):
            return True, "Valid transition"

        return False, f"Invalid transition: {from_status.value} -> {to_status.value}"

    @staticmethod
    def is_settled(status: MIDStatus) -> bool:
        return status in (MIDStatus.SUCCESS, MIDStatus.FAILED)


# ============================================================
# SUBMISSION STATE MACHINE
# ============================================================

class MIDStateMachine:
    """
    Applies guarded transitions to a submission in place.

    The caller persists the submission afterwards.
    """

    def __init__(self, submission: MIDSubmission):
        self._submission = submission

    @property
    def submission(self) -> MIDSubmission:
        return self._submission

    @property
    def status(self) -> MIDStatus:
        return self._submission.status

    def can_upload(self) -> bool:
        return self._submission.is_processable

    def _transition(self, to_status: MIDStatus) -> None:
        allowed, reason = TransitionGuard.can_transition(self.status, to_status)
        if not allowed:
            raise InvalidTransitionError(
                self._submission.id,
                self.status.value,
                to_status.value,
                reason,
            )

        logger.debug(
            f"Submission {self._submission.id}: {self.status.value} -> {to_status.value}"
        )
        self._submission.status = to_status

    def mark_retrying(self) -> None:
        if self.status == MIDStatus.RETRYING:
            return
        self._transition(MIDStatus.RETRYING)

    def mark_success(self, attempted_at: str, diagnostic: str) -> None:
        self._transition(MIDStatus.SUCCESS)
        self._submission.last_attempt_at = attempted_at
        self._submission.response_data = diagnostic

    def mark_failed(self, attempted_at: str, diagnostic: Optional[str]) -> None:
        self._transition(MIDStatus.FAILED)
        self._submission.retry_count += 1
        self._submission.last_attempt_at = attempted_at
        self._submission.response_data = diagnostic
