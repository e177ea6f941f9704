"""
Registry Sync - Types.

============================================================
PURPOSE
============================================================
Submission records, attempt outcomes and pass results.

MIDSubmission is owned exclusively by the sync engine: one
per policy that has ever been queued, never deleted.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from domain.models import MIDStatus


# Statuses picked up by a processing pass
PROCESSABLE_STATUSES = frozenset({MIDStatus.PENDING, MIDStatus.RETRYING})


# ============================================================
# SUBMISSION
# ============================================================

@dataclass
class MIDSubmission:
    """A policy queued for reporting to the national registry."""

    id: str
    """Opaque unique submission id."""

    policy_id: str
    """Policy being reported; unique across submissions."""

    vrm: str
    """Vehicle registration mark."""

    status: MIDStatus
    """Current lifecycle status."""

    submitted_at: str
    """ISO timestamp of enqueue."""

    retry_count: int = 0
    """Failed attempts so far; never decreases."""

    last_attempt_at: Optional[str] = None
    """ISO timestamp of the latest attempt."""

    response_data: Optional[str] = None
    """Diagnostic payload from the latest attempt."""

    @property
    def is_processable(self) -> bool:
        return self.status in PROCESSABLE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "policyId": self.policy_id,
            "vrm": self.vrm,
            "status": self.status.value,
            "submittedAt": self.submitted_at,
            "retryCount": self.retry_count,
        }
        if self.last_attempt_at is not None:
            data["lastAttemptAt"] = self.last_attempt_at
        if self.response_data is not None:
            data["responseData"] = self.response_data
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MIDSubmission":
        return cls(
            id=data["id"],
            policy_id=data["policyId"],
            vrm=data.get("vrm", ""),
            status=MIDStatus(data.get("status", MIDStatus.PENDING.value)),
            submitted_at=data.get("submittedAt", ""),
            retry_count=int(data.get("retryCount", 0)),
            last_attempt_at=data.get("lastAttemptAt"),
            response_data=data.get("responseData"),
        )


# ============================================================
# ATTEMPT OUTCOME
# ============================================================

@dataclass
class UploadOutcome:
    """Result of one registry upload attempt."""

    submission: MIDSubmission
    """Submission as persisted after the attempt."""

    success: bool
    """Whether the registry accepted the record."""

    diagnostic: str
    """Gateway diagnostic recorded in response_data."""

    policy_updated: bool = False
    """Whether the linked policy's midStatus was set to Success."""


# ============================================================
# PASS RESULT
# ============================================================

@dataclass
class ProcessQueueResult:
    """Result of one process_queue() invocation."""

    run_id: str
    """Unique pass identifier."""

    started_at: datetime
    """When the pass started."""

    completed_at: Optional[datetime] = None
    """When the pass finished."""

    skipped: bool = False
    """True when another pass held the single-flight guard."""

    outcomes: List[UploadOutcome] = field(default_factory=list)
    """Attempts in the order they ran."""

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "skipped": self.skipped,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "outcomes": [
                {
                    "submissionId": o.submission.id,
                    "status": o.submission.status.value,
                    "retryCount": o.submission.retry_count,
                    "diagnostic": o.diagnostic,
                }
                for o in self.outcomes
            ],
        }


@dataclass
class SubmissionStats:
    """Counts shown on the MID operations page."""

    total: int = 0
    success: int = 0
    failed: int = 0
    pending: int = 0
    """Pending plus Retrying."""

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "pending": self.pending,
        }
