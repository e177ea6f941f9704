"""
Audit Ledger - Models.

============================================================
PURPOSE
============================================================
Immutable audit records and the fixed action vocabulary.

Entries are persisted with the portal's original field names
(userId, userEmail, targetId, ipAddress) so existing audit
exports stay readable.

============================================================
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional


# ============================================================
# ACTION VOCABULARY
# ============================================================

class AuditAction(str, Enum):
    """Named events recorded by the ledger."""

    # Identity
    AUTH_SUCCESS = "AUTH_SUCCESS"
    AUTH_FAILURE = "AUTH_FAILURE"
    AUTH_BLOCKED = "AUTH_BLOCKED"
    AUTH_LOGOUT = "AUTH_LOGOUT"
    REGISTRATION_SUCCESS = "REGISTRATION_SUCCESS"

    # Administrative user actions
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"
    ADMIN_PURGE = "ADMIN_PURGE"
    ADMIN_BULK_ACTION = "ADMIN_BULK_ACTION"

    # Policies, payments, claims
    POLICY_ISSUED = "POLICY_ISSUED"
    POLICY_STATUS_CHANGE = "POLICY_STATUS_CHANGE"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    PAYMENT_STATUS_CHANGE = "PAYMENT_STATUS_CHANGE"
    CLAIM_SUBMITTED = "CLAIM_SUBMITTED"
    CLAIM_STATUS_CHANGE = "CLAIM_STATUS_CHANGE"

    # Customer contact
    INQUIRY_SUBMITTED = "INQUIRY_SUBMITTED"
    INQUIRY_STATUS_CHANGE = "INQUIRY_STATUS_CHANGE"
    DOCUMENT_DOWNLOAD = "DOCUMENT_DOWNLOAD"

    # Registry sync
    MID_QUEUED = "MID_QUEUED"
    MID_TX_SUCCESS = "MID_TX_SUCCESS"
    MID_TX_FAILURE = "MID_TX_FAILURE"


# ============================================================
# ACTOR
# ============================================================

@dataclass(frozen=True)
class Actor:
    """Identity recorded as the author of an entry."""

    id: str
    email: str


ActorProvider = Callable[[], Optional[Actor]]


# ============================================================
# AUDIT ENTRY
# ============================================================

@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable audit record."""

    id: str
    timestamp: datetime
    actor_id: str
    actor_email: str
    action: str
    details: str
    ip_address: str
    target_id: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "userId": self.actor_id,
            "userEmail": self.actor_email,
            "action": self.action,
            "details": self.details,
            "ipAddress": self.ip_address,
        }
        if self.target_id is not None:
            data["targetId"] = self.target_id
        if self.reason is not None:
            data["reason"] = self.reason
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditLogEntry":
        return cls(
            id=data["id"],
            timestamp=datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00")),
            actor_id=data.get("userId", ""),
            actor_email=data.get("userEmail", ""),
            action=data["action"],
            details=data.get("details", ""),
            ip_address=data.get("ipAddress", ""),
            target_id=data.get("targetId"),
            reason=data.get("reason"),
        )
