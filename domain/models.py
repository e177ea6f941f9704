"""
Domain - Entity Models.

============================================================
PURPOSE
============================================================
Users, policies, payments, claims and customer contact records
held by the Domain State Store.

Records are persisted as JSON dicts with the portal's camelCase
field names; to_dict()/from_dict() are the only translation
points. Unknown persisted fields are preserved in ``extra``.

============================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "Active"
    BLOCKED = "Blocked"
    SUSPENDED = "Suspended"
    FROZEN = "Frozen"
    DELETED = "Deleted"
    LOCKED = "Locked"


class BulkUserAction(str, Enum):
    """Operator bulk commands from the client hub."""

    BLOCK = "Block"
    SUSPEND = "Suspend"
    ACTIVATE = "Activate"
    DELETE = "Delete"


class PolicyStatus(str, Enum):
    ACTIVE = "Active"
    FROZEN = "Frozen"
    CANCELLED = "Cancelled"
    TERMINATED = "Terminated"
    EXPIRED = "Expired"
    RENEWED = "Renewed"


class MIDStatus(str, Enum):
    """Registry reporting status of a submission (and mirrored on its policy)."""

    PENDING = "Pending"
    RETRYING = "Retrying"
    SUCCESS = "Success"
    FAILED = "Failed"


class PaymentType(str, Enum):
    FULL_PAYMENT = "Full Payment"
    MONTHLY_INSTALLMENT = "Monthly Installment"


class PaymentStatus(str, Enum):
    PAID_IN_FULL = "Paid in Full"
    PAYMENT_SUCCESSFUL = "Payment Successful"
    PENDING = "Pending"
    DIRECT_REPUBLIC_SET_UP = "Direct Republic Set Up"
    DISPUTED = "Disputed"
    REFUNDED = "Refunded"
    OVERDUE = "Overdue"


class ClaimStatus(str, Enum):
    UNDER_REVIEW = "Under Review"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    DOCS_REQUESTED = "Docs Requested"


class InquiryType(str, Enum):
    GENERAL = "General"
    QUOTE = "Quote"
    PAYMENT = "Payment"
    CLAIM = "Claim"
    TECHNICAL = "Technical"
    FEEDBACK = "Feedback"


class InquiryStatus(str, Enum):
    UNREAD = "Unread"
    READ = "Read"
    REPLIED = "Replied"


def _pop_known(data: Dict[str, Any], known: tuple) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k not in known}


# ============================================================
# USER
# ============================================================

@dataclass
class User:
    """Portal account. Credentials belong to the identity provider, not here."""

    id: str
    name: str
    email: str
    created_at: str
    role: UserRole = UserRole.CUSTOMER
    status: UserStatus = UserStatus.ACTIVE
    phone: Optional[str] = None
    last_login: Optional[str] = None
    is_locked: bool = False
    internal_notes: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _FIELDS = (
        "id", "name", "email", "createdAt", "role", "status", "phone",
        "lastLogin", "isLocked", "internalNotes", "password",
    )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "createdAt": self.created_at,
            "role": self.role.value,
            "status": self.status.value,
            "isLocked": self.is_locked,
        })
        if self.phone is not None:
            data["phone"] = self.phone
        if self.last_login is not None:
            data["lastLogin"] = self.last_login
        if self.internal_notes is not None:
            data["internalNotes"] = self.internal_notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            email=data.get("email", ""),
            created_at=data.get("createdAt", ""),
            role=UserRole(data.get("role", UserRole.CUSTOMER.value)),
            status=UserStatus(data.get("status", UserStatus.ACTIVE.value)),
            phone=data.get("phone"),
            last_login=data.get("lastLogin"),
            is_locked=bool(data.get("isLocked", False)),
            internal_notes=data.get("internalNotes"),
            # Never carry a stored password into the model
            extra=_pop_known(data, cls._FIELDS),
        )


# ============================================================
# POLICY
# ============================================================

@dataclass
class Policy:
    """An issued insurance policy."""

    id: str
    user_id: str
    type: str
    premium: str
    status: PolicyStatus
    details: Dict[str, Any] = field(default_factory=dict)
    mid_status: Optional[MIDStatus] = None
    risk_flag: bool = False
    notes: Optional[str] = None
    pdf_url: Optional[str] = None

    @property
    def vrm(self) -> Optional[str]:
        return self.details.get("vrm")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "premium": self.premium,
            "status": self.status.value,
            "details": dict(self.details),
            "riskFlag": self.risk_flag,
        }
        if self.mid_status is not None:
            data["midStatus"] = self.mid_status.value
        if self.notes is not None:
            data["notes"] = self.notes
        if self.pdf_url is not None:
            data["pdfUrl"] = self.pdf_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Policy":
        mid = data.get("midStatus")
        return cls(
            id=data["id"],
            user_id=data.get("userId", ""),
            type=data.get("type", ""),
            premium=data.get("premium", ""),
            status=PolicyStatus(data.get("status", PolicyStatus.ACTIVE.value)),
            details=dict(data.get("details") or {}),
            mid_status=MIDStatus(mid) if mid else None,
            risk_flag=bool(data.get("riskFlag", False)),
            notes=data.get("notes"),
            pdf_url=data.get("pdfUrl"),
        )


# ============================================================
# PAYMENT
# ============================================================

@dataclass
class PolicyDetails:
    """Vehicle and cover summary printed on a payment record."""

    vrm: str
    make: str = ""
    model: str = ""
    cover_level: str = ""
    insurer: str = "SwiftPolicy Services"
    renewal_date: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vrm": self.vrm,
            "make": self.make,
            "model": self.model,
            "coverLevel": self.cover_level,
            "insurer": self.insurer,
            "renewalDate": self.renewal_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PolicyDetails":
        return cls(
            vrm=data.get("vrm", ""),
            make=data.get("make", ""),
            model=data.get("model", ""),
            cover_level=data.get("coverLevel", ""),
            insurer=data.get("insurer", "SwiftPolicy Services"),
            renewal_date=data.get("renewalDate", ""),
        )


@dataclass
class PaymentRecord:
    id: str
    policy_id: str
    user_id: str
    date: str
    description: str
    amount: str
    type: PaymentType
    status: PaymentStatus
    method: str
    reference: str
    policy_details: PolicyDetails
    bank_transaction_id: Optional[str] = None
    dispute: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "policyId": self.policy_id,
            "userId": self.user_id,
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "type": self.type.value,
            "status": self.status.value,
            "method": self.method,
            "reference": self.reference,
            "policyDetails": self.policy_details.to_dict(),
            "dispute": self.dispute,
        }
        if self.bank_transaction_id is not None:
            data["bankTransactionId"] = self.bank_transaction_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentRecord":
        return cls(
            id=data["id"],
            policy_id=data.get("policyId", ""),
            user_id=data.get("userId", ""),
            date=data.get("date", ""),
            description=data.get("description", ""),
            amount=data.get("amount", ""),
            type=PaymentType(data.get("type", PaymentType.FULL_PAYMENT.value)),
            status=PaymentStatus(data.get("status", PaymentStatus.PENDING.value)),
            method=data.get("method", ""),
            reference=data.get("reference", ""),
            policy_details=PolicyDetails.from_dict(data.get("policyDetails") or {}),
            bank_transaction_id=data.get("bankTransactionId"),
            dispute=bool(data.get("dispute", False)),
        )


# ============================================================
# CLAIM
# ============================================================

@dataclass
class Claim:
    id: str
    policy_id: str
    user_id: str
    date: str
    type: str
    description: str
    status: ClaimStatus
    timestamp: str
    internal_notes: Optional[str] = None
    fraud_flag: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "policyId": self.policy_id,
            "userId": self.user_id,
            "date": self.date,
            "type": self.type,
            "description": self.description,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "fraud_flag": self.fraud_flag,
        }
        if self.internal_notes is not None:
            data["internalNotes"] = self.internal_notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Claim":
        return cls(
            id=data["id"],
            policy_id=data.get("policyId", ""),
            user_id=data.get("userId", ""),
            date=data.get("date", ""),
            type=data.get("type", ""),
            description=data.get("description", ""),
            status=ClaimStatus(data.get("status", ClaimStatus.UNDER_REVIEW.value)),
            timestamp=data.get("timestamp", ""),
            internal_notes=data.get("internalNotes"),
            fraud_flag=bool(data.get("fraud_flag", False)),
        )


# ============================================================
# CUSTOMER CONTACT
# ============================================================

@dataclass
class ContactMessage:
    id: str
    name: str
    email: str
    subject: str
    type: InquiryType
    message: str
    timestamp: str
    consent: bool
    status: InquiryStatus = InquiryStatus.UNREAD
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "subject": self.subject,
            "type": self.type.value,
            "message": self.message,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "consent": self.consent,
        }
        if self.phone is not None:
            data["phone"] = self.phone
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContactMessage":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            email=data.get("email", ""),
            subject=data.get("subject", ""),
            type=InquiryType(data.get("type", InquiryType.GENERAL.value)),
            message=data.get("message", ""),
            timestamp=data.get("timestamp", ""),
            consent=bool(data.get("consent", False)),
            status=InquiryStatus(data.get("status", InquiryStatus.UNREAD.value)),
            phone=data.get("phone"),
        )


@dataclass
class DownloadRecord:
    id: str
    policy_id: str
    user_id: str
    file_name: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "policyId": self.policy_id,
            "userId": self.user_id,
            "fileName": self.file_name,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadRecord":
        return cls(
            id=data["id"],
            policy_id=data.get("policyId", ""),
            user_id=data.get("userId", ""),
            file_name=data.get("fileName", ""),
            timestamp=data.get("timestamp", ""),
        )
