"""
Domain Package.

============================================================
PURPOSE
============================================================
Owns user, policy, payment, claim and contact records.

Every mutating operation reads the collection, applies the
change by id, writes the whole collection back and appends one
audit entry.

============================================================
MODULES
============================================================
- models: Entity dataclasses and status enums
- identity: Session record accessor (actor for audit entries)
- state_store: DomainStateStore service object

============================================================
"""

from .models import (
    UserRole,
    UserStatus,
    BulkUserAction,
    PolicyStatus,
    MIDStatus,
    PaymentType,
    PaymentStatus,
    ClaimStatus,
    InquiryType,
    InquiryStatus,
    User,
    Policy,
    PolicyDetails,
    PaymentRecord,
    Claim,
    ContactMessage,
    DownloadRecord,
)
from .identity import SessionIdentity
from .state_store import DomainStateStore, ChangeListener
