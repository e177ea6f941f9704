"""
Domain State Store.

============================================================
PURPOSE
============================================================
Read-modify-write operations over users, policies, payments,
claims and customer contact records.

MUTATION PATTERN (uniform across entity types):
1. Read the current collection from the backing store
2. Apply the change by matching on id
3. Write the full collection back (compare-and-set)
4. Append exactly one audit entry

An unknown id raises RecordNotFoundError before anything is
written or audited. Storage errors propagate.

OWNERSHIP:
- Policy/User/Payment/Claim records are owned here
- record_mid_status() is the only write path for a policy's
  midStatus and is reserved for the registry sync engine

============================================================
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

from audit.ledger import AuditLedger
from audit.models import AuditAction
from core.clock import ClockProtocol, SystemClock
from core.config import StorageConfig
from core.constants import (
    CLAIM_ID_PREFIX,
    PAYMENT_ID_PREFIX,
    POLICY_ID_PREFIX,
    StorageKeys,
)
from core.exceptions import DuplicateRecordError, RecordNotFoundError
from storage.base import KeyValueStore
from storage.repositories.collection import CollectionRepository

from .identity import SessionIdentity
from .models import (
    BulkUserAction,
    Claim,
    ClaimStatus,
    ContactMessage,
    DownloadRecord,
    InquiryStatus,
    InquiryType,
    MIDStatus,
    PaymentRecord,
    PaymentStatus,
    PaymentType,
    Policy,
    PolicyDetails,
    PolicyStatus,
    User,
    UserStatus,
)


logger = logging.getLogger(__name__)


ChangeListener = Callable[[str], None]


def _short_id(length: int = 9) -> str:
    return uuid.uuid4().hex[:length]


class DomainStateStore:
    """
    Service object over the domain collections.

    Constructed once per process with an injected store and
    ledger; callers hold a reference instead of relying on
    shared module state.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ledger: AuditLedger,
        clock: Optional[ClockProtocol] = None,
        config: Optional[StorageConfig] = None,
        identity: Optional[SessionIdentity] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._identity = identity

        retries = (config or StorageConfig()).max_cas_retries
        self._users = CollectionRepository(store, StorageKeys.USERS, retries)
        self._policies = CollectionRepository(store, StorageKeys.POLICIES, retries)
        self._payments = CollectionRepository(store, StorageKeys.PAYMENTS, retries)
        self._claims = CollectionRepository(store, StorageKeys.CLAIMS, retries)
        self._inquiries = CollectionRepository(store, StorageKeys.INQUIRIES, retries)
        self._downloads = CollectionRepository(store, StorageKeys.DOWNLOAD_HISTORY, retries)

        self._listeners: List[ChangeListener] = []

    # --------------------------------------------------------
    # CHANGE NOTIFICATION
    # --------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> None:
        """Call listener(collection_key) after each successful mutation."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception:
                # The mutation is already persisted and audited
                logger.exception(f"Change listener failed for '{key}'")

    # --------------------------------------------------------
    # INTERNAL HELPERS
    # --------------------------------------------------------

    def _now_iso(self) -> str:
        return self._clock.now().isoformat()

    @staticmethod
    def _update_by_id(
        repository: CollectionRepository,
        record_id: str,
        apply: Callable[[Dict[str, Any]], Any],
    ) -> Any:
        """Apply a change to one record; raises RecordNotFoundError when absent."""

        def mutate(records):
            for record in records:
                if record.get("id") == record_id:
                    return records, apply(record)
            raise RecordNotFoundError(repository.key, record_id)

        return repository.mutate(mutate)

    @staticmethod
    def _append(repository: CollectionRepository, record: Dict[str, Any]) -> None:
        repository.mutate(lambda records: (records + [record], None))

    # ========================================================
    # USERS
    # ========================================================

    def register_user(self, name: str, email: str, phone: Optional[str] = None) -> User:
        """Create a customer account (REGISTRATION_SUCCESS)."""
        normalized = email.strip().lower()
        user = User(
            id=_short_id(),
            name=name,
            email=normalized,
            created_at=self._now_iso(),
            phone=phone,
        )

        def insert(records):
            if any(r.get("email", "").lower() == normalized for r in records):
                raise DuplicateRecordError(StorageKeys.USERS, "email", normalized)
            return records + [user.to_dict()], None

        self._users.mutate(insert)
        self._ledger.append(
            AuditAction.REGISTRATION_SUCCESS,
            f"New system enrollment: {normalized}",
            target_id=user.id,
        )
        self._notify(StorageKeys.USERS)
        return user

    def update_user_status(
        self,
        user_id: str,
        status: UserStatus,
        reason: Optional[str] = None,
    ) -> User:
        """Change an account status (ADMIN_OVERRIDE)."""
        status = UserStatus(status)

        def apply(record):
            old = record.get("status") or UserStatus.ACTIVE.value
            record["status"] = status.value
            record["isLocked"] = status == UserStatus.BLOCKED
            return old, User.from_dict(record)

        old_status, user = self._update_by_id(self._users, user_id, apply)

        self._ledger.append(
            AuditAction.ADMIN_OVERRIDE,
            f"Status modification for {user.email} (Ref: {user.id}): {old_status} -> {status.value}",
            target_id=user_id,
            reason=reason,
        )
        self._notify(StorageKeys.USERS)

        if self._identity is not None and status != UserStatus.ACTIVE:
            current = self._identity.current_user()
            if current is not None and current.id == user_id:
                self._identity.sign_out()

        return user

    def delete_user_permanent(self, user_id: str, reason: Optional[str] = None) -> User:
        """Remove an account and its policies (ADMIN_PURGE)."""

        def remove(records):
            for record in records:
                if record.get("id") == user_id:
                    return [r for r in records if r.get("id") != user_id], User.from_dict(record)
            raise RecordNotFoundError(StorageKeys.USERS, user_id)

        user = self._users.mutate(remove)
        removed_policies = self._policies.mutate(
            lambda records: (
                [r for r in records if r.get("userId") != user_id],
                sum(1 for r in records if r.get("userId") == user_id),
            )
        )

        self._ledger.append(
            AuditAction.ADMIN_PURGE,
            f"Permanent deletion of account record: {user.email} (Ref: {user.id}), "
            f"{removed_policies} policies removed",
            target_id=user_id,
            reason=reason,
        )
        self._notify(StorageKeys.USERS)
        if removed_policies:
            self._notify(StorageKeys.POLICIES)
        return user

    def bulk_update_users(
        self,
        user_ids: Sequence[str],
        action: BulkUserAction,
        reason: Optional[str] = None,
    ) -> int:
        """
        Apply one command to many accounts.

        Each account change is audited individually, followed by one
        ADMIN_BULK_ACTION summary entry. Unknown ids are skipped.

        Returns:
            Number of accounts changed
        """
        action = BulkUserAction(action)
        status_for = {
            BulkUserAction.BLOCK: UserStatus.BLOCKED,
            BulkUserAction.SUSPEND: UserStatus.SUSPENDED,
            BulkUserAction.ACTIVATE: UserStatus.ACTIVE,
        }

        applied = 0
        for user_id in user_ids:
            try:
                if action == BulkUserAction.DELETE:
                    self.delete_user_permanent(user_id, reason=reason)
                else:
                    self.update_user_status(user_id, status_for[action], reason=reason)
                applied += 1
            except RecordNotFoundError:
                logger.warning(f"Bulk {action.value} skipped unknown user {user_id}")

        self._ledger.append(
            AuditAction.ADMIN_BULK_ACTION,
            f"Applied global {action.value} command to {len(user_ids)} target records",
            reason=reason,
        )
        return applied

    def list_users(self) -> List[User]:
        return [User.from_dict(r) for r in self._users.load()]

    def get_user(self, user_id: str) -> Optional[User]:
        record = self._users.find_by_id(user_id)
        return User.from_dict(record) if record else None

    # ========================================================
    # POLICIES
    # ========================================================

    def issue_policy(
        self,
        user_id: str,
        policy_type: str,
        premium: str,
        vrm: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Policy:
        """Create an Active policy awaiting registry reporting (POLICY_ISSUED)."""
        policy = Policy(
            id=f"{POLICY_ID_PREFIX}{_short_id(6).upper()}",
            user_id=user_id,
            type=policy_type,
            premium=premium,
            status=PolicyStatus.ACTIVE,
            details={**(details or {}), "vrm": vrm},
            mid_status=MIDStatus.PENDING,
        )

        self._append(self._policies, policy.to_dict())
        self._ledger.append(
            AuditAction.POLICY_ISSUED,
            f"Policy {policy.id} issued for {vrm} ({policy_type}, {premium})",
            target_id=policy.id,
        )
        self._notify(StorageKeys.POLICIES)
        return policy

    def update_policy_status(
        self,
        policy_id: str,
        status: PolicyStatus,
        reason: Optional[str] = None,
    ) -> Policy:
        """Freeze, cancel, terminate or reinstate a policy (POLICY_STATUS_CHANGE)."""
        status = PolicyStatus(status)

        def apply(record):
            old = record.get("status")
            record["status"] = status.value
            return old, Policy.from_dict(record)

        old_status, policy = self._update_by_id(self._policies, policy_id, apply)

        self._ledger.append(
            AuditAction.POLICY_STATUS_CHANGE,
            f"Policy {policy_id}: {old_status} -> {status.value}",
            target_id=policy_id,
            reason=reason,
        )
        self._notify(StorageKeys.POLICIES)
        return policy

    def record_mid_status(self, policy_id: str, status: MIDStatus) -> bool:
        """
        Mirror a submission outcome onto its policy.

        Reserved for the registry sync engine, whose MID_TX_SUCCESS
        entry audits this write.

        Returns:
            False when the policy no longer exists
        """
        status = MIDStatus(status)

        def apply(records):
            for record in records:
                if record.get("id") == policy_id:
                    record["midStatus"] = status.value
                    return records, True
            return None, False

        return self._policies.mutate(apply)

    def list_policies(self) -> List[Policy]:
        return [Policy.from_dict(r) for r in self._policies.load()]

    def get_policy(self, policy_id: str) -> Optional[Policy]:
        record = self._policies.find_by_id(policy_id)
        return Policy.from_dict(record) if record else None

    def policies_for_user(self, user_id: str) -> List[Policy]:
        return [p for p in self.list_policies() if p.user_id == user_id]

    # ========================================================
    # PAYMENTS
    # ========================================================

    def record_payment(
        self,
        policy_id: str,
        user_id: str,
        amount: str,
        policy_details: PolicyDetails,
        payment_type: PaymentType = PaymentType.FULL_PAYMENT,
        status: PaymentStatus = PaymentStatus.PAID_IN_FULL,
        method: str = "Card",
        description: Optional[str] = None,
    ) -> PaymentRecord:
        """Store a premium payment (PAYMENT_RECORDED)."""
        payment = PaymentRecord(
            id=f"{PAYMENT_ID_PREFIX}{_short_id(8).upper()}",
            policy_id=policy_id,
            user_id=user_id,
            date=self._now_iso(),
            description=description or f"PREMIUM SETTLEMENT - {policy_id}",
            amount=amount,
            type=PaymentType(payment_type),
            status=PaymentStatus(status),
            method=method,
            reference=f"SWIFT-{_short_id(10).upper()}",
            policy_details=policy_details,
        )

        self._append(self._payments, payment.to_dict())
        self._ledger.append(
            AuditAction.PAYMENT_RECORDED,
            f"Payment {payment.id} of {amount} recorded against {policy_id}",
            target_id=payment.id,
        )
        self._notify(StorageKeys.PAYMENTS)
        return payment

    def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        reason: Optional[str] = None,
    ) -> PaymentRecord:
        """Mark a payment disputed, refunded, overdue... (PAYMENT_STATUS_CHANGE)."""
        status = PaymentStatus(status)

        def apply(record):
            old = record.get("status")
            record["status"] = status.value
            record["dispute"] = status == PaymentStatus.DISPUTED
            return old, PaymentRecord.from_dict(record)

        old_status, payment = self._update_by_id(self._payments, payment_id, apply)

        self._ledger.append(
            AuditAction.PAYMENT_STATUS_CHANGE,
            f"Payment {payment_id}: {old_status} -> {status.value}",
            target_id=payment_id,
            reason=reason,
        )
        self._notify(StorageKeys.PAYMENTS)
        return payment

    def list_payments(self) -> List[PaymentRecord]:
        return [PaymentRecord.from_dict(r) for r in self._payments.load()]

    # ========================================================
    # CLAIMS
    # ========================================================

    def submit_claim(
        self,
        policy_id: str,
        user_id: str,
        claim_type: str,
        description: str,
        date: Optional[str] = None,
    ) -> Claim:
        """Open a claim under review (CLAIM_SUBMITTED)."""
        now = self._now_iso()
        claim = Claim(
            id=f"{CLAIM_ID_PREFIX}{_short_id(6).upper()}",
            policy_id=policy_id,
            user_id=user_id,
            date=date or now,
            type=claim_type,
            description=description,
            status=ClaimStatus.UNDER_REVIEW,
            timestamp=now,
        )

        self._append(self._claims, claim.to_dict())
        self._ledger.append(
            AuditAction.CLAIM_SUBMITTED,
            f"Claim {claim.id} ({claim_type}) opened on {policy_id}",
            target_id=claim.id,
        )
        self._notify(StorageKeys.CLAIMS)
        return claim

    def update_claim_status(
        self,
        claim_id: str,
        status: ClaimStatus,
        reason: Optional[str] = None,
        internal_notes: Optional[str] = None,
    ) -> Claim:
        """Decide or request documents on a claim (CLAIM_STATUS_CHANGE)."""
        status = ClaimStatus(status)

        def apply(record):
            old = record.get("status")
            record["status"] = status.value
            if internal_notes is not None:
                record["internalNotes"] = internal_notes
            return old, Claim.from_dict(record)

        old_status, claim = self._update_by_id(self._claims, claim_id, apply)

        self._ledger.append(
            AuditAction.CLAIM_STATUS_CHANGE,
            f"Claim {claim_id}: {old_status} -> {status.value}",
            target_id=claim_id,
            reason=reason,
        )
        self._notify(StorageKeys.CLAIMS)
        return claim

    def list_claims(self) -> List[Claim]:
        return [Claim.from_dict(r) for r in self._claims.load()]

    # ========================================================
    # INQUIRIES AND DOWNLOADS
    # ========================================================

    def submit_inquiry(
        self,
        name: str,
        email: str,
        subject: str,
        inquiry_type: InquiryType,
        message: str,
        consent: bool,
        phone: Optional[str] = None,
    ) -> ContactMessage:
        """Store a contact-form message (INQUIRY_SUBMITTED)."""
        inquiry = ContactMessage(
            id=_short_id(),
            name=name,
            email=email,
            subject=subject,
            type=InquiryType(inquiry_type),
            message=message,
            timestamp=self._now_iso(),
            consent=consent,
            phone=phone,
        )

        self._append(self._inquiries, inquiry.to_dict())
        self._ledger.append(
            AuditAction.INQUIRY_SUBMITTED,
            f"{inquiry.type.value} inquiry received from {email}",
            target_id=inquiry.id,
        )
        self._notify(StorageKeys.INQUIRIES)
        return inquiry

    def update_inquiry_status(self, inquiry_id: str, status: InquiryStatus) -> ContactMessage:
        status = InquiryStatus(status)

        def apply(record):
            old = record.get("status")
            record["status"] = status.value
            return old, ContactMessage.from_dict(record)

        old_status, inquiry = self._update_by_id(self._inquiries, inquiry_id, apply)

        self._ledger.append(
            AuditAction.INQUIRY_STATUS_CHANGE,
            f"Inquiry {inquiry_id}: {old_status} -> {status.value}",
            target_id=inquiry_id,
        )
        self._notify(StorageKeys.INQUIRIES)
        return inquiry

    def list_inquiries(self) -> List[ContactMessage]:
        return [ContactMessage.from_dict(r) for r in self._inquiries.load()]

    def log_download(self, policy_id: str, file_name: str) -> DownloadRecord:
        """Record a policy document download (DOCUMENT_DOWNLOAD)."""
        user = self._identity.current_user() if self._identity else None
        record = DownloadRecord(
            id=_short_id(),
            policy_id=policy_id,
            user_id=user.id if user else self._ledger.system_actor.id,
            file_name=file_name,
            timestamp=self._now_iso(),
        )

        self._append(self._downloads, record.to_dict())
        self._ledger.append(
            AuditAction.DOCUMENT_DOWNLOAD,
            f"Document {file_name} downloaded for {policy_id}",
            target_id=policy_id,
        )
        return record

    def download_history(self) -> List[DownloadRecord]:
        return [DownloadRecord.from_dict(r) for r in self._downloads.load()]
