"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the portal core.

- Provides clear exception hierarchy
- Separates locally recovered failures from propagating ones
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
PortalException (base)
├── ConfigurationError
├── StorageError
│   ├── BackingStoreError
│   └── StaleWriteError
├── DomainError
│   ├── RecordNotFoundError
│   ├── DuplicateRecordError
│   └── InvalidTransitionError
├── RegistryError
│   ├── TransientGatewayError
│   └── DuplicateEnqueueError
└── NotFoundError

============================================================
PROPAGATION
============================================================
- TransientGatewayError: recovered inside the sync engine,
  recorded as a Failed attempt, never raised to callers
- DuplicateEnqueueError: suppressed, enqueue is a no-op
- NotFoundError: retry() converts it to a False result
- BackingStoreError: propagates out of the enclosing operation

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, the enclosing operation failed."""

    CRITICAL = "critical"
    """Critical issue, requires operator action."""


class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Caller error, the system is unaffected."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class PortalException(Exception):
    """
    Base exception for all portal core errors.

    All exceptions carry:
    - severity: for logging level decisions
    - context: for debugging
    - classification: for retry decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_retryable(self) -> bool:
        """Check if the failed call may succeed when repeated."""
        return self.classification == ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/API responses."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(PortalException):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)
        self.config_key = config_key
        self.actual_value = actual_value


# ============================================================
# STORAGE ERRORS
# ============================================================

class StorageError(PortalException):
    """Base class for backing store errors."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class BackingStoreError(StorageError):
    """Reading or writing the persistent store failed."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if key:
            context["key"] = key
        if operation:
            context["operation"] = operation

        super().__init__(message, context=context, **kwargs)
        self.key = key
        self.operation = operation


class StaleWriteError(StorageError):
    """A compare-and-set write lost against a concurrent writer."""

    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, key: str, expected_version: int, actual_version: int):
        super().__init__(
            message=(
                f"Stale write to '{key}': expected version {expected_version}, "
                f"found {actual_version}"
            ),
            context={
                "key": key,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version


# ============================================================
# DOMAIN ERRORS
# ============================================================

class DomainError(PortalException):
    """Base class for domain state errors."""

    default_severity = Severity.LOW


class RecordNotFoundError(DomainError):
    """An entity id did not match any record in its collection."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(
            message=f"{collection} record {record_id} not found",
            context={"collection": collection, "record_id": record_id},
        )
        self.collection = collection
        self.record_id = record_id


class DuplicateRecordError(DomainError):
    """A unique field already exists in the collection."""

    def __init__(self, collection: str, field_name: str, value: Any):
        super().__init__(
            message=f"Duplicate {collection} record: {field_name}={value} already exists",
            context={"collection": collection, "field": field_name, "value": str(value)},
        )
        self.collection = collection
        self.field_name = field_name
        self.value = value


class InvalidTransitionError(DomainError):
    """A submission status transition is not allowed."""

    default_severity = Severity.MEDIUM

    def __init__(self, submission_id: str, from_status: str, to_status: str, reason: str = ""):
        super().__init__(
            message=(
                f"Invalid transition for {submission_id}: {from_status} -> {to_status}"
                + (f" ({reason})" if reason else "")
            ),
            context={
                "submission_id": submission_id,
                "from_status": from_status,
                "to_status": to_status,
            },
        )
        self.submission_id = submission_id
        self.from_status = from_status
        self.to_status = to_status


# ============================================================
# REGISTRY ERRORS
# ============================================================

class RegistryError(PortalException):
    """Base class for registry synchronization errors."""


class TransientGatewayError(RegistryError):
    """The registry call failed; the attempt may be retried."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, message: str, vrm: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if vrm:
            context["vrm"] = vrm
        super().__init__(message, context=context, **kwargs)
        self.vrm = vrm


class DuplicateEnqueueError(RegistryError):
    """A policy already has a submission."""

    default_severity = Severity.LOW

    def __init__(self, policy_id: str, submission_id: str):
        super().__init__(
            message=f"Policy {policy_id} already queued as {submission_id}",
            context={"policy_id": policy_id, "submission_id": submission_id},
        )
        self.policy_id = policy_id
        self.submission_id = submission_id


class NotFoundError(PortalException):
    """An operator referenced a submission that does not exist."""

    default_severity = Severity.LOW

    def __init__(self, submission_id: str):
        super().__init__(
            message=f"Submission {submission_id} not found",
            context={"submission_id": submission_id},
        )
        self.submission_id = submission_id
