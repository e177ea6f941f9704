"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- config: Dataclass configuration loaded from the environment
- exceptions: Custom exception hierarchy
- constants: Storage keys and documented defaults
"""

from .clock import ClockProtocol, SystemClock, MockClock
from .config import (
    StorageConfig,
    AuditConfig,
    GatewayConfig,
    SchedulerConfig,
    ApiConfig,
    LoggingConfig,
    PortalConfig,
)
from .constants import StorageKeys
from .exceptions import (
    Severity,
    ErrorClassification,
    PortalException,
    ConfigurationError,
    StorageError,
    BackingStoreError,
    StaleWriteError,
    DomainError,
    RecordNotFoundError,
    DuplicateRecordError,
    InvalidTransitionError,
    RegistryError,
    TransientGatewayError,
    DuplicateEnqueueError,
    NotFoundError,
)
