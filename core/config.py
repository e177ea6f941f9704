"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the portal core.

Sources (later wins):
1. Dataclass defaults
2. .env file (python-dotenv)
3. SWIFTPOLICY_* environment variables
4. CLI overrides applied by app.py

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv

from .constants import (
    DEFAULT_AUDIT_RETENTION_CAP,
    DEFAULT_GATEWAY_LATENCY_SECONDS,
    DEFAULT_GATEWAY_SUCCESS_PROBABILITY,
    DEFAULT_GATEWAY_TIMEOUT_SECONDS,
    DEFAULT_STOP_TIMEOUT_SECONDS,
    DEFAULT_SYNC_INTERVAL_SECONDS,
    SIMULATED_IP_ADDRESS,
    SYSTEM_ACTOR_EMAIL,
    SYSTEM_ACTOR_ID,
)
from .exceptions import ConfigurationError


ENV_PREFIX = "SWIFTPOLICY_"


# ============================================================
# STORAGE CONFIGURATION
# ============================================================

@dataclass
class StorageConfig:
    """Backing store configuration."""

    database_url: str = "sqlite:///swiftpolicy.db"
    """SQLAlchemy URL of the key-value table."""

    echo: bool = False
    """Log SQL statements."""

    use_memory: bool = False
    """Use the process-local store instead of SQLAlchemy."""

    max_cas_retries: int = 5
    """Compare-and-set attempts before a stale write is re-raised."""


# ============================================================
# AUDIT CONFIGURATION
# ============================================================

@dataclass
class AuditConfig:
    """Audit ledger configuration."""

    retention_cap: int = DEFAULT_AUDIT_RETENTION_CAP
    """Maximum retained entries; oldest are evicted first."""

    system_actor_id: str = SYSTEM_ACTOR_ID
    """Actor id when no operator is authenticated."""

    system_actor_email: str = SYSTEM_ACTOR_EMAIL
    """Actor email when no operator is authenticated."""

    ip_address: str = SIMULATED_IP_ADDRESS
    """Client address recorded on each entry."""


# ============================================================
# GATEWAY CONFIGURATION
# ============================================================

@dataclass
class GatewayConfig:
    """Simulated registry gateway configuration."""

    latency_seconds: float = DEFAULT_GATEWAY_LATENCY_SECONDS
    """Fixed latency of each registry call."""

    success_probability: float = DEFAULT_GATEWAY_SUCCESS_PROBABILITY
    """Probability that a registry call succeeds."""

    timeout_seconds: float = DEFAULT_GATEWAY_TIMEOUT_SECONDS
    """Calls exceeding this are recorded as failed attempts."""


# ============================================================
# SCHEDULER CONFIGURATION
# ============================================================

@dataclass
class SchedulerConfig:
    """Trigger scheduler configuration."""

    enabled: bool = True
    """Whether the periodic pass runs."""

    interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS
    """Period of the processing pass."""

    kick_on_enqueue: bool = True
    """Start a processing pass right after a submission is created."""

    scan_on_start: bool = True
    """Enqueue un-synced active policies when the scheduler starts."""

    stop_timeout_seconds: float = DEFAULT_STOP_TIMEOUT_SECONDS
    """How long stop() waits for an in-flight pass before cancelling it."""


# ============================================================
# API CONFIGURATION
# ============================================================

@dataclass
class ApiConfig:
    """Operator HTTP API configuration."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8085


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


# ============================================================
# COMPLETE CONFIGURATION
# ============================================================

@dataclass
class PortalConfig:
    """Complete portal core configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(
        cls,
        env: Optional[Dict[str, str]] = None,
        dotenv_path: Optional[str] = None,
    ) -> "PortalConfig":
        """
        Build configuration from the environment.

        Args:
            env: Mapping to read instead of os.environ (tests)
            dotenv_path: Explicit .env file; ignored when env is given

        Raises:
            ConfigurationError: On unparsable values
        """
        if env is None:
            load_dotenv(dotenv_path)
            env = dict(os.environ)

        config = cls()

        _apply(env, "DATABASE_URL", str, config.storage, "database_url")
        _apply(env, "USE_MEMORY_STORE", _parse_bool, config.storage, "use_memory")
        _apply(env, "SQL_ECHO", _parse_bool, config.storage, "echo")

        _apply(env, "AUDIT_RETENTION_CAP", int, config.audit, "retention_cap")

        _apply(env, "MID_LATENCY_SECONDS", float, config.gateway, "latency_seconds")
        _apply(env, "MID_SUCCESS_PROBABILITY", float, config.gateway, "success_probability")
        _apply(env, "MID_TIMEOUT_SECONDS", float, config.gateway, "timeout_seconds")

        _apply(env, "MID_SYNC_INTERVAL_SECONDS", float, config.scheduler, "interval_seconds")
        _apply(env, "MID_SYNC_ENABLED", _parse_bool, config.scheduler, "enabled")
        _apply(env, "MID_STOP_TIMEOUT_SECONDS", float, config.scheduler, "stop_timeout_seconds")

        _apply(env, "API_HOST", str, config.api, "host")
        _apply(env, "API_PORT", int, config.api, "port")
        _apply(env, "API_ENABLED", _parse_bool, config.api, "enabled")

        _apply(env, "LOG_LEVEL", str.upper, config.logging, "level")

        return config

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty when valid)."""
        errors = []

        if not 0.0 <= self.gateway.success_probability <= 1.0:
            errors.append("gateway.success_probability must be within [0, 1]")
        if self.gateway.latency_seconds < 0:
            errors.append("gateway.latency_seconds must not be negative")
        if self.gateway.timeout_seconds <= 0:
            errors.append("gateway.timeout_seconds must be positive")
        if self.scheduler.interval_seconds <= 0:
            errors.append("scheduler.interval_seconds must be positive")
        if self.scheduler.stop_timeout_seconds <= 0:
            errors.append("scheduler.stop_timeout_seconds must be positive")
        if self.audit.retention_cap <= 0:
            errors.append("audit.retention_cap must be positive")
        if self.storage.max_cas_retries < 1:
            errors.append("storage.max_cas_retries must be at least 1")
        if not 0 < self.api.port < 65536:
            errors.append("api.port must be a valid TCP port")

        return errors


# ============================================================
# HELPERS
# ============================================================

def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _apply(
    env: Dict[str, str],
    name: str,
    parse: Callable[[str], Any],
    target: Any,
    attribute: str,
) -> None:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return
    try:
        setattr(target, attribute, parse(raw))
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {ENV_PREFIX + name}: {e}",
            config_key=ENV_PREFIX + name,
            actual_value=raw,
        ) from e
