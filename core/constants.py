"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines the portal-wide constants.

- Backing store keys
- Identity fallbacks for audit entries
- Documented defaults for retention and sync timing

============================================================
"""

# ============================================================
# SYSTEM CONSTANTS
# ============================================================

SYSTEM_NAME = "swiftpolicy-portal"
SYSTEM_VERSION = "0.1.0"


# ============================================================
# STORAGE KEYS
# ============================================================

class StorageKeys:
    """Keys of the whole-collection records in the backing store."""

    USERS = "users"
    POLICIES = "policies"
    PAYMENTS = "payments"
    CLAIMS = "claims"
    AUDIT_LOGS = "audit_logs"
    MID_SUBMISSIONS = "mid_submissions"
    SESSION = "session"
    PASSWORD_RESET_TOKENS = "password_reset_tokens"
    INQUIRIES = "inquiries"
    DOWNLOAD_HISTORY = "download_history"

    ALL = (
        USERS,
        POLICIES,
        PAYMENTS,
        CLAIMS,
        AUDIT_LOGS,
        MID_SUBMISSIONS,
        SESSION,
        PASSWORD_RESET_TOKENS,
        INQUIRIES,
        DOWNLOAD_HISTORY,
    )


# ============================================================
# AUDIT CONSTANTS
# ============================================================

SYSTEM_ACTOR_ID = "SYSTEM"
SYSTEM_ACTOR_EMAIL = "System Account"

# Simulated client address recorded on every audit entry
SIMULATED_IP_ADDRESS = "82.16.24.102"

DEFAULT_AUDIT_RETENTION_CAP = 2000


# ============================================================
# REGISTRY SYNC CONSTANTS
# ============================================================

DEFAULT_SYNC_INTERVAL_SECONDS = 30.0
DEFAULT_GATEWAY_LATENCY_SECONDS = 2.0
DEFAULT_GATEWAY_SUCCESS_PROBABILITY = 0.9
DEFAULT_GATEWAY_TIMEOUT_SECONDS = 10.0

# Grace period for an in-flight pass when the scheduler stops
DEFAULT_STOP_TIMEOUT_SECONDS = 60.0

SUBMISSION_ID_PREFIX = "MID-"
POLICY_ID_PREFIX = "POL-"
PAYMENT_ID_PREFIX = "PAY-"
CLAIM_ID_PREFIX = "CLM-"
