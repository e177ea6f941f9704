"""
Audit Ledger Package.

============================================================
PURPOSE
============================================================
Append-only, bounded record of every privileged state change,
used for compliance and operator visibility.

Makes no attempt at cryptographic tamper-proofing; it only
guarantees in-process append ordering and retention.

============================================================
MODULES
============================================================
- models: AuditLogEntry, AuditAction, Actor
- ledger: AuditLedger (append / read)

============================================================
"""

from .models import (
    Actor,
    ActorProvider,
    AuditAction,
    AuditLogEntry,
)
from .ledger import AuditLedger


__all__ = [
    "Actor",
    "ActorProvider",
    "AuditAction",
    "AuditLogEntry",
    "AuditLedger",
]
