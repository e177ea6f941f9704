"""
Audit Ledger.

============================================================
PURPOSE
============================================================
Appends one immutable record per domain mutation.

INVARIANTS:
- Append-only: no update or delete operation exists
- Newest entry first in the retained sequence
- At most retention_cap entries retained; the oldest are
  evicted first once the cap is exceeded
- append() persists before returning; storage errors
  propagate to the mutating caller

============================================================
"""

import logging
import uuid
from typing import List, Optional, Union

from core.clock import ClockProtocol, SystemClock
from core.config import AuditConfig
from core.constants import StorageKeys
from storage.base import KeyValueStore
from storage.repositories.collection import CollectionRepository

from .models import Actor, ActorProvider, AuditAction, AuditLogEntry


logger = logging.getLogger(__name__)


class AuditLedger:
    """
    Bounded, append-only audit sink shared by every mutating component.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[AuditConfig] = None,
        clock: Optional[ClockProtocol] = None,
        actor_provider: Optional[ActorProvider] = None,
        max_cas_retries: int = 5,
    ):
        """
        Initialize ledger.

        Args:
            store: Backing key-value store
            config: Retention cap and system identity
            clock: Timestamp source
            actor_provider: Returns the authenticated operator, if any
            max_cas_retries: Compare-and-set attempts per append
        """
        self._config = config or AuditConfig()
        self._clock = clock or SystemClock()
        self._actor_provider = actor_provider
        self._entries = CollectionRepository(store, StorageKeys.AUDIT_LOGS, max_cas_retries)

    @property
    def retention_cap(self) -> int:
        return self._config.retention_cap

    @property
    def system_actor(self) -> Actor:
        return Actor(self._config.system_actor_id, self._config.system_actor_email)

    def set_actor_provider(self, provider: Optional[ActorProvider]) -> None:
        self._actor_provider = provider

    # --------------------------------------------------------
    # WRITE
    # --------------------------------------------------------

    def append(
        self,
        action: Union[AuditAction, str],
        details: str,
        target_id: Optional[str] = None,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> AuditLogEntry:
        """
        Append one entry at the head of the ledger.

        Args:
            action: Event name from the AuditAction vocabulary
            details: Free-text description
            target_id: Id of the affected record
            reason: Operator-supplied justification
            actor: Explicit author; defaults to the session actor,
                then to the system identity

        Returns:
            The persisted entry
        """
        author = actor or self.current_actor()

        entry = AuditLogEntry(
            id=uuid.uuid4().hex[:12],
            timestamp=self._clock.now(),
            actor_id=author.id,
            actor_email=author.email,
            action=action.value if isinstance(action, AuditAction) else str(action),
            details=details,
            ip_address=self._config.ip_address,
            target_id=target_id,
            reason=reason,
        )
        cap = self._config.retention_cap

        def insert(records):
            updated = [entry.to_dict()] + records
            evicted = max(0, len(updated) - cap)
            return updated[:cap], evicted

        evicted = self._entries.mutate(insert)

        if evicted:
            logger.debug(f"Audit retention cap {cap} reached, evicted {evicted} oldest entries")
        logger.debug(f"Audit {entry.action} by {entry.actor_id} target={entry.target_id}")

        return entry

    # --------------------------------------------------------
    # READ
    # --------------------------------------------------------

    def read(self) -> List[AuditLogEntry]:
        """All retained entries, newest first."""
        return [AuditLogEntry.from_dict(r) for r in self._entries.load()]

    def read_for_target(self, target_id: str) -> List[AuditLogEntry]:
        return [e for e in self.read() if e.target_id == target_id]

    def read_by_action(self, action: Union[AuditAction, str]) -> List[AuditLogEntry]:
        name = action.value if isinstance(action, AuditAction) else action
        return [e for e in self.read() if e.action == name]

    def count(self) -> int:
        return len(self._entries.load())

    def current_actor(self) -> Actor:
        """Session actor, or the system identity when nobody is signed in."""
        if self._actor_provider is not None:
            current = self._actor_provider()
            if current is not None:
                return current
        return self.system_actor
