"""
Domain - Session Identity.

Reads the authenticated operator from the ``session`` record
of the backing store. Sign-in itself (credentials, admin
allow-list) belongs to the external identity mechanism; this
class only publishes and resolves the session record.
"""

import logging
from typing import Optional

from audit.models import Actor
from core.constants import StorageKeys
from storage.base import KeyValueStore

from .models import User


logger = logging.getLogger(__name__)


class SessionIdentity:
    """Session record accessor; ``current_actor`` is the ledger's actor provider."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def current_user(self) -> Optional[User]:
        record = self._store.get(StorageKeys.SESSION)
        if not isinstance(record, dict) or "id" not in record:
            return None
        return User.from_dict(record)

    def current_actor(self) -> Optional[Actor]:
        user = self.current_user()
        if user is None:
            return None
        return Actor(id=user.id, email=user.email)

    def sign_in(self, user: User) -> None:
        self._store.set(StorageKeys.SESSION, user.to_dict())
        logger.info(f"Session opened for {user.email}")

    def sign_out(self) -> None:
        self._store.delete(StorageKeys.SESSION)
        logger.info("Session closed")
