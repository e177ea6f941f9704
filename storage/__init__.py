"""
Storage Package.

Key-value persistence for the portal's JSON collections.

Modules:
- base: KeyValueStore port and JSON helpers
- memory: In-process adapter (tests, --memory)
- sqlalchemy_store: Database adapter
- models/: ORM table for the database adapter
- repositories/: Whole-collection read-modify-write
"""

from .base import KeyValueStore, VersionedValue
from .memory import InMemoryKeyValueStore
from .repositories import CollectionRepository
from .sqlalchemy_store import SqlAlchemyKeyValueStore, create_store_engine


__all__ = [
    "KeyValueStore",
    "VersionedValue",
    "InMemoryKeyValueStore",
    "SqlAlchemyKeyValueStore",
    "create_store_engine",
    "CollectionRepository",
]
