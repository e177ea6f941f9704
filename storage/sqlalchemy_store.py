"""
Storage - SQLAlchemy Key-Value Store.

============================================================
PURPOSE
============================================================
Durable backing store: one kv_store row per collection key.

Requirements:
- Explicit transaction per call (commit or rollback)
- Hard failures on persistence errors (BackingStoreError)
- Version-stamped compare-and-set via conditional UPDATE

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Iterable, Optional

from sqlalchemy import create_engine, delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import StorageConfig
from core.exceptions import BackingStoreError, StaleWriteError

from .base import KeyValueStore, VersionedValue, copy_default, decode_value, encode_value
from .models.base import Base
from .models.kv_entry import KeyValueEntry


logger = logging.getLogger(__name__)


def create_store_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine for the store.

    In-memory SQLite shares one connection so every session sees
    the same database.
    """
    kwargs: dict = {"echo": echo, "future": True}

    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    logger.info(f"Creating store engine for: {database_url.split('@')[-1]}")
    return create_engine(database_url, **kwargs)


class SqlAlchemyKeyValueStore(KeyValueStore):
    """
    Key-value store persisted through SQLAlchemy.

    Every SQLAlchemyError is wrapped in BackingStoreError and
    propagates to the caller.
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        engine: Optional[Engine] = None,
    ):
        self._config = config or StorageConfig()
        self._engine = engine or create_store_engine(
            self._config.database_url,
            echo=self._config.echo,
        )
        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_tables(self) -> None:
        """Create the kv_store table if missing."""
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create store tables: {e}")
            raise BackingStoreError(f"Failed to create tables: {e}", operation="create_tables", cause=e) from e

    @contextmanager
    def session_scope(self, key: str, operation: str) -> Generator[Session, None, None]:
        """
        Transaction boundary for one store call.

        Commits only if no exception occurs; rolls back on any.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except StaleWriteError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Store {operation} failed for '{key}': {e}")
            raise BackingStoreError(
                f"Store {operation} failed for '{key}': {e}",
                key=key,
                operation=operation,
                cause=e,
            ) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --------------------------------------------------------
    # KEY-VALUE OPERATIONS
    # --------------------------------------------------------

    def get_versioned(self, key: str, default: Any = None) -> VersionedValue:
        with self.session_scope(key, "read") as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                return VersionedValue(copy_default(default), 0)
            return VersionedValue(decode_value(key, entry.value), entry.version)

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> int:
        encoded = encode_value(key, value)

        with self.session_scope(key, "write") as session:
            if expected_version == 0:
                session.add(KeyValueEntry(key=key, value=encoded, version=1))
                try:
                    session.flush()
                except IntegrityError:
                    session.rollback()
                    actual = self._current_version(session, key)
                    raise StaleWriteError(key, expected_version, actual)
                return 1

            result = session.execute(
                update(KeyValueEntry)
                .where(KeyValueEntry.key == key)
                .where(KeyValueEntry.version == expected_version)
                .values(value=encoded, version=expected_version + 1)
            )
            if result.rowcount != 1:
                actual = self._current_version(session, key)
                raise StaleWriteError(key, expected_version, actual)
            return expected_version + 1

    def set(self, key: str, value: Any) -> int:
        encoded = encode_value(key, value)

        with self.session_scope(key, "write") as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=encoded, version=1))
                return 1
            entry.value = encoded
            entry.version = entry.version + 1
            return entry.version

    def delete(self, key: str) -> None:
        with self.session_scope(key, "delete") as session:
            session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))

    def keys(self) -> Iterable[str]:
        with self.session_scope("*", "keys") as session:
            return list(session.scalars(select(KeyValueEntry.key)))

    def close(self) -> None:
        self._engine.dispose()

    @staticmethod
    def _current_version(session: Session, key: str) -> int:
        version = session.scalar(select(KeyValueEntry.version).where(KeyValueEntry.key == key))
        return version or 0
