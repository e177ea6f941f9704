"""
Collection Repository.

============================================================
PURPOSE
============================================================
Read-modify-write of one whole collection in the key-value
store, with lost-update detection.

A mutation reads the collection and its version, applies a
function to it, and writes it back with compare-and-set. When
another writer has bumped the version in between, the mutation
is re-applied to the fresh collection, up to max_retries times.

The mutate function must be free of side effects other than
changing the list it is given: it may run more than once.

============================================================
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from core.exceptions import ConfigurationError, StaleWriteError

from ..base import KeyValueStore


logger = logging.getLogger(__name__)


R = TypeVar("R")
Collection = List[Dict[str, Any]]


class CollectionRepository:
    """Whole-collection access to one store key."""

    def __init__(self, store: KeyValueStore, key: str, max_retries: int = 5):
        if max_retries < 1:
            raise ConfigurationError(
                f"max_retries must be at least 1 for '{key}'",
                config_key="max_cas_retries",
                actual_value=max_retries,
            )
        self._store = store
        self._key = key
        self._max_retries = max_retries

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> Collection:
        """Read the full collection (empty list when absent)."""
        value = self._store.get(self._key, [])
        return value if isinstance(value, list) else []

    def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> Optional[Dict[str, Any]]:
        """First record matching predicate, or None."""
        for record in self.load():
            if predicate(record):
                return record
        return None

    def find_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        return self.find(lambda r: r.get("id") == record_id)

    def mutate(self, fn: Callable[[Collection], Tuple[Optional[Collection], R]]) -> R:
        """
        Apply fn to the collection and persist the result.

        Args:
            fn: Receives the current collection, returns
                (new_collection, result). Raising inside fn aborts
                the mutation without writing. Returning None as
                new_collection skips the write.

        Returns:
            The result returned by fn on the attempt that was written

        Raises:
            StaleWriteError: After max_retries lost races
            BackingStoreError: On storage failure
        """
        last_error: Optional[StaleWriteError] = None

        for attempt in range(1, self._max_retries + 1):
            current = self._store.get_versioned(self._key, [])
            records = current.value if isinstance(current.value, list) else []

            updated, result = fn(records)
            if updated is None:
                return result

            try:
                self._store.compare_and_set(self._key, updated, current.version)
                return result
            except StaleWriteError as e:
                last_error = e
                logger.warning(
                    f"Concurrent write to '{self._key}' detected "
                    f"(attempt {attempt}/{self._max_retries}), re-applying"
                )

        raise last_error
