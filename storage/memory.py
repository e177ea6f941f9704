"""
Storage - In-Memory Key-Value Store.

============================================================
PURPOSE
============================================================
Process-local store for demos and tests.

FEATURES:
- JSON round-trip on every read/write (same isolation as SQL)
- Version stamps for compare-and-set
- Configurable failure injection per key

============================================================
"""

import logging
from typing import Any, Dict, Iterable, Optional, Set, Tuple

from core.exceptions import BackingStoreError, StaleWriteError

from .base import KeyValueStore, VersionedValue, copy_default, decode_value, encode_value


logger = logging.getLogger(__name__)


class InMemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed key-value store.

    Error injection:
        fail_on_read / fail_on_write hold keys whose next reads or
        writes raise BackingStoreError until the key is removed.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Tuple[str, int]] = {}
        self.fail_on_read: Set[str] = set()
        self.fail_on_write: Set[str] = set()

        # Counters for tests
        self.read_count = 0
        self.write_count = 0

        for key, value in (initial or {}).items():
            self.set(key, value)

    def get_versioned(self, key: str, default: Any = None) -> VersionedValue:
        if key in self.fail_on_read:
            raise BackingStoreError(f"Injected read failure for '{key}'", key=key, operation="read")

        self.read_count += 1
        stored = self._data.get(key)
        if stored is None:
            return VersionedValue(copy_default(default), 0)

        raw, version = stored
        return VersionedValue(decode_value(key, raw), version)

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> int:
        current_version = self._data.get(key, (None, 0))[1]
        if current_version != expected_version:
            raise StaleWriteError(key, expected_version, current_version)
        return self._write(key, value, current_version + 1)

    def set(self, key: str, value: Any) -> int:
        current_version = self._data.get(key, (None, 0))[1]
        return self._write(key, value, current_version + 1)

    def delete(self, key: str) -> None:
        if key in self.fail_on_write:
            raise BackingStoreError(f"Injected write failure for '{key}'", key=key, operation="delete")
        self._data.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._data.keys())

    def _write(self, key: str, value: Any, version: int) -> int:
        if key in self.fail_on_write:
            raise BackingStoreError(f"Injected write failure for '{key}'", key=key, operation="write")

        self._data[key] = (encode_value(key, value), version)
        self.write_count += 1
        logger.debug(f"Stored '{key}' at version {version}")
        return version
