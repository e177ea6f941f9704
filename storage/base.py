"""
Storage - Key-Value Store Port.

============================================================
PURPOSE
============================================================
Synchronous get/set-by-key service holding JSON-serializable
collections, durable across restarts in its SQL adapter.

All reads and writes are whole-value. Callers read-modify-write
a full collection; version stamps let them detect a concurrent
writer instead of silently overwriting it.

============================================================
"""

import copy
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from core.exceptions import BackingStoreError


@dataclass(frozen=True)
class VersionedValue:
    """A stored value with its version stamp (0 = never written)."""

    value: Any
    version: int


class KeyValueStore(ABC):
    """
    Abstract backing store.

    Implementations must return independent copies so callers
    never share mutable state with the store.
    """

    @abstractmethod
    def get_versioned(self, key: str, default: Any = None) -> VersionedValue:
        """Read a value together with its version."""
        pass

    @abstractmethod
    def compare_and_set(self, key: str, value: Any, expected_version: int) -> int:
        """
        Write a value if the stored version still matches.

        Returns:
            The new version

        Raises:
            StaleWriteError: If another writer got there first
            BackingStoreError: If the write itself fails
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> int:
        """Write a value unconditionally; returns the new version."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key (no-op when absent)."""
        pass

    @abstractmethod
    def keys(self) -> Iterable[str]:
        """List stored keys."""
        pass

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value, or a copy of default when the key is absent."""
        return self.get_versioned(key, default).value

    def close(self) -> None:
        """Release resources held by the store."""
        return None


def encode_value(key: str, value: Any) -> str:
    """Serialize a value, rejecting anything that is not JSON."""
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise BackingStoreError(
            f"Value for '{key}' is not JSON-serializable: {e}",
            key=key,
            operation="encode",
            cause=e,
        ) from e


def decode_value(key: str, raw: str) -> Any:
    """Deserialize a stored value."""
    try:
        return json.loads(raw)
    except ValueError as e:
        raise BackingStoreError(
            f"Stored value for '{key}' is corrupt: {e}",
            key=key,
            operation="decode",
            cause=e,
        ) from e


def copy_default(default: Optional[Any]) -> Any:
    """Fresh copy of a default so callers cannot mutate a shared literal."""
    return copy.deepcopy(default)
