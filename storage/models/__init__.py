"""
Storage Models Package.

ORM models backing the database store: one row per
collection key, holding the JSON text and its version.
"""

from .base import Base
from .kv_entry import KeyValueEntry


__all__ = [
    "Base",
    "KeyValueEntry",
]
