"""
Repository Layer Package.

All collection access goes through CollectionRepository,
which re-applies a mutation when a concurrent write wins.
"""

from .collection import CollectionRepository


__all__ = [
    "CollectionRepository",
]
