"""
Key-Value Entry Model.

One row per backing store key. The value column holds the
JSON text of the whole collection; version increases by one
on every write and guards compare-and-set updates.
"""

from datetime import datetime

from sqlalchemy import Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base


class KeyValueEntry(Base):
    """A single stored collection."""

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Collection key (users, policies, audit_logs, ...)"
    )

    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON text of the collection"
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Write counter used for compare-and-set"
    )

    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Time of the last write"
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry(key={self.key}, version={self.version})>"
