"""
Record store and event journal — SQLAlchemy models.

Two tables back the control plane:

1. ``records``: one row per address. The row holds the complete serialized
   record; a mutation rewrites the whole ``data`` blob, never a byte range.
2. ``journal_entries``: append-only, SHA-256 hash-chained log of the events
   emitted by successful instructions. No UPDATE or DELETE is issued.

Generic column types are used so the same models work on PostgreSQL and on
SQLite.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all control-plane models."""
    pass


class RecordDB(Base):
    """
    A persisted control-plane record, keyed by its storage address.

    ``record_kind`` names the record model stored in ``data`` and
    ``owner_program`` the program that owns the address; both are checked on
    every load.
    """

    __tablename__ = "records"

    address = Column(
        String(128), primary_key=True,
        comment="Storage address that owns the record",
    )
    record_kind = Column(
        String(40), nullable=False, index=True,
        comment="Record model stored at this address",
    )
    owner_program = Column(
        String(128), nullable=False,
        comment="Program id owning this address",
    )
    data = Column(
        LargeBinary, nullable=False,
        comment="Complete serialized record",
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Record address={self.address} kind={self.record_kind}>"


class JournalEntryDB(Base):
    """
    A single entry of the event journal.

    Each entry stores SHA-256(previous_hash || canonical_json(entry_fields)),
    so any retroactive alteration is detectable by recomputing the chain.
    """

    __tablename__ = "journal_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    sequence_number = Column(
        Integer, nullable=False, unique=True, index=True,
        comment="Monotonically increasing sequence number",
    )

    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous entry",
    )
    entry_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this entry",
    )

    timestamp = Column(
        DateTime(timezone=True), nullable=False, default=func.now(),
        comment="When this entry was recorded",
    )

    event_kind = Column(
        String(50), nullable=False, index=True,
        comment="Kind of event recorded",
    )
    instruction = Column(
        String(50), nullable=False,
        comment="Instruction that emitted the event",
    )
    signer = Column(
        String(128), nullable=True,
        comment="First signer of the instruction",
    )

    content = Column(
        JSON, nullable=False,
        comment="Event payload",
    )

    __table_args__ = (
        Index("ix_journal_kind_timestamp", "event_kind", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<JournalEntry seq={self.sequence_number} "
            f"kind={self.event_kind} hash={self.entry_hash[:12]}...>"
        )
