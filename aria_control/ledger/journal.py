"""
Event Journal — Append-only, hash-chained record of control-plane events.

This service provides the core operations for the journal:
- Append events with automatic hash chain computation
- Verify the integrity of the full hash chain
- Query entries by kind or recency

Appends join the caller's session so that events are committed together with
the record writes of the instruction that emitted them, or not at all.

Usage:
    journal = EventJournal(engine)
    journal.initialize()  # Seed genesis entry

    with journal.SessionLocal.begin() as session:
        journal.append(session, event, instruction="add_authority", signer=admin)
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from aria_control.ledger.models import JournalEntryDB

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════
# Genesis Constants
# ════════════════════════════════════════════════════════════════

GENESIS_HASH = "0" * 64  # The "previous hash" for the first entry in the chain
GENESIS_KIND = "genesis"


class JournalIntegrityError(Exception):
    """Raised when the journal cannot be appended to consistently."""
    pass


class EventJournal:
    """
    Event journal of the control plane.

    Enforces append-only semantics and automatic hash chain computation.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Seed the genesis entry if the journal is empty."""
        with self.SessionLocal.begin() as session:
            existing = session.execute(
                select(JournalEntryDB).where(JournalEntryDB.sequence_number == 0)
            ).scalar_one_or_none()

            if existing is None:
                genesis = self._create_genesis_entry()
                session.add(genesis)
                logger.info(
                    "Journal genesis entry created: hash=%s", genesis.entry_hash[:16]
                )

    def _create_genesis_entry(self) -> JournalEntryDB:
        entry_id = uuid4()
        timestamp = datetime.now(timezone.utc)
        content = {"message": "Genesis of the ARIA control-plane event journal"}

        entry_hash = self._compute_hash(
            entry_id=entry_id,
            sequence_number=0,
            previous_hash=GENESIS_HASH,
            timestamp=timestamp,
            event_kind=GENESIS_KIND,
            instruction=GENESIS_KIND,
            signer=None,
            content=content,
        )

        return JournalEntryDB(
            id=entry_id,
            sequence_number=0,
            previous_hash=GENESIS_HASH,
            entry_hash=entry_hash,
            timestamp=timestamp,
            event_kind=GENESIS_KIND,
            instruction=GENESIS_KIND,
            signer=None,
            content=content,
        )

    def append(
        self,
        session: Session,
        event: BaseModel,
        instruction: str,
        signer: str | None = None,
    ) -> JournalEntryDB:
        """
        Append ``event`` to the journal inside ``session``.

        The caller commits. Nothing is written if the caller's transaction
        rolls back.

        Raises:
            JournalIntegrityError: If the genesis entry is missing.
        """
        last_entry = session.execute(
            select(JournalEntryDB)
            .order_by(JournalEntryDB.sequence_number.desc())
            .limit(1)
        ).scalar_one_or_none()

        if last_entry is None:
            raise JournalIntegrityError(
                "Cannot append: no genesis entry found. Call initialize() first."
            )

        new_seq = last_entry.sequence_number + 1
        previous_hash = last_entry.entry_hash
        entry_id = uuid4()
        timestamp = datetime.now(timezone.utc)
        content = event.model_dump(mode="json")
        event_kind = content["kind"]

        entry_hash = self._compute_hash(
            entry_id=entry_id,
            sequence_number=new_seq,
            previous_hash=previous_hash,
            timestamp=timestamp,
            event_kind=event_kind,
            instruction=instruction,
            signer=signer,
            content=content,
        )

        entry = JournalEntryDB(
            id=entry_id,
            sequence_number=new_seq,
            previous_hash=previous_hash,
            entry_hash=entry_hash,
            timestamp=timestamp,
            event_kind=event_kind,
            instruction=instruction,
            signer=signer,
            content=content,
        )
        session.add(entry)
        session.flush()

        logger.info(
            "Journal entry appended: seq=%d kind=%s hash=%s",
            new_seq, event_kind, entry_hash[:16],
        )
        return entry

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Verify the integrity of the entire hash chain.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        with self.SessionLocal() as session:
            entries = session.execute(
                select(JournalEntryDB).order_by(JournalEntryDB.sequence_number.asc())
            ).scalars().all()

            if not entries:
                return False, 0, "No entries found in journal"

            first = entries[0]
            if first.sequence_number != 0:
                return False, 0, f"First entry has sequence {first.sequence_number}, expected 0"

            if first.previous_hash != GENESIS_HASH:
                return False, 0, "Genesis entry has incorrect previous_hash"

            for i, entry in enumerate(entries):
                expected_hash = self._compute_hash(
                    entry_id=entry.id,
                    sequence_number=entry.sequence_number,
                    previous_hash=entry.previous_hash,
                    timestamp=entry.timestamp,
                    event_kind=entry.event_kind,
                    instruction=entry.instruction,
                    signer=entry.signer,
                    content=entry.content,
                )

                if entry.entry_hash != expected_hash:
                    return (
                        False, i,
                        f"Hash mismatch at sequence {entry.sequence_number}: "
                        f"stored={entry.entry_hash[:16]}... "
                        f"computed={expected_hash[:16]}..."
                    )

                if i > 0 and entry.previous_hash != entries[i - 1].entry_hash:
                    return (
                        False, i,
                        f"Chain break at sequence {entry.sequence_number}: "
                        f"previous_hash does not match prior entry's hash"
                    )

            return (
                True, len(entries),
                f"Chain verified: {len(entries)} entries, integrity intact"
            )

    def get_latest_entries(self, limit: int = 50) -> list[JournalEntryDB]:
        """Retrieve the most recent journal entries."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(JournalEntryDB)
                    .order_by(JournalEntryDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_entries_by_kind(self, event_kind: str, limit: int = 100) -> list[JournalEntryDB]:
        """Retrieve journal entries of one event kind, newest first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(JournalEntryDB)
                    .where(JournalEntryDB.event_kind == event_kind)
                    .order_by(JournalEntryDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_entry_count(self) -> int:
        """Return the total number of entries, genesis included."""
        with self.SessionLocal() as session:
            result = session.execute(
                select(func.count()).select_from(JournalEntryDB)
            )
            return result.scalar() or 0

    # ── Internal ────────────────────────────────────────────────

    @staticmethod
    def _normalize_timestamp(timestamp: datetime) -> str:
        # SQLite hands back naive datetimes; hash the UTC wall time either way.
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
        return timestamp.isoformat()

    @classmethod
    def _compute_hash(
        cls,
        entry_id: UUID,
        sequence_number: int,
        previous_hash: str,
        timestamp: datetime,
        event_kind: str,
        instruction: str,
        signer: str | None,
        content: dict[str, Any],
    ) -> str:
        """Hash = SHA-256(previous_hash || canonical_json(entry_fields))."""
        hashable = {
            "id": str(entry_id),
            "sequence_number": sequence_number,
            "previous_hash": previous_hash,
            "timestamp": cls._normalize_timestamp(timestamp),
            "event_kind": event_kind,
            "instruction": instruction,
            "signer": signer,
            "content": content,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (previous_hash + canonical).encode("utf-8")
        ).hexdigest()
