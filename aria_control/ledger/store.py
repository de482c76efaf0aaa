"""
Record Store — address-keyed storage of complete record blobs.

A ``RecordStore`` is bound to one SQLAlchemy session, i.e. to the transaction
of one instruction. It never commits: the instruction processor owns the
transaction boundary and discards every write of a failed instruction.

Records are written whole. ``create`` claims an empty address, ``save``
rewrites the full blob of an existing one; there is no partial update.
"""

from __future__ import annotations

import logging
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from aria_control.core.errors import (
    AlreadyInitializedError,
    AuthorizationError,
    RecordNotFoundError,
    ValidationError,
)
from aria_control.ledger.models import RecordDB

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


def encode_record(record: BaseModel) -> bytes:
    """Serialize a record to its stored blob."""
    return record.model_dump_json().encode("utf-8")


def decode_record(data: bytes, model: type[RecordT]) -> RecordT:
    """Deserialize a stored blob, rejecting malformed data."""
    try:
        return model.model_validate_json(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Stored data is not a valid {model.__name__}: {exc.error_count()} error(s)"
        ) from exc


class RecordStore:
    """Session-bound view over the ``records`` table."""

    def __init__(self, session: Session, program_id: str) -> None:
        self.session = session
        self.program_id = program_id

    def _row(self, address: str) -> RecordDB | None:
        return self.session.execute(
            select(RecordDB).where(RecordDB.address == address)
        ).scalar_one_or_none()

    def _owned_row(self, address: str, model: type[BaseModel]) -> RecordDB:
        row = self._row(address)
        if row is None:
            raise RecordNotFoundError(f"No {model.RECORD_KIND} record at {address}")
        if row.owner_program != self.program_id:
            raise AuthorizationError(
                f"Account {address} is owned by {row.owner_program}, "
                f"not {self.program_id}"
            )
        if row.record_kind != model.RECORD_KIND:
            raise ValidationError(
                f"Account {address} holds a {row.record_kind} record, "
                f"expected {model.RECORD_KIND}"
            )
        return row

    def exists(self, address: str) -> bool:
        return self._row(address) is not None

    def find_address(self, model: type[BaseModel]) -> str | None:
        """Address of this program's record of ``model``'s kind, for singleton records."""
        return self.session.execute(
            select(RecordDB.address)
            .where(RecordDB.owner_program == self.program_id)
            .where(RecordDB.record_kind == model.RECORD_KIND)
            .order_by(RecordDB.created_at)
            .limit(1)
        ).scalar_one_or_none()

    def read_raw(self, address: str) -> bytes | None:
        """Return the stored blob for ``address`` without decoding it."""
        row = self._row(address)
        return None if row is None else row.data

    def load(self, address: str, model: type[RecordT]) -> RecordT:
        """Load and decode the record at ``address`` as ``model``."""
        row = self._owned_row(address, model)
        return decode_record(row.data, model)

    def create(self, address: str, record: BaseModel) -> None:
        """
        Store ``record`` at an empty address.

        Raises:
            AlreadyInitializedError: If the address already holds a record.
        """
        if self.exists(address):
            raise AlreadyInitializedError(f"Account {address} is already initialized")
        self.session.add(
            RecordDB(
                address=address,
                record_kind=record.RECORD_KIND,
                owner_program=self.program_id,
                data=encode_record(record),
            )
        )
        self.session.flush()
        logger.debug("Record created: address=%s kind=%s", address, record.RECORD_KIND)

    def save(self, address: str, record: BaseModel) -> None:
        """Rewrite the complete blob of an existing record."""
        row = self._owned_row(address, type(record))
        row.data = encode_record(record)
        self.session.flush()
        logger.debug("Record saved: address=%s kind=%s", address, record.RECORD_KIND)
