"""Shared test doubles and account helpers."""

from __future__ import annotations

from sqlalchemy.orm import Session

from aria_control.core.errors import CollaboratorFailure
from aria_control.core.schema import AccountRef
from aria_control.integrations.custody_client import TransferReceipt
from aria_control.ledger.database import make_engine
from aria_control.ledger.store import RecordStore

PROGRAM_ID = "AriaTest11111111111111111111111111111111111"


def signer(key: str, writable: bool = False) -> AccountRef:
    return AccountRef(key=key, is_signer=True, is_writable=writable)


def unsigned(key: str) -> AccountRef:
    return AccountRef(key=key)


def writable(key: str) -> AccountRef:
    return AccountRef(key=key, is_writable=True)


class RecordingCustody:
    """Custody double that records every transfer and can be told to refuse."""

    def __init__(self) -> None:
        self.transfers: list[TransferReceipt] = []
        self.fail = False

    def transfer(self, source: str, destination: str, authority: str, amount: int) -> TransferReceipt:
        if self.fail:
            raise CollaboratorFailure("custody refused the transfer")
        receipt = TransferReceipt(
            transfer_id=f"tx-{len(self.transfers) + 1}",
            source=source,
            destination=destination,
            amount=amount,
            status="settled",
        )
        self.transfers.append(receipt)
        return receipt


class BrokenClock:
    def now(self) -> int:
        raise RuntimeError("clock unavailable")


def memory_store(program_id: str = PROGRAM_ID) -> tuple[Session, RecordStore]:
    """Fresh in-memory database and a store bound to a session on it."""
    session = Session(make_engine("sqlite://"))
    return session, RecordStore(session, program_id)
