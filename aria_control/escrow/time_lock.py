"""
Time-Lock Escrow — hold a quantity in custody until an unlock time.

Lifecycle of a lock:

    Active ──(time passes)──▶ Unlockable ──(claim)──▶ Claimed

Active → Unlockable is not a call; it happens when the trusted clock reaches
``unlock_time``. ``unlock_time`` is computed once, at creation, and never
recomputed. A lock is written exactly twice: when it is created and when it
is claimed. There are no partial claims and no re-locking.

Custody is external. Creation moves ``amount`` from the owner's source
account into the vault under the owner's signature; claiming releases it from
the vault under the program-derived custody authority of the lock.
"""

from __future__ import annotations

import hashlib
import logging

from aria_control.core.authorization import require_identity, require_signer
from aria_control.core.errors import (
    AlreadyClaimed,
    AlreadyInitializedError,
    AuthorizationError,
    StillLocked,
    ValidationError,
)
from aria_control.core.events import EventSink, TokensLocked, TokensUnlocked
from aria_control.core.schema import U64_MAX, AccountRef, Lock, LockState
from aria_control.integrations.custody_client import CustodyTransfer
from aria_control.ledger.store import RecordStore

logger = logging.getLogger(__name__)


def derive_custody_authority(program_id: str, lock_address: str) -> str:
    """Program-derived authority allowed to release the vault of a lock."""
    seed = f"{program_id}:vault:{lock_address}".encode("utf-8")
    return hashlib.sha256(seed).hexdigest()


class TimeLockEscrow:
    """Creates and claims time locks against one instruction's record store."""

    def __init__(
        self,
        store: RecordStore,
        custody: CustodyTransfer,
        events: EventSink | None = None,
    ) -> None:
        self.store = store
        self.custody = custody
        self.events = events or EventSink()

    def load(self, address: str) -> Lock:
        return self.store.load(address, Lock)

    def custody_authority(self, address: str) -> str:
        return derive_custody_authority(self.store.program_id, address)

    def create(
        self,
        address: str,
        owner: AccountRef,
        source: str,
        vault: str,
        amount: int,
        duration: int,
        now: int,
    ) -> Lock:
        """
        Lock ``amount`` until ``now + duration``.

        Raises:
            ValidationError: If amount is not positive or a value is out of range.
            AuthorizationError: If the owner did not sign.
            AlreadyInitializedError: If ``address`` already holds a record.
            CollaboratorFailure: If custody refuses the transfer; nothing is written.
        """
        if amount <= 0:
            raise ValidationError("Lock amount must be greater than zero")
        if amount > U64_MAX:
            raise ValidationError(f"Lock amount {amount} exceeds the maximum")
        if duration < 0:
            raise ValidationError("Lock duration cannot be negative")
        unlock_time = now + duration
        if unlock_time > U64_MAX:
            raise ValidationError("Unlock time overflows")

        require_signer(owner)

        # Checked before custody moves anything.
        if self.store.exists(address):
            raise AlreadyInitializedError(f"Lock account {address} is already in use")

        self.custody.transfer(
            source=source, destination=vault, authority=owner.key, amount=amount
        )

        lock = Lock(owner=owner.key, amount=amount, unlock_time=unlock_time)
        self.store.create(address, lock)

        logger.info("Locked %d until %d: lock=%s owner=%s",
                    amount, unlock_time, address, owner.key)
        self.events.emit(
            TokensLocked(
                lock_account=address,
                owner=owner.key,
                amount=amount,
                unlock_time=unlock_time,
            )
        )
        return lock

    def claim(
        self,
        address: str,
        caller: AccountRef,
        vault: str,
        destination: str,
        vault_authority: str,
        now: int,
    ) -> Lock:
        """
        Release the full locked amount to ``destination``.

        Raises:
            AuthorizationError: If the caller is not the signing owner, or
                ``vault_authority`` is not the lock's custody authority.
            AlreadyClaimed: If the lock was claimed before.
            StillLocked: If ``now`` is before ``unlock_time``.
            CollaboratorFailure: If custody refuses the release; nothing is written.
        """
        lock = self.load(address)
        require_identity(caller, lock.owner, "owner of this lock")

        if vault_authority != self.custody_authority(address):
            raise AuthorizationError(
                f"{vault_authority} is not the custody authority of lock {address}"
            )

        state = lock.state(now)
        if state == LockState.CLAIMED:
            raise AlreadyClaimed(f"Lock {address} has already been claimed")
        if state == LockState.ACTIVE:
            raise StillLocked(
                f"Lock {address} is still locked until {lock.unlock_time} (now {now})"
            )

        self.custody.transfer(
            source=vault,
            destination=destination,
            authority=vault_authority,
            amount=lock.amount,
        )

        claimed = lock.model_copy(update={"claimed": True})
        self.store.save(address, claimed)

        logger.info("Unlocked %d: lock=%s destination=%s",
                    lock.amount, address, destination)
        self.events.emit(
            TokensUnlocked(
                lock_account=address,
                owner=lock.owner,
                destination=destination,
                amount=lock.amount,
            )
        )
        return claimed
