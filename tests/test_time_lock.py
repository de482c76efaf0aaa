"""
Tests for the Time-Lock Escrow.

Validates:
- unlock_time computed once at creation
- StillLocked before unlock_time, single successful claim after
- AlreadyClaimed on every later claim
- Custody failures leave no record behind
"""

from __future__ import annotations

import pytest

from aria_control.core.errors import (
    AlreadyClaimed,
    AlreadyInitializedError,
    AuthorizationError,
    CollaboratorFailure,
    StillLocked,
    ValidationError,
)
from aria_control.core.events import EventSink, TokensLocked, TokensUnlocked
from aria_control.core.schema import U64_MAX, Lock, LockState
from aria_control.escrow.time_lock import TimeLockEscrow, derive_custody_authority

from support import PROGRAM_ID, RecordingCustody, memory_store, signer, unsigned

LOCK = "lock-1"
VAULT = "vault-1"


class TestCreateLock:
    def setup_method(self):
        self.session, self.store = memory_store()
        self.custody = RecordingCustody()
        self.events = EventSink()
        self.escrow = TimeLockEscrow(self.store, self.custody, self.events)

    def teardown_method(self):
        self.session.close()

    def test_create_computes_unlock_time(self):
        lock = self.escrow.create(LOCK, signer("owner"), "owner-src", VAULT, 1000, 86400, now=1000)
        assert lock.unlock_time == 87400
        assert lock.amount == 1000
        assert not lock.claimed

        assert len(self.custody.transfers) == 1
        transfer = self.custody.transfers[0]
        assert (transfer.source, transfer.destination, transfer.amount) == ("owner-src", VAULT, 1000)

        events = self.events.drain()
        assert isinstance(events[0], TokensLocked)
        assert events[0].unlock_time == 87400

    def test_zero_duration_is_immediately_unlockable(self):
        lock = self.escrow.create(LOCK, signer("owner"), "src", VAULT, 5, 0, now=1000)
        assert lock.state(1000) == LockState.UNLOCKABLE

    def test_zero_amount_rejected(self):
        with pytest.raises(ValidationError):
            self.escrow.create(LOCK, signer("owner"), "src", VAULT, 0, 10, now=1000)
        assert self.custody.transfers == []

    def test_unlock_time_overflow_rejected(self):
        with pytest.raises(ValidationError):
            self.escrow.create(LOCK, signer("owner"), "src", VAULT, 1, U64_MAX, now=1000)
        assert not self.store.exists(LOCK)

    def test_owner_must_sign(self):
        with pytest.raises(AuthorizationError):
            self.escrow.create(LOCK, unsigned("owner"), "src", VAULT, 10, 10, now=1000)
        assert self.custody.transfers == []

    def test_lock_account_in_use(self):
        self.escrow.create(LOCK, signer("owner"), "src", VAULT, 10, 10, now=1000)
        with pytest.raises(AlreadyInitializedError):
            self.escrow.create(LOCK, signer("owner"), "src", VAULT, 10, 10, now=1000)
        assert len(self.custody.transfers) == 1, "No funds move for a rejected lock"

    def test_custody_failure_writes_nothing(self):
        self.custody.fail = True
        with pytest.raises(CollaboratorFailure):
            self.escrow.create(LOCK, signer("owner"), "src", VAULT, 10, 10, now=1000)
        assert not self.store.exists(LOCK)
        assert self.events.drain() == []


class TestClaimLock:
    def setup_method(self):
        self.session, self.store = memory_store()
        self.custody = RecordingCustody()
        self.events = EventSink()
        self.escrow = TimeLockEscrow(self.store, self.custody, self.events)
        self.escrow.create(LOCK, signer("owner"), "owner-src", VAULT, 1000, 86400, now=1000)
        self.authority = derive_custody_authority(PROGRAM_ID, LOCK)
        self.custody.transfers.clear()
        self.events.drain()

    def teardown_method(self):
        self.session.close()

    def claim(self, now, caller=None, vault_authority=None):
        return self.escrow.claim(
            LOCK,
            caller or signer("owner"),
            VAULT,
            "owner-dst",
            vault_authority or self.authority,
            now=now,
        )

    def test_lifecycle(self):
        """Locked at 1000 for a day: still locked at 50000, claimable at 90000."""
        with pytest.raises(StillLocked):
            self.claim(50000)
        assert not self.escrow.load(LOCK).claimed
        assert self.custody.transfers == []

        lock = self.claim(90000)
        assert lock.claimed
        assert self.escrow.load(LOCK).claimed
        assert len(self.custody.transfers) == 1
        release = self.custody.transfers[0]
        assert release.amount == 1000
        assert release.source == VAULT
        assert release.destination == "owner-dst"

        events = self.events.drain()
        assert len(events) == 1
        assert isinstance(events[0], TokensUnlocked)
        assert events[0].amount == 1000

    def test_claim_exactly_at_unlock_time(self):
        assert self.claim(87400).claimed

    def test_second_claim_fails(self):
        self.claim(90000)
        self.custody.transfers.clear()

        for now in (90000, 10**9):
            with pytest.raises(AlreadyClaimed):
                self.claim(now)
        assert self.custody.transfers == [], "Nothing moves after the first claim"

    def test_only_owner_can_claim(self):
        with pytest.raises(AuthorizationError):
            self.claim(90000, caller=signer("mallory"))
        with pytest.raises(AuthorizationError):
            self.claim(90000, caller=unsigned("owner"))
        assert not self.escrow.load(LOCK).claimed

    def test_wrong_vault_authority(self):
        with pytest.raises(AuthorizationError):
            self.claim(90000, vault_authority="someone-else")
        assert self.custody.transfers == []

    def test_custody_failure_keeps_lock_claimable(self):
        self.custody.fail = True
        with pytest.raises(CollaboratorFailure):
            self.claim(90000)
        assert not self.escrow.load(LOCK).claimed

        self.custody.fail = False
        assert self.claim(90000).claimed


class TestLockState:
    def test_states(self):
        lock = Lock(owner="o", amount=1, unlock_time=100)
        assert lock.state(99) == LockState.ACTIVE
        assert lock.state(100) == LockState.UNLOCKABLE
        assert lock.model_copy(update={"claimed": True}).state(50) == LockState.CLAIMED

    def test_custody_authority_is_per_lock(self):
        a = derive_custody_authority(PROGRAM_ID, "lock-a")
        b = derive_custody_authority(PROGRAM_ID, "lock-b")
        assert a != b
        assert len(a) == 64
        assert derive_custody_authority("other-program", "lock-a") != a
