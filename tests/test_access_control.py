"""
Tests for the Access Control Ledger.

Validates:
- Primary admin holds every role
- Admin gate on add / remove
- Idempotent grants and soft-delete removal
- The primary admin's Admin role can never be revoked
"""

from __future__ import annotations

import pytest

from aria_control.core.errors import (
    AlreadyInitializedError,
    AuthorizationError,
    InvariantViolation,
    RecordNotFoundError,
    ValidationError,
)
from aria_control.core.events import AuthorityAdded, AuthorityRemoved, EventSink
from aria_control.core.schema import AuthorityLedger, Role
from aria_control.governance.access_control import AccessControlLedger

from support import memory_store, signer, unsigned

LEDGER = "authority-ledger"


class TestInitialize:
    """Creating the authority ledger."""

    def setup_method(self):
        self.session, self.store = memory_store()
        self.events = EventSink()
        self.acl = AccessControlLedger(self.store, self.events)

    def teardown_method(self):
        self.session.close()

    def test_initialize_seeds_primary_admin(self):
        ledger = self.acl.initialize(LEDGER, signer("alice"))
        assert ledger.primary_admin == "alice"
        assert len(ledger.records) == 1
        assert ledger.records[0].identity == "alice"
        assert ledger.records[0].role == Role.ADMIN
        assert ledger.records[0].active

    def test_initialize_requires_signature(self):
        with pytest.raises(AuthorizationError):
            self.acl.initialize(LEDGER, unsigned("alice"))
        assert not self.store.exists(LEDGER)

    def test_initialize_twice_fails(self):
        self.acl.initialize(LEDGER, signer("alice"))
        with pytest.raises(AlreadyInitializedError):
            self.acl.initialize(LEDGER, signer("mallory"))
        assert self.acl.load(LEDGER).primary_admin == "alice"

    def test_second_ledger_refused(self):
        self.acl.initialize(LEDGER, signer("alice"))
        with pytest.raises(AlreadyInitializedError):
            self.acl.initialize("mallory-ledger", signer("mallory"))
        assert not self.store.exists("mallory-ledger")

    def test_role_check_against_other_address(self):
        self.acl.initialize(LEDGER, signer("alice"))
        with pytest.raises(AuthorizationError):
            self.acl.require_role("elsewhere", signer("alice"), Role.ADMIN)

    def test_load_missing_ledger(self):
        with pytest.raises(RecordNotFoundError):
            self.acl.load("nowhere")


class TestPrimaryAdmin:
    """The primary admin holds every role implicitly."""

    def test_has_every_role_without_records(self):
        ledger = AuthorityLedger(primary_admin="alice", records=[])
        for role in Role:
            assert ledger.has_role("alice", role), f"primary admin should hold {role.value}"

    def test_other_identity_holds_nothing_by_default(self):
        ledger = AuthorityLedger.create("alice")
        for role in Role:
            assert not ledger.has_role("bob", role)


class TestAddAuthority:
    """Granting roles."""

    def setup_method(self):
        self.session, self.store = memory_store()
        self.events = EventSink()
        self.acl = AccessControlLedger(self.store, self.events)
        self.acl.initialize(LEDGER, signer("alice"))
        self.events.drain()

    def teardown_method(self):
        self.session.close()

    def test_grant_minter(self):
        """A grants Minter to B: B is a minter but not an admin."""
        self.acl.add_authority(LEDGER, signer("alice"), "bob", Role.MINTER)
        assert self.acl.has_role(LEDGER, "bob", Role.MINTER)
        assert not self.acl.has_role(LEDGER, "bob", Role.ADMIN)

        events = self.events.drain()
        assert len(events) == 1
        assert isinstance(events[0], AuthorityAdded)
        assert events[0].authority == "bob"
        assert events[0].role == Role.MINTER
        assert events[0].admin == "alice"

    def test_grant_twice_keeps_one_active_record(self):
        self.acl.add_authority(LEDGER, signer("alice"), "bob", Role.MINTER)
        self.acl.add_authority(LEDGER, signer("alice"), "bob", Role.MINTER)

        ledger = self.acl.load(LEDGER)
        matching = [
            r for r in ledger.records
            if r.identity == "bob" and r.role == Role.MINTER and r.active
        ]
        assert len(matching) == 1, "Duplicate grant must not add a second record"
        assert len(self.events.drain()) == 1, "No event for a no-op grant"

    def test_non_admin_cannot_grant(self):
        self.acl.add_authority(LEDGER, signer("alice"), "bob", Role.MINTER)
        before = self.store.read_raw(LEDGER)

        with pytest.raises(AuthorizationError):
            self.acl.add_authority(LEDGER, signer("bob"), "carol", Role.BURNER)
        assert self.store.read_raw(LEDGER) == before

    def test_unsigned_admin_cannot_grant(self):
        with pytest.raises(AuthorizationError):
            self.acl.add_authority(LEDGER, unsigned("alice"), "bob", Role.MINTER)
        assert not self.acl.has_role(LEDGER, "bob", Role.MINTER)

    def test_granted_admin_can_grant(self):
        self.acl.add_authority(LEDGER, signer("alice"), "bob", Role.ADMIN)
        self.acl.add_authority(LEDGER, signer("bob"), "carol", Role.FREEZER)
        assert self.acl.has_role(LEDGER, "carol", Role.FREEZER)


class TestRemoveAuthority:
    """Revoking roles."""

    def setup_method(self):
        self.session, self.store = memory_store()
        self.events = EventSink()
        self.acl = AccessControlLedger(self.store, self.events)
        self.acl.initialize(LEDGER, signer("alice"))
        self.acl.add_authority(LEDGER, signer("alice"), "bob", Role.MINTER)
        self.events.drain()

    def teardown_method(self):
        self.session.close()

    def test_remove_deactivates_record(self):
        self.acl.remove_authority(LEDGER, signer("alice"), "bob", Role.MINTER)

        assert not self.acl.has_role(LEDGER, "bob", Role.MINTER)
        ledger = self.acl.load(LEDGER)
        assert len(ledger.records) == 2, "Records are deactivated, never deleted"
        assert not ledger.records[1].active

        events = self.events.drain()
        assert len(events) == 1
        assert isinstance(events[0], AuthorityRemoved)

    def test_primary_admin_admin_role_is_permanent(self):
        """Revoking the primary admin's Admin role fails and changes nothing."""
        before = self.store.read_raw(LEDGER)

        with pytest.raises(InvariantViolation):
            self.acl.remove_authority(LEDGER, signer("alice"), "alice", Role.ADMIN)

        assert self.store.read_raw(LEDGER) == before, "Ledger must be byte-for-byte unchanged"
        assert self.acl.has_role(LEDGER, "alice", Role.ADMIN)
        assert self.events.drain() == []

    def test_other_admin_cannot_revoke_primary_admin(self):
        self.acl.add_authority(LEDGER, signer("alice"), "carol", Role.ADMIN)
        before = self.store.read_raw(LEDGER)

        with pytest.raises(InvariantViolation):
            self.acl.remove_authority(LEDGER, signer("carol"), "alice", Role.ADMIN)
        assert self.store.read_raw(LEDGER) == before

    def test_remove_missing_pair_fails(self):
        with pytest.raises(ValidationError):
            self.acl.remove_authority(LEDGER, signer("alice"), "bob", Role.BURNER)

    def test_remove_twice_fails(self):
        self.acl.remove_authority(LEDGER, signer("alice"), "bob", Role.MINTER)
        with pytest.raises(ValidationError):
            self.acl.remove_authority(LEDGER, signer("alice"), "bob", Role.MINTER)

    def test_non_admin_cannot_remove(self):
        with pytest.raises(AuthorizationError):
            self.acl.remove_authority(LEDGER, signer("bob"), "bob", Role.MINTER)
        assert self.acl.has_role(LEDGER, "bob", Role.MINTER)

    def test_regrant_after_removal_appends_new_record(self):
        self.acl.remove_authority(LEDGER, signer("alice"), "bob", Role.MINTER)
        self.acl.add_authority(LEDGER, signer("alice"), "bob", Role.MINTER)

        ledger = self.acl.load(LEDGER)
        assert self.acl.has_role(LEDGER, "bob", Role.MINTER)
        assert [r.active for r in ledger.records] == [True, False, True]

    def test_removed_admin_loses_gate(self):
        self.acl.add_authority(LEDGER, signer("alice"), "carol", Role.ADMIN)
        self.acl.remove_authority(LEDGER, signer("alice"), "carol", Role.ADMIN)
        with pytest.raises(AuthorizationError):
            self.acl.add_authority(LEDGER, signer("carol"), "dave", Role.MINTER)
