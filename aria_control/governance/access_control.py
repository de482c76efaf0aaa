"""
Access Control Ledger — role membership and the Admin gate.

Every privileged operation of the control plane asks this ledger whether the
caller holds a role. Membership is existential: an identity holds a role if
it is the primary admin or if any active record matches (identity, role).

Rules:
- The primary admin is fixed when the ledger is created and holds every role.
- The primary admin's Admin membership can never be revoked.
- Adding an active (identity, role) pair twice is a no-op.
- Removal deactivates a record; records are never deleted or reused.
- A deployment has exactly one ledger; role checks against any other address
  are refused.

Other components consult the ledger read-only through ``has_role`` /
``require_role``; only this module writes it.
"""

from __future__ import annotations

import logging

from aria_control.core.authorization import require_signer
from aria_control.core.errors import (
    AlreadyInitializedError,
    AuthorizationError,
    InvariantViolation,
    ValidationError,
)
from aria_control.core.events import (
    AuthorityAdded,
    AuthorityInitialized,
    AuthorityRemoved,
    EventSink,
)
from aria_control.core.schema import (
    AccountRef,
    AuthorityLedger,
    AuthorityRecord,
    Role,
)
from aria_control.ledger.store import RecordStore

logger = logging.getLogger(__name__)


class AccessControlLedger:
    """
    Role membership store bound to one instruction's record store.

    Usage:
        ledger = AccessControlLedger(store, events)
        ledger.initialize("auth-1", admin)
        ledger.add_authority("auth-1", admin, "minter-key", Role.MINTER)
        ledger.has_role("auth-1", "minter-key", Role.MINTER)  # True
    """

    def __init__(self, store: RecordStore, events: EventSink | None = None) -> None:
        self.store = store
        self.events = events or EventSink()

    def load(self, address: str) -> AuthorityLedger:
        return self.store.load(address, AuthorityLedger)

    def initialize(self, address: str, primary_admin: AccountRef) -> AuthorityLedger:
        """
        Create the ledger at ``address`` with ``primary_admin`` as its only Admin.

        Raises:
            AuthorizationError: If the primary admin did not sign.
            AlreadyInitializedError: If ``address`` already holds a record
                or the deployment already has a ledger elsewhere.
        """
        require_signer(primary_admin)
        existing = self.store.find_address(AuthorityLedger)
        if existing is not None and existing != address:
            raise AlreadyInitializedError(
                f"Deployment authority ledger already exists at {existing}"
            )
        ledger = AuthorityLedger.create(primary_admin.key)
        self.store.create(address, ledger)

        logger.info("Authority ledger initialized: address=%s primary_admin=%s",
                    address, primary_admin.key)
        self.events.emit(
            AuthorityInitialized(ledger=address, primary_admin=primary_admin.key)
        )
        return ledger

    def require_role(self, address: str, caller: AccountRef, role: Role) -> AuthorityLedger:
        """
        Check that ``caller`` signed and holds ``role``. Never writes the ledger.

        Returns:
            The ledger as read, so the caller can continue from the same snapshot.
        """
        require_signer(caller)
        deployment_ledger = self.store.find_address(AuthorityLedger)
        if deployment_ledger is not None and address != deployment_ledger:
            raise AuthorizationError(
                f"{address} is not the deployment authority ledger"
            )
        ledger = self.load(address)
        if not ledger.has_role(caller.key, role):
            raise AuthorizationError(
                f"{caller.key} does not hold the {role.value} role"
            )
        return ledger

    def add_authority(
        self,
        address: str,
        caller: AccountRef,
        target_identity: str,
        role: Role,
    ) -> None:
        """
        Grant ``role`` to ``target_identity``. Requires an Admin caller.

        Idempotent: if an active record for the pair exists nothing is written.
        """
        ledger = self.require_role(address, caller, Role.ADMIN)

        if ledger.active_index(target_identity, role) is not None:
            logger.info("Authority already active: identity=%s role=%s",
                        target_identity, role.value)
            return

        updated = ledger.model_copy(
            update={
                "records": [
                    *ledger.records,
                    AuthorityRecord(identity=target_identity, role=role),
                ]
            }
        )
        self.store.save(address, updated)

        logger.info("Authority added: identity=%s role=%s by=%s",
                    target_identity, role.value, caller.key)
        self.events.emit(
            AuthorityAdded(
                ledger=address, authority=target_identity, role=role, admin=caller.key
            )
        )

    def remove_authority(
        self,
        address: str,
        caller: AccountRef,
        target_identity: str,
        role: Role,
    ) -> None:
        """
        Deactivate the active record for (target_identity, role).

        Raises:
            AuthorizationError: If the caller is not a signing Admin.
            InvariantViolation: If the pair is the primary admin's Admin role.
            ValidationError: If no matching active record exists.
        """
        ledger = self.require_role(address, caller, Role.ADMIN)

        if target_identity == ledger.primary_admin and role == Role.ADMIN:
            raise InvariantViolation(
                "The primary admin's Admin role can never be removed"
            )

        index = ledger.active_index(target_identity, role)
        if index is None:
            raise ValidationError(
                f"No active {role.value} authority for {target_identity}"
            )

        records = list(ledger.records)
        records[index] = records[index].model_copy(update={"active": False})
        self.store.save(address, ledger.model_copy(update={"records": records}))

        logger.info("Authority removed: identity=%s role=%s by=%s",
                    target_identity, role.value, caller.key)
        self.events.emit(
            AuthorityRemoved(
                ledger=address, authority=target_identity, role=role, admin=caller.key
            )
        )

    def has_role(self, address: str, identity: str, role: Role) -> bool:
        """Pure membership query against the stored ledger."""
        return self.load(address).has_role(identity, role)
