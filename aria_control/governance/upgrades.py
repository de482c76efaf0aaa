"""
Upgrade Scheduler — time-delayed self-upgrade of the program.

States:

    NoUpgrade ──schedule──▶ Pending ──finalize──▶ NoUpgrade (minor + 1)
                              │
                              └──cancel──▶ NoUpgrade (no version change)

Scheduling is dual-gated: the caller must be the recorded upgrade authority
AND hold Admin in the access control ledger. Revoking the Admin role therefore
blocks new schedules even though the identity is still the upgrade authority.
Finalize and cancel only require the upgrade authority.

``finalize`` is the only automatic version change: minor increments by one,
patch resets to zero, major is untouched.
"""

from __future__ import annotations

import logging

from aria_control.core.authorization import require_identity, require_signer
from aria_control.core.errors import (
    InvariantViolation,
    NoUpgradeScheduled,
    UpgradeInProgress,
    UpgradeTimeNotReached,
    ValidationError,
)
from aria_control.core.events import (
    EventSink,
    UpgradeCancelled,
    UpgradeFinalized,
    UpgradeScheduled,
    VersionInitialized,
)
from aria_control.core.schema import (
    U8_MAX,
    U64_MAX,
    AccountRef,
    PendingUpgrade,
    Role,
    VersionRecord,
)
from aria_control.governance.access_control import AccessControlLedger
from aria_control.ledger.store import RecordStore

logger = logging.getLogger(__name__)


class UpgradeScheduler:
    """
    Upgrade state machine over a ``VersionRecord``.

    The access control ledger is consulted read-only when scheduling.
    """

    def __init__(
        self,
        store: RecordStore,
        access_control: AccessControlLedger,
        events: EventSink | None = None,
    ) -> None:
        self.store = store
        self.access_control = access_control
        self.events = events or EventSink()

    def load(self, address: str) -> VersionRecord:
        return self.store.load(address, VersionRecord)

    def initialize(self, address: str, authority: AccountRef) -> VersionRecord:
        """Create version 1.0.0 with the signer as upgrade authority."""
        require_signer(authority)
        version = VersionRecord(upgrade_authority=authority.key)
        self.store.create(address, version)

        logger.info("Program version initialized: %s authority=%s",
                    version.version_string, authority.key)
        self.events.emit(
            VersionInitialized(
                version_account=address,
                upgrade_authority=authority.key,
                version=version.version_string,
            )
        )
        return version

    def schedule(
        self,
        address: str,
        caller: AccountRef,
        authority_ledger: str,
        target: str,
        delay: int,
        now: int,
    ) -> PendingUpgrade:
        """
        Schedule an upgrade to ``target`` eligible at ``now + delay``.

        Raises:
            AuthorizationError: If the caller is not the signing upgrade
                authority or does not hold Admin in the ledger.
            UpgradeInProgress: If an upgrade is already pending.
            ValidationError: If the delay is negative or overflows.
        """
        version = self.load(address)
        require_identity(caller, version.upgrade_authority, "upgrade authority")
        self.access_control.require_role(authority_ledger, caller, Role.ADMIN)

        if version.pending is not None:
            raise UpgradeInProgress(
                f"Upgrade to {version.pending.target} already pending "
                f"until {version.pending.eligible_at}"
            )

        if delay < 0:
            raise ValidationError("Upgrade delay cannot be negative")
        eligible_at = now + delay
        if eligible_at > U64_MAX:
            raise ValidationError("Upgrade eligibility time overflows")

        pending = PendingUpgrade(target=target, eligible_at=eligible_at)
        self.store.save(address, version.model_copy(update={"pending": pending}))

        logger.info("Upgrade scheduled to %s at timestamp %d", target, eligible_at)
        self.events.emit(
            UpgradeScheduled(
                version_account=address, target=target, eligible_at=eligible_at
            )
        )
        return pending

    def finalize(self, address: str, caller: AccountRef, now: int) -> VersionRecord:
        """
        Apply the pending upgrade: minor + 1, patch = 0, pending cleared.

        Raises:
            AuthorizationError: If the caller is not the signing upgrade authority.
            NoUpgradeScheduled: If nothing is pending.
            UpgradeTimeNotReached: If ``now`` is before ``eligible_at``.
            InvariantViolation: If the minor version cannot grow any further.
        """
        version = self.load(address)
        require_identity(caller, version.upgrade_authority, "upgrade authority")

        pending = version.pending
        if pending is None:
            raise NoUpgradeScheduled("No upgrade is scheduled")
        if now < pending.eligible_at:
            raise UpgradeTimeNotReached(
                f"Upgrade eligible at {pending.eligible_at}, now {now}"
            )
        if version.minor >= U8_MAX:
            raise InvariantViolation(
                f"Minor version {version.minor} cannot be incremented"
            )

        upgraded = version.model_copy(
            update={"minor": version.minor + 1, "patch": 0, "pending": None}
        )
        self.store.save(address, upgraded)

        logger.info("Upgrade finalized. New version: %s", upgraded.version_string)
        self.events.emit(
            UpgradeFinalized(
                version_account=address,
                target=pending.target,
                version=upgraded.version_string,
            )
        )
        return upgraded

    def cancel(self, address: str, caller: AccountRef) -> VersionRecord:
        """
        Drop the pending upgrade without changing the version.

        Raises:
            AuthorizationError: If the caller is not the signing upgrade authority.
            NoUpgradeScheduled: If nothing is pending.
        """
        version = self.load(address)
        require_identity(caller, version.upgrade_authority, "upgrade authority")

        pending = version.pending
        if pending is None:
            raise NoUpgradeScheduled("No upgrade is scheduled")

        cancelled = version.model_copy(update={"pending": None})
        self.store.save(address, cancelled)

        logger.info("Scheduled upgrade to %s has been cancelled", pending.target)
        self.events.emit(
            UpgradeCancelled(version_account=address, target=pending.target)
        )
        return cancelled
