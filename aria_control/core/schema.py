"""
Control-Plane Schema — Pydantic models for every persisted record.

These models are the canonical data structures of the control plane. Each
record is stored as one complete serialized blob under the address that owns
it (see ``aria_control.ledger.store``); an operation never patches part of a
record, it writes the whole new value.

Records:
    AuthorityLedger   role membership for the deployment
    Lock              one time-locked escrow position
    VersionRecord     program version and the optional pending upgrade
    ListingConfig     third-party listing configuration
    TokenMetadata     descriptive name / symbol / uri of the asset
"""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import ClassVar

from pydantic import BaseModel, Field

U8_MAX = 2**8 - 1
U64_MAX = 2**64 - 1

PRICE_DECIMALS = 6
MAX_FEE_BPS = 10_000

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class Role(str, enum.Enum):
    """Closed set of roles an identity can hold in the authority ledger."""

    ADMIN = "admin"
    MINTER = "minter"
    FREEZER = "freezer"
    BURNER = "burner"

    @property
    def index(self) -> int:
        """Wire index of the role (Admin = 0)."""
        return list(Role).index(self)

    @classmethod
    def from_index(cls, index: int) -> Role:
        return list(cls)[index]


class LockState(str, enum.Enum):
    """Derived lifecycle state of a time lock."""

    ACTIVE = "active"  # now < unlock_time
    UNLOCKABLE = "unlockable"  # now >= unlock_time, not yet claimed
    CLAIMED = "claimed"  # terminal


class UpgradeState(str, enum.Enum):
    """Derived state of the upgrade scheduler."""

    NO_UPGRADE = "no_upgrade"
    PENDING = "pending"


# ════════════════════════════════════════════════════════════════
# Accounts
# ════════════════════════════════════════════════════════════════


class AccountRef(BaseModel):
    """
    One entry of the ordered account list carried by a command.

    ``is_signer`` is supplied by the host, which has already verified the
    signature; the control plane only reads the flag.
    """

    model_config = {"frozen": True}

    key: str = Field(min_length=1, description="Account address")
    is_signer: bool = False
    is_writable: bool = False


# ════════════════════════════════════════════════════════════════
# Access Control
# ════════════════════════════════════════════════════════════════


class AuthorityRecord(BaseModel):
    """Membership of one identity in one role. Deactivated, never deleted."""

    identity: str
    role: Role
    active: bool = True


class AuthorityLedger(BaseModel):
    """
    Role membership store of the deployment.

    The primary admin is fixed at creation and holds every role implicitly,
    regardless of the explicit records. Records form a stable-ordered list;
    a deactivated slot is never reused for a different pair.
    """

    RECORD_KIND: ClassVar[str] = "authority_ledger"

    primary_admin: str
    records: list[AuthorityRecord] = Field(default_factory=list)

    @classmethod
    def create(cls, primary_admin: str) -> AuthorityLedger:
        return cls(
            primary_admin=primary_admin,
            records=[AuthorityRecord(identity=primary_admin, role=Role.ADMIN)],
        )

    def has_role(self, identity: str, role: Role) -> bool:
        """True if ``identity`` is the primary admin or holds ``role`` actively."""
        if identity == self.primary_admin:
            return True
        return any(
            record.identity == identity and record.role == role and record.active
            for record in self.records
        )

    def active_index(self, identity: str, role: Role) -> int | None:
        """Position of the active record for (identity, role), if any."""
        for index, record in enumerate(self.records):
            if record.identity == identity and record.role == role and record.active:
                return index
        return None


# ════════════════════════════════════════════════════════════════
# Time-Lock Escrow
# ════════════════════════════════════════════════════════════════


class Lock(BaseModel):
    """A quantity held in custody until ``unlock_time``."""

    RECORD_KIND: ClassVar[str] = "time_lock"

    owner: str
    amount: int = Field(gt=0, le=U64_MAX)
    unlock_time: int = Field(ge=0, description="Absolute unix timestamp")
    claimed: bool = False

    def state(self, now: int) -> LockState:
        if self.claimed:
            return LockState.CLAIMED
        if now < self.unlock_time:
            return LockState.ACTIVE
        return LockState.UNLOCKABLE


# ════════════════════════════════════════════════════════════════
# Upgrade Scheduler
# ════════════════════════════════════════════════════════════════


class PendingUpgrade(BaseModel):
    """Target and eligibility time of a scheduled upgrade. Always set together."""

    model_config = {"frozen": True}

    target: str
    eligible_at: int = Field(ge=0)


class VersionRecord(BaseModel):
    """Program version and the optional pending upgrade."""

    RECORD_KIND: ClassVar[str] = "program_version"

    major: int = Field(default=1, ge=0, le=U8_MAX)
    minor: int = Field(default=0, ge=0, le=U8_MAX)
    patch: int = Field(default=0, ge=0, le=U8_MAX)
    upgrade_authority: str
    pending: PendingUpgrade | None = None

    @property
    def state(self) -> UpgradeState:
        if self.pending is None:
            return UpgradeState.NO_UPGRADE
        return UpgradeState.PENDING

    @property
    def version_string(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


# ════════════════════════════════════════════════════════════════
# Listing Configuration
# ════════════════════════════════════════════════════════════════


class ListingConfig(BaseModel):
    """
    Listing configuration of the asset on a third-party venue.

    ``price`` is fixed point with ``PRICE_DECIMALS`` decimals
    (1_000_000 == 1.000000 USD). ``fee_bps`` is in basis points (100 == 1%).
    """

    RECORD_KIND: ClassVar[str] = "listing_config"

    asset_id: str
    price: int = Field(ge=0, le=U64_MAX)
    fee_bps: int = Field(ge=0, le=MAX_FEE_BPS)
    trading_enabled: bool = False
    max_transaction: int | None = Field(default=None, ge=0, le=U64_MAX)
    max_wallet_holdings: int | None = Field(default=None, ge=0, le=U64_MAX)
    authority: str

    @property
    def price_usd(self) -> Decimal:
        return Decimal(self.price).scaleb(-PRICE_DECIMALS)

    @property
    def fee_percent(self) -> Decimal:
        return Decimal(self.fee_bps) / 100


# ════════════════════════════════════════════════════════════════
# Token Metadata
# ════════════════════════════════════════════════════════════════


class TokenMetadata(BaseModel):
    """Descriptive metadata of the asset. ``version`` grows with every update."""

    RECORD_KIND: ClassVar[str] = "token_metadata"

    mint: str
    name: str = Field(max_length=MAX_NAME_LENGTH)
    symbol: str = Field(max_length=MAX_SYMBOL_LENGTH)
    uri: str = Field(max_length=MAX_URI_LENGTH)
    update_authority: str
    version: int = Field(default=1, ge=1, le=U8_MAX)
