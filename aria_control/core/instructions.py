"""
Instructions — typed commands and their fixed account layouts.

A command is a JSON object discriminated by ``kind``. It travels with an
ordered list of ``AccountRef``. Each kind has exactly one layout naming every
account position and whether it must sign or be writable. The layout is
checked from the ``kind`` tag alone, before any other payload field is
interpreted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from aria_control.core.errors import AuthorizationError, ValidationError
from aria_control.core.schema import U64_MAX, AccountRef, Role


def _coerce_role(value: Any) -> Any:
    # Roles may arrive as their wire index (Admin = 0).
    if isinstance(value, int) and not isinstance(value, bool):
        if not 0 <= value < len(Role):
            raise ValueError(f"unknown role index {value}")
        return Role.from_index(value)
    return value


RoleField = Annotated[Role, BeforeValidator(_coerce_role)]
Amount = Annotated[int, Field(ge=0, le=U64_MAX)]


# ════════════════════════════════════════════════════════════════
# Commands
# ════════════════════════════════════════════════════════════════


class InitializeAuthority(BaseModel):
    kind: Literal["initialize_authority"] = "initialize_authority"


class AddAuthority(BaseModel):
    kind: Literal["add_authority"] = "add_authority"
    new_authority: str = Field(min_length=1)
    role: RoleField


class RemoveAuthority(BaseModel):
    kind: Literal["remove_authority"] = "remove_authority"
    authority: str = Field(min_length=1)
    role: RoleField


class LockTokens(BaseModel):
    kind: Literal["lock_tokens"] = "lock_tokens"
    amount: Amount
    lock_duration: Amount


class UnlockTokens(BaseModel):
    kind: Literal["unlock_tokens"] = "unlock_tokens"


class InitializeVersion(BaseModel):
    kind: Literal["initialize_version"] = "initialize_version"


class ScheduleUpgrade(BaseModel):
    kind: Literal["schedule_upgrade"] = "schedule_upgrade"
    new_program_id: str = Field(min_length=1)
    upgrade_delay: Amount


class FinalizeUpgrade(BaseModel):
    kind: Literal["finalize_upgrade"] = "finalize_upgrade"


class CancelUpgrade(BaseModel):
    kind: Literal["cancel_upgrade"] = "cancel_upgrade"


class InitializeListingConfig(BaseModel):
    kind: Literal["initialize_listing_config"] = "initialize_listing_config"
    initial_price: Amount
    fee_bps: int = Field(ge=0)


class UpdateListingConfig(BaseModel):
    kind: Literal["update_listing_config"] = "update_listing_config"
    price: Amount | None = None
    fee_bps: int | None = Field(default=None, ge=0)
    trading_enabled: bool | None = None
    max_transaction: Amount | None = None
    max_wallet_holdings: Amount | None = None


class InitializeMetadata(BaseModel):
    kind: Literal["initialize_metadata"] = "initialize_metadata"
    name: str
    symbol: str
    uri: str


class UpdateMetadata(BaseModel):
    kind: Literal["update_metadata"] = "update_metadata"
    name: str | None = None
    symbol: str | None = None
    uri: str | None = None


Instruction = Annotated[
    Union[
        InitializeAuthority,
        AddAuthority,
        RemoveAuthority,
        LockTokens,
        UnlockTokens,
        InitializeVersion,
        ScheduleUpgrade,
        FinalizeUpgrade,
        CancelUpgrade,
        InitializeListingConfig,
        UpdateListingConfig,
        InitializeMetadata,
        UpdateMetadata,
    ],
    Field(discriminator="kind"),
]

instruction_adapter: TypeAdapter[Instruction] = TypeAdapter(Instruction)


# ════════════════════════════════════════════════════════════════
# Account layouts
# ════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AccountSpec:
    name: str
    signer: bool = False
    writable: bool = False


ACCOUNT_LAYOUTS: dict[str, tuple[AccountSpec, ...]] = {
    "initialize_authority": (
        AccountSpec("authority_account", writable=True),
        AccountSpec("primary_admin", signer=True),
    ),
    "add_authority": (
        AccountSpec("authority_account", writable=True),
        AccountSpec("admin", signer=True),
    ),
    "remove_authority": (
        AccountSpec("authority_account", writable=True),
        AccountSpec("admin", signer=True),
    ),
    "lock_tokens": (
        AccountSpec("lock_account", writable=True),
        AccountSpec("source", writable=True),
        AccountSpec("vault", writable=True),
        AccountSpec("owner", signer=True),
    ),
    "unlock_tokens": (
        AccountSpec("lock_account", writable=True),
        AccountSpec("vault", writable=True),
        AccountSpec("destination", writable=True),
        AccountSpec("owner", signer=True),
        AccountSpec("vault_authority"),
    ),
    "initialize_version": (
        AccountSpec("version_account", writable=True),
        AccountSpec("authority", signer=True),
    ),
    "schedule_upgrade": (
        AccountSpec("version_account", writable=True),
        AccountSpec("authority", signer=True),
        AccountSpec("authority_account"),
    ),
    "finalize_upgrade": (
        AccountSpec("version_account", writable=True),
        AccountSpec("authority", signer=True),
    ),
    "cancel_upgrade": (
        AccountSpec("version_account", writable=True),
        AccountSpec("authority", signer=True),
    ),
    "initialize_listing_config": (
        AccountSpec("config_account", writable=True),
        AccountSpec("mint"),
        AccountSpec("authority", signer=True),
        AccountSpec("authority_account"),
    ),
    "update_listing_config": (
        AccountSpec("config_account", writable=True),
        AccountSpec("authority", signer=True),
    ),
    "initialize_metadata": (
        AccountSpec("metadata_account", writable=True),
        AccountSpec("mint"),
        AccountSpec("authority", signer=True),
    ),
    "update_metadata": (
        AccountSpec("metadata_account", writable=True),
        AccountSpec("authority", signer=True),
    ),
}

# Instructions that read the trusted clock.
CLOCK_INSTRUCTIONS = frozenset(
    {"lock_tokens", "unlock_tokens", "schedule_upgrade", "finalize_upgrade"}
)


def _parse(data: bytes | str) -> dict[str, Any]:
    try:
        raw = json.loads(data)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Instruction data is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValidationError("Instruction data must be a JSON object")
    return raw


def instruction_kind(data: bytes | str) -> str:
    """Read only the ``kind`` tag of an encoded instruction."""
    kind = _parse(data).get("kind")
    if kind not in ACCOUNT_LAYOUTS:
        raise ValidationError(f"Unknown instruction: {kind!r}")
    return kind


def decode_instruction(data: bytes | str) -> Instruction:
    """Decode and validate a full instruction payload."""
    try:
        return instruction_adapter.validate_python(_parse(data))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid instruction payload: {exc}") from exc


def signer_slot(kind: str) -> str:
    """Name of the signing account in the layout of ``kind``."""
    return next(spec.name for spec in ACCOUNT_LAYOUTS[kind] if spec.signer)

def validate_accounts(kind: str, accounts: list[AccountRef]) -> dict[str, AccountRef]:
    """
    Check ``accounts`` against the layout of ``kind`` and name each position.

    Raises:
        ValidationError: On an unknown kind, wrong account count or a
            non-writable account in a writable position.
        AuthorizationError: If a signer position did not sign.
    """
    layout = ACCOUNT_LAYOUTS.get(kind)
    if layout is None:
        raise ValidationError(f"Unknown instruction: {kind!r}")
    if len(accounts) != len(layout):
        raise ValidationError(
            f"{kind} expects {len(layout)} accounts, got {len(accounts)}"
        )

    named: dict[str, AccountRef] = {}
    for spec, account in zip(layout, accounts):
        if spec.signer and not account.is_signer:
            raise AuthorizationError(f"{kind}: {spec.name} {account.key} must sign")
        if spec.writable and not account.is_writable:
            raise ValidationError(f"{kind}: {spec.name} {account.key} must be writable")
        named[spec.name] = account
    return named
