"""
Control-plane events.

Every successful state change emits exactly the events listed here. Components
collect them in an ``EventSink`` during the instruction; the processor writes
them to the hash-chained event journal inside the same transaction, so a
failed instruction leaves no event behind.
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from aria_control.core.schema import Role

logger = logging.getLogger(__name__)


class AuthorityInitialized(BaseModel):
    kind: Literal["authority_initialized"] = "authority_initialized"
    ledger: str
    primary_admin: str


class AuthorityAdded(BaseModel):
    kind: Literal["authority_added"] = "authority_added"
    ledger: str
    authority: str
    role: Role
    admin: str


class AuthorityRemoved(BaseModel):
    kind: Literal["authority_removed"] = "authority_removed"
    ledger: str
    authority: str
    role: Role
    admin: str


class TokensLocked(BaseModel):
    kind: Literal["tokens_locked"] = "tokens_locked"
    lock_account: str
    owner: str
    amount: int
    unlock_time: int


class TokensUnlocked(BaseModel):
    kind: Literal["tokens_unlocked"] = "tokens_unlocked"
    lock_account: str
    owner: str
    destination: str
    amount: int


class VersionInitialized(BaseModel):
    kind: Literal["version_initialized"] = "version_initialized"
    version_account: str
    upgrade_authority: str
    version: str


class UpgradeScheduled(BaseModel):
    kind: Literal["upgrade_scheduled"] = "upgrade_scheduled"
    version_account: str
    target: str
    eligible_at: int


class UpgradeFinalized(BaseModel):
    kind: Literal["upgrade_finalized"] = "upgrade_finalized"
    version_account: str
    target: str
    version: str


class UpgradeCancelled(BaseModel):
    kind: Literal["upgrade_cancelled"] = "upgrade_cancelled"
    version_account: str
    target: str


class ListingConfigInitialized(BaseModel):
    kind: Literal["listing_config_initialized"] = "listing_config_initialized"
    config_account: str
    asset_id: str
    price: int
    fee_bps: int
    authority: str


class ListingConfigUpdated(BaseModel):
    kind: Literal["listing_config_updated"] = "listing_config_updated"
    config_account: str
    changed_fields: list[str]


class MetadataInitialized(BaseModel):
    kind: Literal["metadata_initialized"] = "metadata_initialized"
    metadata_account: str
    mint: str
    name: str
    symbol: str
    uri: str


class MetadataUpdated(BaseModel):
    kind: Literal["metadata_updated"] = "metadata_updated"
    metadata_account: str
    mint: str
    name: str
    symbol: str
    uri: str
    version: int


AriaEvent = Annotated[
    Union[
        AuthorityInitialized,
        AuthorityAdded,
        AuthorityRemoved,
        TokensLocked,
        TokensUnlocked,
        VersionInitialized,
        UpgradeScheduled,
        UpgradeFinalized,
        UpgradeCancelled,
        ListingConfigInitialized,
        ListingConfigUpdated,
        MetadataInitialized,
        MetadataUpdated,
    ],
    Field(discriminator="kind"),
]

event_adapter: TypeAdapter[AriaEvent] = TypeAdapter(AriaEvent)


class EventSink:
    """Collects the events emitted while one instruction runs."""

    def __init__(self) -> None:
        self.events: list[BaseModel] = []

    def emit(self, event: BaseModel) -> None:
        self.events.append(event)
        logger.info("Event emitted: %s", event.model_dump_json())

    def drain(self) -> list[BaseModel]:
        events, self.events = self.events, []
        return events
