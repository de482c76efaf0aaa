"""
Token Metadata — name, symbol and uri of the asset.

The signer that creates the metadata becomes its update authority. Updates
are partial and bump ``version`` by one each time.
"""

from __future__ import annotations

import logging

from aria_control.core.authorization import require_identity, require_signer
from aria_control.core.errors import ValidationError
from aria_control.core.events import EventSink, MetadataInitialized, MetadataUpdated
from aria_control.core.schema import (
    MAX_NAME_LENGTH,
    MAX_SYMBOL_LENGTH,
    MAX_URI_LENGTH,
    U8_MAX,
    AccountRef,
    TokenMetadata,
)
from aria_control.ledger.store import RecordStore

logger = logging.getLogger(__name__)

_LIMITS = {
    "name": MAX_NAME_LENGTH,
    "symbol": MAX_SYMBOL_LENGTH,
    "uri": MAX_URI_LENGTH,
}


def _check_fields(**fields: str | None) -> None:
    for name, value in fields.items():
        if value is None:
            continue
        if not value.strip():
            raise ValidationError(f"Metadata {name} cannot be empty")
        if len(value) > _LIMITS[name]:
            raise ValidationError(
                f"Metadata {name} longer than {_LIMITS[name]} characters"
            )


class TokenMetadataManager:
    def __init__(self, store: RecordStore, events: EventSink | None = None) -> None:
        self.store = store
        self.events = events or EventSink()

    def load(self, address: str) -> TokenMetadata:
        return self.store.load(address, TokenMetadata)

    def initialize(
        self,
        address: str,
        mint: str,
        caller: AccountRef,
        name: str,
        symbol: str,
        uri: str,
    ) -> TokenMetadata:
        require_signer(caller)
        _check_fields(name=name, symbol=symbol, uri=uri)

        metadata = TokenMetadata(
            mint=mint, name=name, symbol=symbol, uri=uri, update_authority=caller.key
        )
        self.store.create(address, metadata)

        logger.info("Metadata initialized for mint %s: %s (%s)", mint, name, symbol)
        self.events.emit(
            MetadataInitialized(
                metadata_account=address, mint=mint, name=name, symbol=symbol, uri=uri
            )
        )
        return metadata

    def update(
        self,
        address: str,
        caller: AccountRef,
        name: str | None = None,
        symbol: str | None = None,
        uri: str | None = None,
    ) -> TokenMetadata:
        metadata = self.load(address)
        require_identity(caller, metadata.update_authority, "metadata update authority")
        _check_fields(name=name, symbol=symbol, uri=uri)

        if metadata.version >= U8_MAX:
            raise ValidationError("Metadata version cannot be incremented any further")

        changes: dict[str, object] = {
            field: value
            for field, value in (("name", name), ("symbol", symbol), ("uri", uri))
            if value is not None
        }
        changes["version"] = metadata.version + 1
        updated = metadata.model_copy(update=changes)
        self.store.save(address, updated)

        logger.info("Metadata updated for mint %s: version %d",
                    metadata.mint, updated.version)
        self.events.emit(
            MetadataUpdated(
                metadata_account=address,
                mint=updated.mint,
                name=updated.name,
                symbol=updated.symbol,
                uri=updated.uri,
                version=updated.version,
            )
        )
        return updated
