"""
Listing-Config Manager — third-party listing configuration of the asset.

A signing Admin creates the configuration with trading disabled and no caps;
from then on only the recorded authority may change it. ``update`` is a
partial update: every field passed overwrites the stored value, every field
left as ``None`` keeps it. Caps can be set or changed but not cleared.
"""

from __future__ import annotations

import logging

from aria_control.core.authorization import require_identity
from aria_control.core.errors import (
    ExceedsMaxTransaction,
    ExceedsMaxWalletHoldings,
    TradingNotEnabled,
    ValidationError,
)
from aria_control.core.events import (
    EventSink,
    ListingConfigInitialized,
    ListingConfigUpdated,
)
from aria_control.core.schema import (
    MAX_FEE_BPS,
    U64_MAX,
    AccountRef,
    ListingConfig,
    Role,
)
from aria_control.governance.access_control import AccessControlLedger
from aria_control.ledger.store import RecordStore

logger = logging.getLogger(__name__)


def _check_amount(name: str, value: int | None) -> None:
    if value is not None and not 0 <= value <= U64_MAX:
        raise ValidationError(f"{name} out of range: {value}")


def _check_fee(fee_bps: int | None) -> None:
    if fee_bps is not None and not 0 <= fee_bps <= MAX_FEE_BPS:
        raise ValidationError(f"fee_bps must be between 0 and {MAX_FEE_BPS}, got {fee_bps}")


def check_trade(config: ListingConfig, amount: int, resulting_holdings: int) -> None:
    """
    Check a trade against the listing configuration.

    Raises:
        TradingNotEnabled: If trading is disabled.
        ExceedsMaxTransaction: If ``amount`` is above the transaction cap.
        ExceedsMaxWalletHoldings: If the buyer would hold more than the cap.
    """
    if not config.trading_enabled:
        raise TradingNotEnabled(f"Trading is not enabled for {config.asset_id}")
    if config.max_transaction is not None and amount > config.max_transaction:
        raise ExceedsMaxTransaction(
            f"Transaction of {amount} exceeds maximum {config.max_transaction}"
        )
    if (
        config.max_wallet_holdings is not None
        and resulting_holdings > config.max_wallet_holdings
    ):
        raise ExceedsMaxWalletHoldings(
            f"Holdings of {resulting_holdings} exceed maximum {config.max_wallet_holdings}"
        )


class ListingConfigManager:
    def __init__(
        self,
        store: RecordStore,
        access_control: AccessControlLedger,
        events: EventSink | None = None,
    ) -> None:
        self.store = store
        self.access_control = access_control
        self.events = events or EventSink()

    def load(self, address: str) -> ListingConfig:
        return self.store.load(address, ListingConfig)

    def initialize(
        self,
        address: str,
        caller: AccountRef,
        authority_ledger: str,
        target_asset: str,
        initial_price: int,
        fee_bps: int,
    ) -> ListingConfig:
        """Create the configuration; the signing Admin becomes its authority."""
        self.access_control.require_role(authority_ledger, caller, Role.ADMIN)
        _check_amount("initial_price", initial_price)
        _check_fee(fee_bps)

        config = ListingConfig(
            asset_id=target_asset,
            price=initial_price,
            fee_bps=fee_bps,
            authority=caller.key,
        )
        self.store.create(address, config)

        logger.info(
            "Listing configuration initialized: asset=%s price $%s fee %s%%",
            target_asset, config.price_usd, config.fee_percent,
        )
        self.events.emit(
            ListingConfigInitialized(
                config_account=address,
                asset_id=target_asset,
                price=initial_price,
                fee_bps=fee_bps,
                authority=caller.key,
            )
        )
        return config

    def update(
        self,
        address: str,
        caller: AccountRef,
        price: int | None = None,
        fee_bps: int | None = None,
        trading_enabled: bool | None = None,
        max_transaction: int | None = None,
        max_wallet_holdings: int | None = None,
    ) -> ListingConfig:
        """Overwrite the fields that are passed; keep the others."""
        config = self.load(address)
        require_identity(caller, config.authority, "listing authority")

        _check_amount("price", price)
        _check_fee(fee_bps)
        _check_amount("max_transaction", max_transaction)
        _check_amount("max_wallet_holdings", max_wallet_holdings)

        changes = {
            name: value
            for name, value in (
                ("price", price),
                ("fee_bps", fee_bps),
                ("trading_enabled", trading_enabled),
                ("max_transaction", max_transaction),
                ("max_wallet_holdings", max_wallet_holdings),
            )
            if value is not None
        }
        updated = config.model_copy(update=changes)
        self.store.save(address, updated)

        logger.info("Listing configuration updated: %s", ", ".join(sorted(changes)) or "no changes")
        if trading_enabled is not None:
            logger.info("Trading %s", "enabled" if trading_enabled else "disabled")
        self.events.emit(
            ListingConfigUpdated(config_account=address, changed_fields=sorted(changes))
        )
        return updated
