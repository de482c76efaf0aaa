"""
Aria Control — instruction processor.

Central entrypoint for every command that changes control-plane state:
1. Checks the ordered account list against the layout of the command's kind
2. Decodes the payload into a typed instruction
3. Reads the trusted clock once, for the commands that need time
4. Runs the owning component inside a single database transaction
5. Appends the emitted events to the hash-chained journal in that same
   transaction

Either everything an instruction does is committed, or none of it is: a
failing instruction leaves records and journal untouched.

Usage:
    processor = Processor.from_settings()
    outcome = processor.process(
        '{"kind": "initialize_authority"}',
        [AccountRef(key="auth-1", is_writable=True),
         AccountRef(key="admin", is_signer=True)],
    )
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from aria_control.config import AriaSettings, settings
from aria_control.core.errors import AriaControlError
from aria_control.core.events import EventSink
from aria_control.core.instructions import (
    CLOCK_INSTRUCTIONS,
    AddAuthority,
    CancelUpgrade,
    FinalizeUpgrade,
    InitializeAuthority,
    InitializeListingConfig,
    InitializeMetadata,
    InitializeVersion,
    Instruction,
    LockTokens,
    RemoveAuthority,
    ScheduleUpgrade,
    UnlockTokens,
    UpdateListingConfig,
    UpdateMetadata,
    decode_instruction,
    instruction_kind,
    signer_slot,
    validate_accounts,
)
from aria_control.core.schema import AccountRef
from aria_control.escrow.time_lock import TimeLockEscrow
from aria_control.governance.access_control import AccessControlLedger
from aria_control.governance.upgrades import UpgradeScheduler
from aria_control.integrations.clock import Clock, SystemClock, read_clock
from aria_control.integrations.custody_client import CustodyClient, CustodyTransfer
from aria_control.ledger.database import make_engine
from aria_control.ledger.journal import EventJournal
from aria_control.ledger.store import RecordStore
from aria_control.listing.config_manager import ListingConfigManager
from aria_control.metadata.token_metadata import TokenMetadataManager

logger = logging.getLogger(__name__)


def configure_logging(config: AriaSettings = settings) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


class InstructionOutcome(BaseModel):
    """Result of one processed instruction, as reported to the submitter."""

    ok: bool
    instruction: str | None = Field(default=None, description="Kind tag of the command")
    error_code: str | None = Field(default=None, description="Stable error code on failure")
    error: str | None = Field(default=None, description="Exception class name on failure")
    message: str = ""
    events: list[dict[str, Any]] = Field(default_factory=list)


@dataclass
class _Context:
    """Components bound to one instruction's transaction."""

    access_control: AccessControlLedger
    escrow: TimeLockEscrow
    upgrades: UpgradeScheduler
    listing: ListingConfigManager
    metadata: TokenMetadataManager
    now: int | None


class Processor:
    """
    Validates, executes and journals control-plane instructions.

    Each call to ``execute`` is one atomic unit of work. Components never
    commit; the processor owns the transaction.
    """

    def __init__(
        self,
        engine: Engine,
        program_id: str,
        clock: Clock,
        custody: CustodyTransfer,
    ) -> None:
        self.engine = engine
        self.program_id = program_id
        self.clock = clock
        self.custody = custody
        self.SessionLocal = sessionmaker(bind=engine)
        self.journal = EventJournal(engine)
        self.journal.initialize()
        self.log = structlog.get_logger(__name__)

        self._handlers: dict[str, Callable[[Any, dict[str, AccountRef], _Context], None]] = {
            "initialize_authority": self._initialize_authority,
            "add_authority": self._add_authority,
            "remove_authority": self._remove_authority,
            "lock_tokens": self._lock_tokens,
            "unlock_tokens": self._unlock_tokens,
            "initialize_version": self._initialize_version,
            "schedule_upgrade": self._schedule_upgrade,
            "finalize_upgrade": self._finalize_upgrade,
            "cancel_upgrade": self._cancel_upgrade,
            "initialize_listing_config": self._initialize_listing_config,
            "update_listing_config": self._update_listing_config,
            "initialize_metadata": self._initialize_metadata,
            "update_metadata": self._update_metadata,
        }

    @classmethod
    def from_settings(cls, config: AriaSettings = settings) -> Processor:
        """Build a processor wired to the configured database and custody service."""
        engine = make_engine(config.database_url, echo=config.database_echo)
        custody = CustodyClient(
            base_url=config.custody_base_url,
            api_key=config.custody_api_key,
            timeout=config.custody_timeout_seconds,
        )
        return cls(engine, config.program_id, SystemClock(), custody)

    def store(self, session: Session) -> RecordStore:
        return RecordStore(session, self.program_id)

    # ════════════════════════════════════════════════════════════════
    # Entry points
    # ════════════════════════════════════════════════════════════════

    def process(self, data: bytes | str, accounts: list[AccountRef]) -> InstructionOutcome:
        """
        Run an encoded instruction and report the outcome.

        Control-plane errors become a failed outcome; anything else propagates.
        """
        kind: str | None = None
        try:
            kind = instruction_kind(data)
            named = validate_accounts(kind, accounts)
            instruction = decode_instruction(data)
            events = self._run(instruction, named)
        except AriaControlError as exc:
            self.log.warning(
                "aria_control.processor.rejected",
                instruction=kind,
                error_code=exc.code,
                message=exc.message,
            )
            return InstructionOutcome(
                ok=False,
                instruction=kind,
                error_code=exc.code,
                error=type(exc).__name__,
                message=exc.message,
            )

        return InstructionOutcome(
            ok=True,
            instruction=kind,
            events=[event.model_dump(mode="json") for event in events],
        )

    def execute(self, instruction: Instruction, accounts: list[AccountRef]) -> list[BaseModel]:
        """
        Run a typed instruction and return the events it emitted.

        Raises:
            AriaControlError: On any rejection; nothing has been written.
        """
        named = validate_accounts(instruction.kind, accounts)
        return self._run(instruction, named)

    def _run(self, instruction: Instruction, accounts: dict[str, AccountRef]) -> list[BaseModel]:
        kind = instruction.kind
        now = read_clock(self.clock) if kind in CLOCK_INSTRUCTIONS else None
        signer = accounts[signer_slot(kind)].key

        with self.SessionLocal.begin() as session:
            sink = EventSink()
            store = self.store(session)
            access_control = AccessControlLedger(store, sink)
            context = _Context(
                access_control=access_control,
                escrow=TimeLockEscrow(store, self.custody, sink),
                upgrades=UpgradeScheduler(store, access_control, sink),
                listing=ListingConfigManager(store, access_control, sink),
                metadata=TokenMetadataManager(store, sink),
                now=now,
            )
            self._handlers[kind](instruction, accounts, context)

            events = sink.drain()
            for event in events:
                self.journal.append(session, event, instruction=kind, signer=signer)

        self.log.info(
            "aria_control.processor.executed",
            instruction=kind,
            signer=signer,
            events=len(events),
        )
        return events

    # ════════════════════════════════════════════════════════════════
    # Handlers
    # ════════════════════════════════════════════════════════════════

    # ── Access control ─────────────────────────────────────────────

    def _initialize_authority(
        self, ix: InitializeAuthority, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.access_control.initialize(
            accounts["authority_account"].key, accounts["primary_admin"]
        )

    def _add_authority(
        self, ix: AddAuthority, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.access_control.add_authority(
            accounts["authority_account"].key, accounts["admin"], ix.new_authority, ix.role
        )

    def _remove_authority(
        self, ix: RemoveAuthority, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.access_control.remove_authority(
            accounts["authority_account"].key, accounts["admin"], ix.authority, ix.role
        )

    # ── Escrow ─────────────────────────────────────────────────────

    def _lock_tokens(
        self, ix: LockTokens, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.escrow.create(
            accounts["lock_account"].key,
            owner=accounts["owner"],
            source=accounts["source"].key,
            vault=accounts["vault"].key,
            amount=ix.amount,
            duration=ix.lock_duration,
            now=ctx.now,
        )

    def _unlock_tokens(
        self, ix: UnlockTokens, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.escrow.claim(
            accounts["lock_account"].key,
            caller=accounts["owner"],
            vault=accounts["vault"].key,
            destination=accounts["destination"].key,
            vault_authority=accounts["vault_authority"].key,
            now=ctx.now,
        )

    # ── Upgrades ───────────────────────────────────────────────────

    def _initialize_version(
        self, ix: InitializeVersion, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.upgrades.initialize(accounts["version_account"].key, accounts["authority"])

    def _schedule_upgrade(
        self, ix: ScheduleUpgrade, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.upgrades.schedule(
            accounts["version_account"].key,
            caller=accounts["authority"],
            authority_ledger=accounts["authority_account"].key,
            target=ix.new_program_id,
            delay=ix.upgrade_delay,
            now=ctx.now,
        )

    def _finalize_upgrade(
        self, ix: FinalizeUpgrade, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.upgrades.finalize(
            accounts["version_account"].key, accounts["authority"], now=ctx.now
        )

    def _cancel_upgrade(
        self, ix: CancelUpgrade, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.upgrades.cancel(accounts["version_account"].key, accounts["authority"])

    # ── Listing ────────────────────────────────────────────────────

    def _initialize_listing_config(
        self, ix: InitializeListingConfig, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.listing.initialize(
            accounts["config_account"].key,
            caller=accounts["authority"],
            authority_ledger=accounts["authority_account"].key,
            target_asset=accounts["mint"].key,
            initial_price=ix.initial_price,
            fee_bps=ix.fee_bps,
        )

    def _update_listing_config(
        self, ix: UpdateListingConfig, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.listing.update(
            accounts["config_account"].key,
            caller=accounts["authority"],
            price=ix.price,
            fee_bps=ix.fee_bps,
            trading_enabled=ix.trading_enabled,
            max_transaction=ix.max_transaction,
            max_wallet_holdings=ix.max_wallet_holdings,
        )

    # ── Metadata ───────────────────────────────────────────────────

    def _initialize_metadata(
        self, ix: InitializeMetadata, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.metadata.initialize(
            accounts["metadata_account"].key,
            mint=accounts["mint"].key,
            caller=accounts["authority"],
            name=ix.name,
            symbol=ix.symbol,
            uri=ix.uri,
        )

    def _update_metadata(
        self, ix: UpdateMetadata, accounts: dict[str, AccountRef], ctx: _Context
    ) -> None:
        ctx.metadata.update(
            accounts["metadata_account"].key,
            caller=accounts["authority"],
            name=ix.name,
            symbol=ix.symbol,
            uri=ix.uri,
        )


# ════════════════════════════════════════════════════════════════
# Command line
# ════════════════════════════════════════════════════════════════


def parse_account(spec: str) -> AccountRef:
    """Parse ``key[:s][:w]``, e.g. ``admin:s`` or ``vault:w``."""
    key, *flags = spec.split(":")
    unknown = set(flags) - {"s", "w"}
    if not key or unknown:
        raise argparse.ArgumentTypeError(f"invalid account spec: {spec!r}")
    return AccountRef(key=key, is_signer="s" in flags, is_writable="w" in flags)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Submit one Aria Control instruction")
    parser.add_argument("instruction", help="Instruction JSON, e.g. '{\"kind\": \"initialize_version\"}'")
    parser.add_argument(
        "--account", "-a",
        dest="accounts",
        action="append",
        type=parse_account,
        default=[],
        help="Account in layout order as key[:s][:w] (repeatable)",
    )
    args = parser.parse_args(argv)

    configure_logging()
    processor = Processor.from_settings()
    try:
        outcome = processor.process(args.instruction, args.accounts)
    finally:
        if isinstance(processor.custody, CustodyClient):
            processor.custody.close()

    print(outcome.model_dump_json(indent=2))
    sys.exit(0 if outcome.ok else 1)


if __name__ == "__main__":
    main()
