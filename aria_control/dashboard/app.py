"""
ARIA Control Plane — read-only web API.

FastAPI application providing:
- Authority ledger view and role membership queries
- Time locks with their derived state at the current clock reading
- Program version and pending upgrade
- Listing configuration and trade pre-checks
- Token metadata
- Event journal explorer and chain verification

Nothing here writes; every change goes through the instruction processor.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import Engine
from sqlalchemy.orm import sessionmaker

from aria_control.config import settings
from aria_control.core.errors import (
    AriaControlError,
    RecordNotFoundError,
)
from aria_control.core.schema import (
    AuthorityLedger,
    ListingConfig,
    Lock,
    Role,
    TokenMetadata,
    VersionRecord,
)
from aria_control.escrow.time_lock import derive_custody_authority
from aria_control.integrations.clock import Clock, SystemClock, read_clock
from aria_control.ledger.journal import EventJournal
from aria_control.ledger.store import RecordStore
from aria_control.listing.config_manager import check_trade

logger = logging.getLogger(__name__)


# ── Pydantic request models ────────────────────────────────────


class TradeCheckRequest(BaseModel):
    amount: int = Field(ge=0)
    resulting_holdings: int = Field(ge=0)


class DashboardState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.engine: Engine | None = None
        self.SessionLocal: sessionmaker | None = None
        self.journal: EventJournal | None = None
        self.program_id: str = settings.program_id
        self.clock: Clock = SystemClock()
        self.startup_time: datetime = datetime.now(timezone.utc)

    def configure(self, engine: Engine, program_id: str, clock: Clock | None = None) -> None:
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine)
        self.journal = EventJournal(engine)
        self.journal.initialize()
        self.program_id = program_id
        if clock is not None:
            self.clock = clock


state = DashboardState()


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup & shutdown lifecycle: connect to the record store."""
    if state.engine is None:
        from aria_control.ledger.database import make_engine

        state.configure(
            make_engine(settings.database_url, echo=settings.database_echo),
            settings.program_id,
        )
    logger.info("ARIA dashboard started: program=%s", state.program_id)

    yield

    logger.info("ARIA dashboard shut down")


app = FastAPI(
    title="ARIA Control Plane",
    description="Read-only views of roles, escrow, upgrades, listing and metadata",
    version="0.1.0",
    lifespan=lifespan,
)


def _load(address: str, model: type) -> Any:
    if state.SessionLocal is None:
        raise HTTPException(status_code=503, detail="Record store not initialized")
    with state.SessionLocal() as session:
        store = RecordStore(session, state.program_id)
        try:
            return store.load(address, model)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        except AriaControlError as exc:
            raise HTTPException(status_code=409, detail=exc.message) from exc


def _now() -> int:
    try:
        return read_clock(state.clock)
    except AriaControlError as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc


# ── Routes: Access control ─────────────────────────────────────


@app.get("/api/authority/{address}")
async def api_authority(address: str):
    """API: Authority ledger with all records, active or not."""
    ledger: AuthorityLedger = _load(address, AuthorityLedger)
    return JSONResponse({
        "address": address,
        "primary_admin": ledger.primary_admin,
        "records": [record.model_dump(mode="json") for record in ledger.records],
        "active_records": sum(1 for record in ledger.records if record.active),
    })


@app.get("/api/authority/{address}/has-role")
async def api_has_role(address: str, identity: str, role: Role):
    """API: Whether ``identity`` holds ``role``."""
    ledger: AuthorityLedger = _load(address, AuthorityLedger)
    return JSONResponse({
        "identity": identity,
        "role": role.value,
        "has_role": ledger.has_role(identity, role),
    })


# ── Routes: Escrow ─────────────────────────────────────────────


@app.get("/api/locks/{address}")
async def api_lock(address: str):
    """API: A time lock and its state at the current clock reading."""
    lock: Lock = _load(address, Lock)
    now = _now()
    return JSONResponse({
        "address": address,
        **lock.model_dump(mode="json"),
        "state": lock.state(now).value,
        "now": now,
        "seconds_remaining": max(lock.unlock_time - now, 0),
        "custody_authority": derive_custody_authority(state.program_id, address),
    })


# ── Routes: Upgrades ───────────────────────────────────────────


@app.get("/api/version/{address}")
async def api_version(address: str):
    """API: Program version and any pending upgrade."""
    version: VersionRecord = _load(address, VersionRecord)
    return JSONResponse({
        "address": address,
        "version": version.version_string,
        "state": version.state.value,
        "upgrade_authority": version.upgrade_authority,
        "pending": version.pending.model_dump(mode="json") if version.pending else None,
    })


# ── Routes: Listing ────────────────────────────────────────────


@app.get("/api/listing/{address}")
async def api_listing(address: str):
    """API: Listing configuration with the price in dollars and fee in percent."""
    config: ListingConfig = _load(address, ListingConfig)
    return JSONResponse({
        "address": address,
        **config.model_dump(mode="json"),
        "price_usd": str(config.price_usd),
        "fee_percent": str(config.fee_percent),
    })


@app.post("/api/listing/{address}/check-trade")
async def api_check_trade(address: str, req: TradeCheckRequest):
    """API: Check a prospective trade against the listing caps."""
    config: ListingConfig = _load(address, ListingConfig)
    try:
        check_trade(config, req.amount, req.resulting_holdings)
    except AriaControlError as exc:
        return JSONResponse({
            "allowed": False,
            "error_code": exc.code,
            "error": type(exc).__name__,
            "message": exc.message,
        })
    return JSONResponse({"allowed": True})


# ── Routes: Metadata ───────────────────────────────────────────


@app.get("/api/metadata/{address}")
async def api_metadata(address: str):
    """API: Token metadata."""
    metadata: TokenMetadata = _load(address, TokenMetadata)
    return JSONResponse({"address": address, **metadata.model_dump(mode="json")})


# ── Routes: Event journal ──────────────────────────────────────


@app.get("/api/events")
async def api_events(limit: int = 50, kind: str | None = None):
    """API: Most recent journal entries, optionally of one kind."""
    if state.journal is None:
        return JSONResponse({"entries": [], "message": "Event journal not initialized"})

    if kind:
        entries = state.journal.get_entries_by_kind(kind, limit=limit)
    else:
        entries = state.journal.get_latest_entries(limit=limit)
    return JSONResponse({
        "entries": [
            {
                "sequence_number": e.sequence_number,
                "event_kind": e.event_kind,
                "instruction": e.instruction,
                "signer": e.signer,
                "entry_hash": e.entry_hash[:16] + "...",
                "timestamp": e.timestamp.isoformat(),
                "content": e.content,
            }
            for e in entries
        ],
        "total": state.journal.get_entry_count(),
    })


@app.get("/api/events/verify")
async def api_events_verify():
    """API: Recompute the journal hash chain."""
    if state.journal is None:
        raise HTTPException(status_code=503, detail="Event journal not initialized")

    is_valid, entries_verified, message = state.journal.verify_chain()
    return JSONResponse({
        "valid": is_valid,
        "entries_verified": entries_verified,
        "message": message,
    })


# ── Health Check ───────────────────────────────────────────────


@app.get("/health")
async def health():
    """Health check endpoint."""
    return JSONResponse({
        "status": "healthy",
        "program_id": state.program_id,
        "uptime_seconds": (datetime.now(timezone.utc) - state.startup_time).total_seconds(),
        "journal_available": state.journal is not None,
    })
