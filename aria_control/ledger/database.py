"""Engine construction shared by the processor, the journal and the read API."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from aria_control.ledger.models import Base


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url`` and make sure the schema exists.

    In-memory SQLite gets a single shared connection so every session sees
    the same database.
    """
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, echo=echo)
    Base.metadata.create_all(engine)
    return engine
