from __future__ import annotations

import pytest

from aria_control.integrations.clock import FixedClock
from aria_control.ledger.database import make_engine
from aria_control.processor import Processor

from support import PROGRAM_ID, RecordingCustody


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'aria_control.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(1000)


@pytest.fixture
def custody():
    return RecordingCustody()


@pytest.fixture
def processor(engine, clock, custody):
    return Processor(engine, PROGRAM_ID, clock, custody)
