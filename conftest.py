from datetime import datetime, timezone

import pytest

from progress_engine.clock import ManualClock
from progress_engine.engine import ProgressEngine
from progress_engine.store import MemoryStore

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> ManualClock:
    """A clock frozen at START; tests move it with clock.advance()."""
    return ManualClock(START)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def engine(store: MemoryStore, clock: ManualClock) -> ProgressEngine:
    return ProgressEngine(store, clock)
