from datetime import datetime, timedelta

import pytest

from order_timer.engine import TimeAccountingEngine
from order_timer.services import OrderCollection
from order_timer.storage import InMemoryKeyValueStore

T0 = datetime(2026, 3, 2, 8, 0, 0)


def at(seconds: float) -> datetime:
    """Moment ``seconds`` after the reference start of the test shift."""
    return T0 + timedelta(seconds=seconds)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


@pytest.fixture
def engine():
    return TimeAccountingEngine()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def collection(store, clock):
    return OrderCollection(store, clock=clock)
