import pytest

from solana_pnl_tracker.ledger import PositionLedger
from solana_pnl_tracker.store import InMemoryPositionStore, PositionCache
from solana_pnl_tracker.tokens import TokenResolver

from .helpers import FakeOracle, FakeRpc, SleepRecorder


class Clock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def rpc():
    return FakeRpc()


@pytest.fixture
def oracle():
    return FakeOracle(sol_usd=150.0)


@pytest.fixture
def resolver(rpc):
    return TokenResolver(rpc)


@pytest.fixture
def store():
    return InMemoryPositionStore()


@pytest.fixture
def ledger(store, rpc, clock):
    # fresh cache per test
    return PositionLedger(store, PositionCache(), rpc=rpc, clock=clock)


@pytest.fixture
def sleep():
    return SleepRecorder()
