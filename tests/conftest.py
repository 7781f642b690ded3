import os

# Keep test runs from writing daily log files; must be set before matchmaking is imported
os.environ['LOG_DIR'] = ''

import asyncio
from contextlib import asynccontextmanager

import pytest

from matchmaking.config import Config
from matchmaking.operations.matchmaking_engine import MatchmakingEngine
from matchmaking.store.base import TransactionConflict
from matchmaking.store.memory import InMemoryStore


class EngineTestConfig(Config):
    STORE_BACKEND = 'memory'
    KEY_PREFIX = 'test'
    DEBUG = True
    RETRY_BACKOFF_MS = 0
    DISCORD_WEBHOOK_URL = None
    NOTIFY_TIMEOUT_SECONDS = 1


class FakeClock:
    """Epoch-millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.value = start

    def __call__(self) -> int:
        return self.value

    def advance(self, ms: int = 1000) -> int:
        self.value += ms
        return self.value


class RecordingSink:
    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)


class FailingSink:
    def __init__(self):
        self.calls = 0

    async def publish(self, event):
        self.calls += 1
        raise RuntimeError("webhook down")


class SlowSink:
    async def publish(self, event):
        await asyncio.sleep(5)


class AlwaysConflictingStore(InMemoryStore):
    """Every transaction loses its race."""

    @asynccontextmanager
    async def transaction(self, *watch_keys):
        async with super().transaction(*watch_keys) as tx:
            async def execute():
                raise TransactionConflict(watch_keys)
            tx.execute = execute
            yield tx


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def engine(store, sink, clock):
    return MatchmakingEngine(store, EngineTestConfig, sink=sink, clock=clock)


def make_engine(store=None, sink=None, clock=None, config=EngineTestConfig):
    return MatchmakingEngine(
        store or InMemoryStore(), config, sink=sink or RecordingSink(), clock=clock or FakeClock()
    )
