import asyncio

import pytest

from conftest import AlwaysConflictingStore, EngineTestConfig, FakeClock
from matchmaking.data_models.stats import PlayerStats
from matchmaking.services.stats_tracker import StatsTracker
from matchmaking.store.memory import InMemoryStore
from matchmaking.utils.exceptions import ContentionError


@pytest.fixture()
def tracker(store, clock):
    return StatsTracker(store, EngineTestConfig, clock)


def test_record_outcome_creates_missing_records(tracker, clock):
    winner, loser = asyncio.run(tracker.record_outcome('alice', 'bob'))

    assert winner == PlayerStats('alice', 1, 0, 1, 1.0, clock(), clock())
    assert loser == PlayerStats('bob', 0, 1, 1, 0.0, clock(), clock())


def test_record_outcome_accumulates(tracker, clock):
    async def scenario():
        await tracker.record_outcome('alice', 'bob')
        clock.advance()
        await tracker.record_outcome('bob', 'alice')
        clock.advance()
        await tracker.record_outcome('alice', 'bob')
        return await tracker.get('alice'), await tracker.get('bob')

    alice, bob = asyncio.run(scenario())

    assert (alice.wins, alice.losses, alice.total_matches) == (2, 1, 3)
    assert alice.win_rate == pytest.approx(2 / 3)
    assert (bob.wins, bob.losses, bob.total_matches) == (1, 2, 3)
    assert bob.last_updated == clock()
    assert bob.created_at < bob.last_updated


def test_winner_and_loser_must_differ(tracker):
    with pytest.raises(ValueError):
        asyncio.run(tracker.record_outcome('alice', 'alice'))


def test_concurrent_outcomes_are_not_lost(tracker):
    async def scenario():
        await asyncio.gather(*(tracker.record_outcome('alice', f'rival{i}') for i in range(4)))
        return await tracker.get('alice')

    alice = asyncio.run(scenario())

    assert alice.wins == 4
    assert alice.total_matches == 4


def test_wins_and_losses_balance_across_players(tracker):
    pairs = [('a', 'b'), ('b', 'c'), ('c', 'a'), ('a', 'c')]

    async def scenario():
        await asyncio.gather(*(tracker.record_outcome(w, l) for w, l in pairs))
        return [await tracker.get(name) for name in ('a', 'b', 'c')]

    records = asyncio.run(scenario())

    assert sum(r.wins for r in records) == len(pairs)
    assert sum(r.losses for r in records) == len(pairs)
    assert all(r.total_matches == r.wins + r.losses for r in records)


def test_exhausted_retries_raise_contention():
    tracker = StatsTracker(AlwaysConflictingStore(), EngineTestConfig, FakeClock())

    with pytest.raises(ContentionError) as info:
        asyncio.run(tracker.record_outcome('alice', 'bob'))

    assert info.value.details['attempts'] == EngineTestConfig.STATS_MAX_RETRIES


def test_player_registry_counts_unique_players(clock):
    store = InMemoryStore()
    tracker = StatsTracker(store, EngineTestConfig, clock)

    async def scenario():
        for name in ('alice', 'bob', 'alice'):
            async with store.transaction() as tx:
                tracker.stage_register(tx, name)
                await tx.execute()
        return await tracker.count_players()

    assert asyncio.run(scenario()) == 2
