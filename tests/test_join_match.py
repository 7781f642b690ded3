import asyncio

import pytest

from matchmaking.constants import MatchStates
from matchmaking.data_models.match import JoinResult
from matchmaking.utils.exceptions import (
    MatchNotAvailableError, MatchNotFoundError, SelfJoinError, ValidationError
)


def test_join_resolves_match(engine, clock):
    async def scenario():
        match = await engine.create_match('alice', 100, level=2)
        clock.advance(30_000)
        result = await engine.join_match(match.id, 'bob', 140, level=1)
        stored = await engine.get_match_details(match.id)
        return match, result, stored

    match, result, stored = asyncio.run(scenario())

    assert result.resolution.winner == 'bob'
    assert result.resolution.loser == 'alice'
    assert result.resolution.total_score == 240
    assert result.match.state == MatchStates.COMPLETED
    assert result.match.player2.name == 'bob'
    assert result.match.winner == 'bob'
    assert result.match.resolved_at == match.created_at + 30_000
    assert stored == result.match


def test_join_clears_lobby_and_creator_lock(engine):
    async def scenario():
        match = await engine.create_match('alice', 100)
        await engine.join_match(match.id, 'bob', 50)
        return (
            await engine.lobby.contains(match.id),
            await engine.waiting.get('alice'),
            await engine.get_open_lobbies(),
        )

    in_lobby, lock, lobbies = asyncio.run(scenario())

    assert in_lobby is False
    assert lock is None
    assert lobbies == []


def test_join_records_history_and_stats_for_both_players(engine):
    async def scenario():
        match = await engine.create_match('alice', 100)
        await engine.join_match(match.id, 'bob', 50)
        return (
            match,
            await engine.get_player_matches('alice'),
            await engine.get_player_matches('bob'),
            await engine.get_player_stats('alice'),
            await engine.get_player_stats('bob'),
        )

    match, alice_history, bob_history, alice, bob = asyncio.run(scenario())

    assert [m.id for m in alice_history] == [match.id]
    assert [m.id for m in bob_history] == [match.id]
    assert (alice.wins, alice.losses, alice.total_matches, alice.win_rate) == (1, 0, 1, 1.0)
    assert (bob.wins, bob.losses, bob.total_matches, bob.win_rate) == (0, 1, 1, 0.0)


def test_equal_scores_resolve_as_tie_won_by_creator(engine, clock):
    async def scenario():
        match = await engine.create_match('alice', 75)
        clock.advance()
        return await engine.join_match(match.id, 'bob', 75)

    result = asyncio.run(scenario())

    assert result.resolution.is_tie is True
    assert result.resolution.winner == 'alice'


def test_join_unknown_match(engine):
    with pytest.raises(MatchNotFoundError):
        asyncio.run(engine.join_match('match_0_missing', 'bob', 10))


def test_creator_cannot_join_own_match(engine):
    async def scenario():
        match = await engine.create_match('alice', 10)
        with pytest.raises(SelfJoinError):
            await engine.join_match(match.id, 'alice', 99)
        return await engine.get_match_details(match.id)

    assert asyncio.run(scenario()).state == MatchStates.WAITING


def test_completed_match_cannot_be_joined_again(engine):
    async def scenario():
        match = await engine.create_match('alice', 10)
        await engine.join_match(match.id, 'bob', 20)
        with pytest.raises(MatchNotAvailableError) as info:
            await engine.join_match(match.id, 'carol', 30)
        return info.value

    error = asyncio.run(scenario())

    assert error.details['state'] == MatchStates.COMPLETED


def test_cancelled_match_cannot_be_joined(engine):
    async def scenario():
        match = await engine.create_match('alice', 10)
        await engine.cancel_match(match.id, 'alice')
        with pytest.raises(MatchNotAvailableError):
            await engine.join_match(match.id, 'bob', 20)

    asyncio.run(scenario())


def test_join_validates_input(engine):
    with pytest.raises(ValidationError):
        asyncio.run(engine.join_match('', 'bob', 10))
    with pytest.raises(ValidationError):
        asyncio.run(engine.join_match('match_1_x', 'bob', -5))


def test_concurrent_joins_have_exactly_one_winner(engine, sink):
    async def scenario():
        match = await engine.create_match('alice', 100)
        results = await asyncio.gather(
            *(engine.join_match(match.id, f'challenger{i}', 50 + i) for i in range(6)),
            return_exceptions=True
        )
        await engine.drain_notifications()
        return match, results, await engine.get_match_details(match.id)

    match, results, stored = asyncio.run(scenario())

    joined = [r for r in results if isinstance(r, JoinResult)]
    rejected = [r for r in results if isinstance(r, MatchNotAvailableError)]
    assert len(joined) == 1
    assert len(rejected) == 5
    assert stored.player2.name == joined[0].match.player2.name
    assert len(sink.events) == 1


def test_joiner_keeps_own_open_lobby(engine, clock):
    async def scenario():
        target = await engine.create_match('alice', 10)
        clock.advance()
        own = await engine.create_match('bob', 5)
        await engine.join_match(target.id, 'bob', 20)
        return own, await engine.waiting.get('bob'), await engine.get_open_lobbies()

    own, lock, lobbies = asyncio.run(scenario())

    assert lock == own.id
    assert [lobby.match_id for lobby in lobbies] == [own.id]


def test_join_publishes_resolution_event(engine, sink):
    async def scenario():
        match = await engine.create_match('alice', 10)
        await engine.join_match(match.id, 'bob', 20)
        await engine.drain_notifications()
        return match

    match = asyncio.run(scenario())

    assert len(sink.events) == 1
    event = sink.events[0]
    assert event['type'] == 'match_resolved'
    assert event['match']['id'] == match.id
    assert event['resolution']['winner'] == 'bob'
    assert event['winnerStats']['wins'] == 1
    assert event['loserStats']['losses'] == 1
