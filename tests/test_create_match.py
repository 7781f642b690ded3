import asyncio
import re

import pytest

from matchmaking.constants import MatchStates
from matchmaking.utils.exceptions import AlreadyWaitingError, ValidationError


def test_create_match_opens_lobby(engine, store):
    async def scenario():
        match = await engine.create_match('alice', 150, level=3, external_user_id=42)
        lobby = [match_id for match_id, _ in await engine.lobby.page_from(float('-inf'), 10)]
        lock = await engine.waiting.get('alice')
        stats = await engine.get_player_stats('alice')
        history = await engine.get_player_matches('alice')
        return match, lobby, lock, stats, history

    match, lobby, lock, stats, history = asyncio.run(scenario())

    assert re.fullmatch(r'match_\d+_[a-z0-9]{9}', match.id)
    assert match.state == MatchStates.WAITING
    assert match.player1.name == 'alice'
    assert match.player1.score == 150
    assert match.player1.level == 3
    assert match.player1.external_user_id == '42'
    assert match.player2 is None
    assert match.total_score == 150
    assert lobby == [match.id]
    assert lock == match.id
    assert stats.wins == 0 and stats.losses == 0 and stats.total_matches == 0
    assert [m.id for m in history] == [match.id]


def test_match_is_persisted_as_camel_case_json(engine, store):
    async def scenario():
        match = await engine.create_match('alice', 10)
        return match, await store.get(f'test:matches:{match.id}')

    match, raw = asyncio.run(scenario())

    assert '"createdAt"' in raw
    assert '"totalScore"' in raw
    assert match.id in raw


def test_second_open_lobby_is_rejected_with_existing_match(engine):
    async def scenario():
        first = await engine.create_match('alice', 10)
        with pytest.raises(AlreadyWaitingError) as info:
            await engine.create_match('alice', 20)
        return first, info.value, await engine.lobby.count()

    first, error, open_lobbies = asyncio.run(scenario())

    assert error.existing_match['id'] == first.id
    assert error.code == 'AlreadyWaiting'
    assert open_lobbies == 1


def test_player_can_open_new_lobby_after_cancelling(engine, clock):
    async def scenario():
        first = await engine.create_match('alice', 10)
        await engine.cancel_match(first.id, 'alice')
        clock.advance()
        second = await engine.create_match('alice', 20)
        return first, second, await engine.waiting.get('alice')

    first, second, lock = asyncio.run(scenario())

    assert second.id != first.id
    assert lock == second.id


def test_stale_waiting_lock_is_replaced(engine, store):
    async def scenario():
        await store.set(engine.waiting.key('alice'), 'match_0_gone')
        match = await engine.create_match('alice', 10)
        return match, await engine.waiting.get('alice')

    match, lock = asyncio.run(scenario())

    assert lock == match.id


@pytest.mark.parametrize('kwargs, field', [
    ({'player_name': '', 'score': 10}, 'playerName'),
    ({'player_name': '   ', 'score': 10}, 'playerName'),
    ({'player_name': 'x' * 65, 'score': 10}, 'playerName'),
    ({'player_name': 'alice', 'score': -1}, 'score'),
    ({'player_name': 'alice', 'score': '10'}, 'score'),
    ({'player_name': 'alice', 'score': True}, 'score'),
    ({'player_name': 'alice', 'score': 10, 'level': 0}, 'level'),
    ({'player_name': 'alice', 'score': 10, 'request_key': ''}, 'requestKey'),
])
def test_invalid_input_is_rejected_before_store_access(engine, store, kwargs, field):
    with pytest.raises(ValidationError) as info:
        asyncio.run(engine.create_match(**kwargs))

    assert info.value.details['field'] == field
    assert store.transactions_committed == 0
    assert asyncio.run(store.zcard('test:lobbies')) == 0


def test_concurrent_creates_by_same_player_open_one_lobby(engine):
    async def scenario():
        return await asyncio.gather(
            *(engine.create_match('alice', score) for score in (10, 20, 30)),
            return_exceptions=True
        )

    results = asyncio.run(scenario())

    created = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, AlreadyWaitingError)]
    assert len(created) == 1
    assert len(rejected) == 2
    assert all(error.existing_match['id'] == created[0].id for error in rejected)
