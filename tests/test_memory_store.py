import asyncio

import pytest

from matchmaking.store.base import TransactionConflict
from matchmaking.store.memory import InMemoryStore


class SecondsClock:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


def test_string_values_expire():
    clock = SecondsClock()
    store = InMemoryStore(clock=clock)

    async def scenario():
        await store.set('greeting', 'hello', ex=10)
        assert await store.get('greeting') == 'hello'
        clock.value = 10.5
        assert await store.get('greeting') is None

    asyncio.run(scenario())


def test_sorted_set_ranges():
    store = InMemoryStore()

    async def scenario():
        await store.zadd('z', {'b': 2, 'a': 1, 'c': 3})
        assert await store.zrange('z', 0, -1) == ['a', 'b', 'c']
        assert await store.zrange('z', 0, 1, desc=True) == ['c', 'b']
        assert await store.zrange('z', 5, 10) == []
        assert await store.zcard('z') == 3
        assert await store.zrem('z', 'b', 'missing') == 1
        assert await store.zscore('z', 'b') is None
        assert await store.zscore('z', 'c') == 3

    asyncio.run(scenario())


def test_zrangebyscore_pages_by_score_then_member():
    store = InMemoryStore()

    async def scenario():
        await store.zadd('z', {'b': 2, 'a': 2, 'c': 1, 'd': 5})
        assert await store.zrangebyscore('z', float('-inf'), float('inf')) == [
            ('c', 1.0), ('a', 2.0), ('b', 2.0), ('d', 5.0)
        ]
        assert await store.zrangebyscore('z', 2, float('inf'), count=2) == [('a', 2.0), ('b', 2.0)]
        assert await store.zrangebyscore('z', 3, 4) == []
        assert await store.zrangebyscore('missing', 0, 10) == []

    asyncio.run(scenario())


def test_sets_count_unique_members():
    store = InMemoryStore()

    async def scenario():
        assert await store.sadd('s', 'x', 'y', 'x') == 2
        assert await store.scard('s') == 2
        assert await store.srem('s', 'x') == 1
        assert await store.smembers('s') == {'y'}

    asyncio.run(scenario())


def test_transaction_commits_when_watched_keys_unchanged():
    store = InMemoryStore()

    async def scenario():
        await store.set('counter', '1')
        async with store.transaction('counter') as tx:
            value = int(await tx.get('counter'))
            tx.set('counter', str(value + 1))
            tx.sadd('seen', 'one')
            await tx.execute()
        assert await store.get('counter') == '2'
        assert await store.smembers('seen') == {'one'}

    asyncio.run(scenario())
    assert store.transactions_committed == 1


def test_transaction_aborts_when_watched_key_changes():
    store = InMemoryStore()

    async def scenario():
        await store.set('counter', '1')
        async with store.transaction('counter') as tx:
            await tx.get('counter')
            await store.set('counter', '5')
            tx.set('counter', '2')
            tx.set('other', 'x')
            with pytest.raises(TransactionConflict) as info:
                await tx.execute()
        assert info.value.keys == ('counter',)
        assert await store.get('counter') == '5'
        assert await store.get('other') is None

    asyncio.run(scenario())
    assert store.transactions_aborted == 1


def test_watch_added_mid_transaction_detects_changes():
    store = InMemoryStore()

    async def scenario():
        async with store.transaction() as tx:
            await tx.watch('lock')
            await store.set('lock', 'taken')
            tx.set('lock', 'mine')
            with pytest.raises(TransactionConflict):
                await tx.execute()
        assert await store.get('lock') == 'taken'

    asyncio.run(scenario())


def test_expiry_of_watched_key_aborts_transaction():
    clock = SecondsClock()
    store = InMemoryStore(clock=clock)

    async def scenario():
        await store.set('session', 'abc', ex=5)
        async with store.transaction('session') as tx:
            clock.value = 6
            tx.set('result', 'done')
            with pytest.raises(TransactionConflict):
                await tx.execute()

    asyncio.run(scenario())


def test_unwatched_writes_do_not_abort():
    store = InMemoryStore()

    async def scenario():
        async with store.transaction('mine') as tx:
            await store.set('unrelated', 'x')
            tx.set('mine', 'y')
            await tx.execute()
        assert await store.get('mine') == 'y'

    asyncio.run(scenario())


def test_concurrent_increments_serialize_through_retries():
    store = InMemoryStore()

    async def increment():
        while True:
            try:
                async with store.transaction('n') as tx:
                    value = int(await tx.get('n') or 0)
                    tx.set('n', str(value + 1))
                    await tx.execute()
                    return
            except TransactionConflict:
                continue

    async def scenario():
        await asyncio.gather(*(increment() for _ in range(20)))
        return await store.get('n')

    assert asyncio.run(scenario()) == '20'
    assert store.transactions_aborted > 0
