"""
Redis-backed key-value store.

Optimistic transactions map onto WATCH / MULTI / EXEC through a transactional
pipeline: reads issued while watching run immediately, writes queue after
MULTI and commit on EXEC.
"""

from contextlib import asynccontextmanager
from typing import List, Mapping, Optional, Set, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from matchmaking.store.base import TransactionConflict
from matchmaking.utils.exceptions import StoreUnavailableError
from matchmaking.utils.logger import setup_logger
from matchmaking.utils.redis_utils import RedisUtils

logger = setup_logger(__name__)


@asynccontextmanager
async def translate_errors(operation: str):
    """Surface connection failures as StoreUnavailableError."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.error(f"Redis unavailable during {operation}: {e}")
        raise StoreUnavailableError(operation, str(e)) from e


def _score_bound(score: float):
    if score == float('-inf'):
        return '-inf'
    if score == float('inf'):
        return '+inf'
    return score


class RedisStore:
    """KeyValueStore implementation on top of redis.asyncio."""

    def __init__(self, client: 'redis.Redis'):
        self.client = client

    @classmethod
    async def connect(cls, config) -> 'RedisStore':
        client = await RedisUtils.create_redis_client(config)
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        async with translate_errors('get'):
            return await self.client.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        async with translate_errors('set'):
            await self.client.set(key, value, ex=ex)

    async def delete(self, *keys: str) -> int:
        async with translate_errors('delete'):
            return await self.client.delete(*keys)

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        async with translate_errors('zadd'):
            return await self.client.zadd(key, dict(mapping))

    async def zrange(self, key: str, start: int, end: int, desc: bool = False) -> List[str]:
        async with translate_errors('zrange'):
            return await self.client.zrange(key, start, end, desc=desc)

    async def zrangebyscore(self, key: str, min_score: float, max_score: float,
                            count: Optional[int] = None) -> List[Tuple[str, float]]:
        paging = {'start': 0, 'num': count} if count is not None else {}
        async with translate_errors('zrangebyscore'):
            entries = await self.client.zrangebyscore(
                key, _score_bound(min_score), _score_bound(max_score), withscores=True, **paging
            )
        return [(member, float(score)) for member, score in entries]

    async def zrem(self, key: str, *members: str) -> int:
        async with translate_errors('zrem'):
            return await self.client.zrem(key, *members)

    async def zcard(self, key: str) -> int:
        async with translate_errors('zcard'):
            return await self.client.zcard(key)

    async def zscore(self, key: str, member: str) -> Optional[float]:
        async with translate_errors('zscore'):
            return await self.client.zscore(key, member)

    async def sadd(self, key: str, *members: str) -> int:
        async with translate_errors('sadd'):
            return await self.client.sadd(key, *members)

    async def srem(self, key: str, *members: str) -> int:
        async with translate_errors('srem'):
            return await self.client.srem(key, *members)

    async def scard(self, key: str) -> int:
        async with translate_errors('scard'):
            return await self.client.scard(key)

    async def smembers(self, key: str) -> Set[str]:
        async with translate_errors('smembers'):
            return set(await self.client.smembers(key))

    @asynccontextmanager
    async def transaction(self, *watch_keys: str):
        async with translate_errors('transaction'):
            async with self.client.pipeline(transaction=True) as pipe:
                transaction = RedisTransaction(pipe)
                if watch_keys:
                    await transaction.watch(*watch_keys)
                yield transaction

    async def ping(self) -> bool:
        async with translate_errors('ping'):
            return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed")


class RedisTransaction:
    """WATCH/MULTI/EXEC wrapper over a redis.asyncio pipeline."""

    def __init__(self, pipe):
        self._pipe = pipe
        self._watched: List[str] = []
        self._queued = False

    async def watch(self, *keys: str) -> None:
        if self._queued:
            raise RuntimeError("Cannot WATCH after writes were queued")
        await self._pipe.watch(*keys)
        self._watched.extend(keys)

    async def get(self, key: str) -> Optional[str]:
        return await self._pipe.get(key)

    async def zscore(self, key: str, member: str) -> Optional[float]:
        return await self._pipe.zscore(key, member)

    def _multi(self):
        if not self._queued:
            self._pipe.multi()
            self._queued = True
        return self._pipe

    def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        self._multi().set(key, value, ex=ex)

    def delete(self, *keys: str) -> None:
        self._multi().delete(*keys)

    def zadd(self, key: str, mapping: Mapping[str, float]) -> None:
        self._multi().zadd(key, dict(mapping))

    def zrem(self, key: str, *members: str) -> None:
        self._multi().zrem(key, *members)

    def sadd(self, key: str, *members: str) -> None:
        self._multi().sadd(key, *members)

    async def execute(self) -> None:
        self._multi()
        try:
            await self._pipe.execute()
        except WatchError as e:
            raise TransactionConflict(self._watched) from e
