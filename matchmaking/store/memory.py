"""In-process key-value store with Redis-compatible WATCH semantics."""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

from matchmaking.store.base import TransactionConflict
from matchmaking.utils.logger import setup_logger

logger = setup_logger(__name__)


class InMemoryStore:
    """
    Single-process stand-in for Redis.

    Every key carries a version that is bumped on each write (including TTL
    expiry), so a transaction aborts exactly when Redis WATCH would. Each call
    yields to the event loop once, which lets concurrent tasks interleave
    between round-trips the way they do against a real server.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._strings: Dict[str, str] = {}
        self._zsets: Dict[str, Dict[str, float]] = {}
        self._sets: Dict[str, Set[str]] = {}
        self._expires: Dict[str, float] = {}
        self._versions: Dict[str, int] = defaultdict(int)
        self.transactions_committed = 0
        self.transactions_aborted = 0

    async def _round_trip(self):
        await asyncio.sleep(0)

    # -- internal helpers, synchronous so they run without interleaving --

    def _touch(self, key: str):
        self._versions[key] += 1

    def _expire_if_due(self, key: str):
        deadline = self._expires.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._drop(key)

    def _drop(self, key: str) -> bool:
        existed = False
        for bucket in (self._strings, self._zsets, self._sets):
            if key in bucket:
                del bucket[key]
                existed = True
        self._expires.pop(key, None)
        if existed:
            self._touch(key)
        return existed

    def _version(self, key: str) -> int:
        self._expire_if_due(key)
        return self._versions[key]

    def _get(self, key: str) -> Optional[str]:
        self._expire_if_due(key)
        return self._strings.get(key)

    def _set(self, key: str, value: str, ex: Optional[int] = None):
        self._drop(key)
        self._strings[key] = value
        if ex is not None:
            self._expires[key] = self._clock() + ex
        self._touch(key)

    def _delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self._expire_if_due(key)
            if self._drop(key):
                removed += 1
        return removed

    def _zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        self._expire_if_due(key)
        zset = self._zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update({member: float(score) for member, score in mapping.items()})
        self._touch(key)
        return added

    def _zrem(self, key: str, *members: str) -> int:
        self._expire_if_due(key)
        zset = self._zsets.get(key)
        if not zset:
            return 0
        removed = 0
        for member in members:
            if zset.pop(member, None) is not None:
                removed += 1
        if not zset:
            del self._zsets[key]
        if removed:
            self._touch(key)
        return removed

    def _sadd(self, key: str, *members: str) -> int:
        self._expire_if_due(key)
        members_set = self._sets.setdefault(key, set())
        added = len(set(members) - members_set)
        members_set.update(members)
        if added:
            self._touch(key)
        return added

    def _srem(self, key: str, *members: str) -> int:
        self._expire_if_due(key)
        members_set = self._sets.get(key)
        if not members_set:
            return 0
        removed = len(members_set & set(members))
        members_set.difference_update(members)
        if not members_set:
            del self._sets[key]
        if removed:
            self._touch(key)
        return removed

    @staticmethod
    def _slice(items: List[str], start: int, end: int) -> List[str]:
        length = len(items)
        if start < 0:
            start = max(length + start, 0)
        if end < 0:
            end = length + end
        if start >= length or start > end:
            return []
        return items[start:end + 1]

    # -- public KeyValueStore API --

    async def get(self, key: str) -> Optional[str]:
        await self._round_trip()
        return self._get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        await self._round_trip()
        self._set(key, value, ex)

    async def delete(self, *keys: str) -> int:
        await self._round_trip()
        return self._delete(*keys)

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        await self._round_trip()
        return self._zadd(key, mapping)

    async def zrange(self, key: str, start: int, end: int, desc: bool = False) -> List[str]:
        await self._round_trip()
        self._expire_if_due(key)
        zset = self._zsets.get(key, {})
        ordered = sorted(zset.items(), key=lambda item: (item[1], item[0]), reverse=desc)
        return self._slice([member for member, _ in ordered], start, end)

    async def zrangebyscore(self, key: str, min_score: float, max_score: float,
                            count: Optional[int] = None) -> List[Tuple[str, float]]:
        await self._round_trip()
        self._expire_if_due(key)
        zset = self._zsets.get(key, {})
        ordered = sorted(
            (item for item in zset.items() if min_score <= item[1] <= max_score),
            key=lambda item: (item[1], item[0])
        )
        return ordered if count is None else ordered[:count]

    async def zscore(self, key: str, member: str) -> Optional[float]:
        await self._round_trip()
        self._expire_if_due(key)
        return self._zsets.get(key, {}).get(member)

    async def zrem(self, key: str, *members: str) -> int:
        await self._round_trip()
        return self._zrem(key, *members)

    async def zcard(self, key: str) -> int:
        await self._round_trip()
        self._expire_if_due(key)
        return len(self._zsets.get(key, {}))

    async def sadd(self, key: str, *members: str) -> int:
        await self._round_trip()
        return self._sadd(key, *members)

    async def srem(self, key: str, *members: str) -> int:
        await self._round_trip()
        return self._srem(key, *members)

    async def scard(self, key: str) -> int:
        await self._round_trip()
        self._expire_if_due(key)
        return len(self._sets.get(key, set()))

    async def smembers(self, key: str) -> Set[str]:
        await self._round_trip()
        self._expire_if_due(key)
        return set(self._sets.get(key, set()))

    @asynccontextmanager
    async def transaction(self, *watch_keys: str):
        await self._round_trip()
        yield MemoryTransaction(self, watch_keys)

    async def ping(self) -> bool:
        await self._round_trip()
        return True

    async def close(self) -> None:
        logger.debug("In-memory store closed")


class MemoryTransaction:
    """Buffered transaction over an InMemoryStore."""

    def __init__(self, store: InMemoryStore, watch_keys):
        self._store = store
        self._watched: Dict[str, int] = {}
        self._ops: List[Tuple[Callable, tuple]] = []
        self._watch_now(watch_keys)

    def _watch_now(self, keys):
        for key in keys:
            if key not in self._watched:
                self._watched[key] = self._store._version(key)

    async def watch(self, *keys: str) -> None:
        await self._store._round_trip()
        self._watch_now(keys)

    async def get(self, key: str) -> Optional[str]:
        return await self._store.get(key)

    async def zscore(self, key: str, member: str) -> Optional[float]:
        return await self._store.zscore(key, member)

    def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        self._ops.append((self._store._set, (key, value, ex)))

    def delete(self, *keys: str) -> None:
        self._ops.append((self._store._delete, keys))

    def zadd(self, key: str, mapping: Mapping[str, float]) -> None:
        self._ops.append((self._store._zadd, (key, dict(mapping))))

    def zrem(self, key: str, *members: str) -> None:
        self._ops.append((self._store._zrem, (key,) + members))

    def sadd(self, key: str, *members: str) -> None:
        self._ops.append((self._store._sadd, (key,) + members))

    async def execute(self) -> None:
        await self._store._round_trip()
        changed = [
            key for key, version in self._watched.items()
            if self._store._version(key) != version
        ]
        if changed:
            self._ops.clear()
            self._store.transactions_aborted += 1
            raise TransactionConflict(changed)
        for operation, args in self._ops:
            operation(*args)
        self._ops.clear()
        self._store.transactions_committed += 1
