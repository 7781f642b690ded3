"""Storage abstractions consumed by the matchmaking engine."""

from __future__ import annotations

from typing import AsyncContextManager, Mapping, Optional, Protocol, Sequence, Set


class TransactionConflict(Exception):
    """A watched key changed between WATCH and EXEC; the transaction was discarded."""

    def __init__(self, keys: Sequence[str] = ()):
        super().__init__(f"Watched keys changed: {', '.join(keys) or 'unknown'}")
        self.keys = tuple(keys)


class Transaction(Protocol):
    """Optimistic transaction: reads run immediately, writes are buffered until execute()."""

    async def watch(self, *keys: str) -> None:
        """Add keys to the watch set; only valid before the first buffered write."""
        ...

    async def get(self, key: str) -> Optional[str]:
        ...

    async def zscore(self, key: str, member: str) -> Optional[float]:
        ...

    def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        ...

    def delete(self, *keys: str) -> None:
        ...

    def zadd(self, key: str, mapping: Mapping[str, float]) -> None:
        ...

    def zrem(self, key: str, *members: str) -> None:
        ...

    def sadd(self, key: str, *members: str) -> None:
        ...

    async def execute(self) -> None:
        """Commit buffered writes; raise TransactionConflict if a watched key changed."""
        ...


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        ...

    async def zrange(self, key: str, start: int, end: int, desc: bool = False) -> list[str]:
        ...

    async def zrem(self, key: str, *members: str) -> int:
        ...

    async def zrangebyscore(self, key: str, min_score: float, max_score: float,
                            count: Optional[int] = None) -> list[tuple[str, float]]:
        """(member, score) pairs with min_score <= score <= max_score, lowest first."""
        ...

    async def zcard(self, key: str) -> int:
        ...

    async def zscore(self, key: str, member: str) -> Optional[float]:
        ...

    async def sadd(self, key: str, *members: str) -> int:
        ...

    async def srem(self, key: str, *members: str) -> int:
        ...

    async def scard(self, key: str) -> int:
        ...

    async def smembers(self, key: str) -> Set[str]:
        ...

    def transaction(self, *watch_keys: str) -> AsyncContextManager[Transaction]:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...
