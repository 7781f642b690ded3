"""
Lobby index and per-player waiting locks.

The lobby is a sorted set of match IDs scored by creation time, so the oldest
open match is always first. A waiting lock maps a player to the single match
they currently have open.
"""

from typing import List, Optional, Tuple

from matchmaking.data_models.match import Match
from matchmaking.services.base import BaseService
from matchmaking.store.base import Transaction


class LobbyIndex(BaseService):
    """Time-ordered index of WAITING match IDs."""

    @property
    def key(self) -> str:
        return self.keys.lobbies

    def stage_add(self, tx: Transaction, match: Match) -> None:
        tx.zadd(self.key, {match.id: match.created_at})

    def stage_remove(self, tx: Transaction, match_id: str) -> None:
        tx.zrem(self.key, match_id)

    async def page_from(self, min_created_at: float, count: int) -> List[Tuple[str, float]]:
        """(match ID, createdAt) oldest-first, starting at min_created_at inclusive."""
        return await self.store.zrangebyscore(self.key, min_created_at, float('inf'), count=count)

    async def count(self) -> int:
        return await self.store.zcard(self.key)

    async def contains(self, match_id: str) -> bool:
        return await self.store.zscore(self.key, match_id) is not None


class WaitingLocks(BaseService):
    """One open lobby per player: player name -> match ID."""

    def key(self, player_name: str) -> str:
        return self.keys.player_waiting(player_name)

    async def read(self, tx: Transaction, player_name: str) -> Optional[str]:
        """Watch and read a player's lock inside a transaction."""
        key = self.key(player_name)
        await tx.watch(key)
        return await tx.get(key)

    def stage_acquire(self, tx: Transaction, player_name: str, match_id: str) -> None:
        tx.set(self.key(player_name), match_id)

    def stage_release(self, tx: Transaction, player_name: str) -> None:
        tx.delete(self.key(player_name))

    async def get(self, player_name: str) -> Optional[str]:
        return await self.store.get(self.key(player_name))
