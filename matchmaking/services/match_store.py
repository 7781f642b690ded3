"""
Match record storage.

Matches are JSON documents keyed by ID and are never deleted. Each player also
has a history index (sorted set scored by match creation time) and every match
ID is registered in a global set for counting.
"""

from typing import List, Optional

from matchmaking.data_models.match import Match
from matchmaking.services.base import BaseService
from matchmaking.store.base import Transaction
from matchmaking.utils.logger import setup_logger

logger = setup_logger(__name__)


class MatchStore(BaseService):
    """CRUD for match records keyed by match ID."""

    def key(self, match_id: str) -> str:
        return self.keys.match(match_id)

    def _decode(self, match_id: str, raw: Optional[str]) -> Optional[Match]:
        if raw is None:
            return None
        try:
            return Match.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Corrupt match record {match_id}: {e}")
            return None

    async def get(self, match_id: str) -> Optional[Match]:
        raw = await self.store.get(self.key(match_id))
        return self._decode(match_id, raw)

    async def get_many(self, match_ids: List[str]) -> List[Match]:
        matches = []
        for match_id in match_ids:
            match = await self.get(match_id)
            if match:
                matches.append(match)
        return matches

    async def read(self, tx: Transaction, match_id: str) -> Optional[Match]:
        """Read a match inside a transaction; the caller must already watch its key."""
        raw = await tx.get(self.key(match_id))
        return self._decode(match_id, raw)

    def stage_save(self, tx: Transaction, match: Match) -> None:
        tx.set(self.key(match.id), match.to_json())

    def stage_register(self, tx: Transaction, match: Match) -> None:
        tx.sadd(self.keys.match_ids, match.id)

    def stage_history(self, tx: Transaction, player_name: str, match: Match) -> None:
        tx.zadd(self.keys.player_matches(player_name), {match.id: match.created_at})

    async def history(self, player_name: str, limit: int) -> List[Match]:
        """Most recent matches for a player, newest first."""
        match_ids = await self.store.zrange(
            self.keys.player_matches(player_name), 0, limit - 1, desc=True
        )
        return await self.get_many(match_ids)

    async def count(self) -> int:
        return await self.store.scard(self.keys.match_ids)

