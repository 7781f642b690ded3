"""
Player statistics tracking.

Win/loss records are JSON documents per player. A match outcome updates the
winner and the loser in a single optimistic transaction so no reader ever sees
only one side of a result.
"""

from typing import Optional, Tuple

from matchmaking.data_models.stats import PlayerStats
from matchmaking.services.base import BaseService
from matchmaking.store.base import Transaction
from matchmaking.utils.logger import setup_logger

logger = setup_logger(__name__)


class StatsTracker(BaseService):
    """Atomic win/loss counters per player."""

    def key(self, player_name: str) -> str:
        return self.keys.player_stats(player_name)

    async def get(self, player_name: str) -> Optional[PlayerStats]:
        raw = await self.store.get(self.key(player_name))
        return PlayerStats.from_json(raw) if raw else None

    async def read(self, tx: Transaction, player_name: str) -> Optional[PlayerStats]:
        """Watch and read a player's stats inside a transaction."""
        key = self.key(player_name)
        await tx.watch(key)
        raw = await tx.get(key)
        return PlayerStats.from_json(raw) if raw else None

    def stage_initialize(self, tx: Transaction, player_name: str, now: int) -> PlayerStats:
        stats = PlayerStats.initial(player_name, now)
        tx.set(self.key(player_name), stats.to_json())
        return stats

    def stage_register(self, tx: Transaction, player_name: str) -> None:
        tx.sadd(self.keys.players, player_name)

    async def count_players(self) -> int:
        return await self.store.scard(self.keys.players)

    async def record_outcome(self, winner: str, loser: str) -> Tuple[PlayerStats, PlayerStats]:
        """
        Apply one win to the winner and one loss to the loser.

        Args:
            winner: Winning player's name
            loser: Losing player's name

        Returns:
            (winner_stats, loser_stats) as committed

        Raises:
            ValueError: If winner and loser are the same player
            ContentionError: If the retry budget runs out
        """
        if winner == loser:
            raise ValueError("Winner and loser must be different players")

        winner_key, loser_key = self.key(winner), self.key(loser)

        async def attempt():
            async with self.store.transaction(winner_key, loser_key) as tx:
                now = self.now()
                winner_stats = await self.read(tx, winner) or PlayerStats.initial(winner, now)
                loser_stats = await self.read(tx, loser) or PlayerStats.initial(loser, now)

                winner_stats = winner_stats.record(won=True, now=now)
                loser_stats = loser_stats.record(won=False, now=now)

                tx.set(winner_key, winner_stats.to_json())
                tx.set(loser_key, loser_stats.to_json())
                await tx.execute()
                return winner_stats, loser_stats

        winner_stats, loser_stats = await self.run_optimistic(
            'stats_update', attempt, self.config.STATS_MAX_RETRIES
        )
        logger.info(
            f"🏆 Updated stats: {winner} {winner_stats.wins}W/{winner_stats.losses}L "
            f"({winner_stats.win_rate:.1%}), {loser} {loser_stats.wins}W/{loser_stats.losses}L "
            f"({loser_stats.win_rate:.1%})"
        )
        return winner_stats, loser_stats
