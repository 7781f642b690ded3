"""
Statistics data models: per-player win/loss records and engine-wide counters.
"""

import json
from dataclasses import dataclass, replace
from typing import Any, Dict


@dataclass(frozen=True)
class PlayerStats:
    """Cumulative record for one player."""
    player_name: str
    wins: int
    losses: int
    total_matches: int
    win_rate: float
    created_at: int
    last_updated: int

    @classmethod
    def initial(cls, player_name: str, now: int) -> 'PlayerStats':
        return cls(
            player_name=player_name,
            wins=0,
            losses=0,
            total_matches=0,
            win_rate=0.0,
            created_at=now,
            last_updated=now,
        )

    def record(self, won: bool, now: int) -> 'PlayerStats':
        """Return stats with one more win or loss applied."""
        wins = self.wins + (1 if won else 0)
        losses = self.losses + (0 if won else 1)
        total = wins + losses
        return replace(
            self,
            wins=wins,
            losses=losses,
            total_matches=total,
            win_rate=wins / total,
            last_updated=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'playerName': self.player_name,
            'wins': self.wins,
            'losses': self.losses,
            'totalMatches': self.total_matches,
            'winRate': self.win_rate,
            'createdAt': self.created_at,
            'lastUpdated': self.last_updated,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerStats':
        return cls(
            player_name=data['playerName'],
            wins=int(data.get('wins', 0)),
            losses=int(data.get('losses', 0)),
            total_matches=int(data.get('totalMatches', 0)),
            win_rate=float(data.get('winRate', 0.0)),
            created_at=int(data.get('createdAt', 0)),
            last_updated=int(data.get('lastUpdated', 0)),
        )

    @classmethod
    def from_json(cls, raw: str) -> 'PlayerStats':
        return cls.from_dict(json.loads(raw))


@dataclass(frozen=True)
class MatchmakingStats:
    """Engine-wide counters."""
    open_lobbies: int
    total_matches: int
    active_players: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'openLobbies': self.open_lobbies,
            'totalMatches': self.total_matches,
            'activePlayers': self.active_players,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchmakingStats':
        return cls(
            open_lobbies=int(data.get('openLobbies', 0)),
            total_matches=int(data.get('totalMatches', 0)),
            active_players=int(data.get('activePlayers', 0)),
        )
