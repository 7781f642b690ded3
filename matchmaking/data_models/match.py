"""
Match data models for the matchmaking engine.

Immutable records stored as JSON in the key-value store. Field names on the
wire are camelCase so stored matches stay readable by other clients.
"""

import json
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from matchmaking.constants import MatchStates


@dataclass(frozen=True)
class PlayerSubmission:
    """One player's submitted result."""
    name: str
    score: int
    level: int
    submitted_at: int  # epoch ms
    external_user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'score': self.score,
            'level': self.level,
            'externalUserId': self.external_user_id,
            'submittedAt': self.submitted_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerSubmission':
        return cls(
            name=data['name'],
            score=int(data['score']),
            level=int(data.get('level', 1)),
            submitted_at=int(data['submittedAt']),
            external_user_id=data.get('externalUserId'),
        )


@dataclass(frozen=True)
class MatchResolution:
    """Outcome of comparing two submissions."""
    winner: str
    loser: str
    winner_score: int
    loser_score: int
    is_tie: bool
    total_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'winner': self.winner,
            'loser': self.loser,
            'winnerScore': self.winner_score,
            'loserScore': self.loser_score,
            'isTie': self.is_tie,
            'totalScore': self.total_score,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchResolution':
        return cls(
            winner=data['winner'],
            loser=data['loser'],
            winner_score=int(data['winnerScore']),
            loser_score=int(data['loserScore']),
            is_tie=bool(data['isTie']),
            total_score=int(data['totalScore']),
        )


@dataclass(frozen=True)
class Match:
    """A single head-to-head match between two submissions."""
    id: str
    player1: PlayerSubmission
    state: str
    created_at: int
    total_score: int
    player2: Optional[PlayerSubmission] = None
    resolved_at: Optional[int] = None
    cancelled_at: Optional[int] = None
    cancelled_by: Optional[str] = None
    winner: Optional[str] = None

    @property
    def is_waiting(self) -> bool:
        return self.state == MatchStates.WAITING

    @property
    def creator(self) -> str:
        return self.player1.name

    def complete(self, player2: PlayerSubmission, resolution: MatchResolution, resolved_at: int) -> 'Match':
        """Return the COMPLETED version of this match."""
        return replace(
            self,
            player2=player2,
            state=MatchStates.COMPLETED,
            resolved_at=resolved_at,
            winner=resolution.winner,
            total_score=self.player1.score + player2.score,
        )

    def cancel(self, cancelled_by: str, cancelled_at: int) -> 'Match':
        """Return the CANCELLED version of this match."""
        return replace(
            self,
            state=MatchStates.CANCELLED,
            cancelled_at=cancelled_at,
            cancelled_by=cancelled_by,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'player1': self.player1.to_dict(),
            'player2': self.player2.to_dict() if self.player2 else None,
            'state': self.state,
            'createdAt': self.created_at,
            'resolvedAt': self.resolved_at,
            'cancelledAt': self.cancelled_at,
            'cancelledBy': self.cancelled_by,
            'winner': self.winner,
            'totalScore': self.total_score,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Match':
        player2 = data.get('player2')
        return cls(
            id=data['id'],
            player1=PlayerSubmission.from_dict(data['player1']),
            player2=PlayerSubmission.from_dict(player2) if player2 else None,
            state=data['state'],
            created_at=int(data['createdAt']),
            resolved_at=data.get('resolvedAt'),
            cancelled_at=data.get('cancelledAt'),
            cancelled_by=data.get('cancelledBy'),
            winner=data.get('winner'),
            total_score=int(data.get('totalScore', 0)),
        )

    @classmethod
    def from_json(cls, raw: str) -> 'Match':
        return cls.from_dict(json.loads(raw))


@dataclass(frozen=True)
class JoinResult:
    """Response of a successful join: the completed match and its outcome."""
    match: Match
    resolution: MatchResolution

    def to_dict(self) -> Dict[str, Any]:
        return {
            'match': self.match.to_dict(),
            'resolution': self.resolution.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JoinResult':
        return cls(
            match=Match.from_dict(data['match']),
            resolution=MatchResolution.from_dict(data['resolution']),
        )


@dataclass(frozen=True)
class CancelResult:
    """Response of a successful cancel."""
    match_id: str
    cancelled_at: int
    message: str = 'Match cancelled successfully'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'matchId': self.match_id,
            'cancelledAt': self.cancelled_at,
            'message': self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CancelResult':
        return cls(
            match_id=data['matchId'],
            cancelled_at=int(data['cancelledAt']),
            message=data.get('message', 'Match cancelled successfully'),
        )


@dataclass(frozen=True)
class LobbySummary:
    """Lightweight view of an open lobby."""
    match_id: str
    creator_name: str
    creator_score: int
    creator_level: int
    created_at: int
    waiting_time: int

    @classmethod
    def from_match(cls, match: Match, now: int) -> 'LobbySummary':
        return cls(
            match_id=match.id,
            creator_name=match.player1.name,
            creator_score=match.player1.score,
            creator_level=match.player1.level,
            created_at=match.created_at,
            waiting_time=max(0, now - match.created_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'matchId': self.match_id,
            'creatorName': self.creator_name,
            'creatorScore': self.creator_score,
            'creatorLevel': self.creator_level,
            'createdAt': self.created_at,
            'waitingTime': self.waiting_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LobbySummary':
        return cls(
            match_id=data['matchId'],
            creator_name=data['creatorName'],
            creator_score=int(data['creatorScore']),
            creator_level=int(data['creatorLevel']),
            created_at=int(data['createdAt']),
            waiting_time=int(data['waitingTime']),
        )
