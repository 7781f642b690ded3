"""
Services package for the matchmaking engine.

Each service owns one slice of the shared store: the lobby index and waiting
locks, match records, player statistics, and the idempotency cache.
"""

from .base import BaseService
from .idempotency import IdempotencyCache
from .lobby import LobbyIndex, WaitingLocks
from .match_store import MatchStore
from .stats_tracker import StatsTracker

__all__ = [
    'BaseService', 'IdempotencyCache', 'LobbyIndex', 'WaitingLocks',
    'MatchStore', 'StatsTracker'
]
