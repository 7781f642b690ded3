"""
Operations Layer

Composes the services into matchmaking workflows:
- Store layer: key-value access and optimistic transactions
- Services layer: lobby index, match records, stats, idempotency cache
- Operations layer: create / join / cancel and the read-only queries

MatchmakingEngine is the only component that coordinates several services
inside one transaction.
"""

from .matchmaking_engine import MatchmakingEngine

__all__ = ['MatchmakingEngine']
