"""
Engine-wide constants for the matchmaking service.

Store key layout and operation names live here so that every component
builds keys the same way.
"""


class MatchStates:
    """Lifecycle states a match can be in."""
    
    WAITING = 'waiting'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class Operations:
    """Operation names used to namespace idempotency records."""
    
    CREATE_MATCH = 'match_creation'
    JOIN_MATCH = 'match_join'
    CANCEL_MATCH = 'match_cancel'
    OPEN_LOBBIES = 'open_lobbies'
    MATCHMAKING_STATS = 'matchmaking_stats'


class KeyBuilder:
    """Builds store keys under a shared prefix."""
    
    def __init__(self, prefix: str = 'breakout'):
        self.prefix = prefix
    
    @property
    def lobbies(self) -> str:
        return f"{self.prefix}:lobbies"
    
    @property
    def match_ids(self) -> str:
        return f"{self.prefix}:match_ids"
    
    @property
    def players(self) -> str:
        return f"{self.prefix}:players"
    
    def match(self, match_id: str) -> str:
        return f"{self.prefix}:matches:{match_id}"
    
    def player_matches(self, player_name: str) -> str:
        return f"{self.prefix}:player_matches:{player_name}"
    
    def player_stats(self, player_name: str) -> str:
        return f"{self.prefix}:player_stats:{player_name}"
    
    def player_waiting(self, player_name: str) -> str:
        return f"{self.prefix}:player_waiting:{player_name}"
    
    def idempotency(self, operation: str, request_key: str) -> str:
        return f"{self.prefix}:idempotency:{operation}:{request_key}"
