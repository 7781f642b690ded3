"""
Custom exceptions for the matchmaking engine with user-friendly error messages.

Every exception carries a stable ``code`` and ``category`` so that responses
can be cached by the idempotency layer and replayed exactly.
"""

from typing import Any, Dict, Optional


class ErrorCategory:
    VALIDATION = 'validation'
    PRECONDITION = 'precondition'
    CONTENTION = 'contention'
    UNAVAILABLE = 'unavailable'


class MatchmakingException(Exception):
    """Base exception for matchmaking-related errors."""
    code = 'MatchmakingError'
    category = ErrorCategory.PRECONDITION
    replayed = False

    def __init__(self, message: str, user_message: str = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.details = details or {}

    @property
    def retriable(self) -> bool:
        return self.category in (ErrorCategory.CONTENTION, ErrorCategory.UNAVAILABLE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'category': self.category,
            'message': self.message,
            'userMessage': self.user_message,
            'details': self.details,
        }


class ValidationError(MatchmakingException):
    """Raised when request input is rejected before touching the store."""
    code = 'Validation'
    category = ErrorCategory.VALIDATION

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid {field}: {reason}",
            f"❌ {reason}",
            {'field': field}
        )


class MatchNotFoundError(MatchmakingException):
    """Raised when a match ID does not exist."""
    code = 'NotFound'

    def __init__(self, match_id: str):
        super().__init__(
            f"Match '{match_id}' not found",
            "❌ Match not found!",
            {'matchId': match_id}
        )


class MatchNotAvailableError(MatchmakingException):
    """Raised when a match is no longer waiting for an opponent."""
    code = 'NotAvailable'

    def __init__(self, match_id: str, state: str):
        super().__init__(
            f"Match '{match_id}' is not available for joining (state: {state})",
            "❌ Match is not available for joining.",
            {'matchId': match_id, 'state': state}
        )


class SelfJoinError(MatchmakingException):
    """Raised when a creator tries to join their own match."""
    code = 'SelfJoin'

    def __init__(self, match_id: str, player_name: str):
        super().__init__(
            f"Player '{player_name}' attempted to join own match '{match_id}'",
            "❌ Cannot join your own match.",
            {'matchId': match_id, 'playerName': player_name}
        )


class MatchFullError(MatchmakingException):
    """Raised when a match already has a second player."""
    code = 'AlreadyFull'

    def __init__(self, match_id: str):
        super().__init__(
            f"Match '{match_id}' already has two players",
            "❌ Match is already full.",
            {'matchId': match_id}
        )


class AlreadyWaitingError(MatchmakingException):
    """Raised when a player already owns an open lobby."""
    code = 'AlreadyWaiting'

    def __init__(self, player_name: str, existing_match: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Player '{player_name}' already has a waiting match",
            "❌ You already have a waiting match.",
            {'playerName': player_name, 'existingMatch': existing_match}
        )

    @property
    def existing_match(self) -> Optional[Dict[str, Any]]:
        return self.details.get('existingMatch')


class NotWaitingError(MatchmakingException):
    """Raised when cancelling a match that already left the lobby."""
    code = 'NotWaiting'

    def __init__(self, match_id: str, state: str):
        super().__init__(
            f"Match '{match_id}' is no longer waiting (state: {state})",
            "❌ Match is no longer waiting.",
            {'matchId': match_id, 'state': state}
        )


class NotCreatorError(MatchmakingException):
    """Raised when someone other than the creator tries to cancel."""
    code = 'NotCreator'

    def __init__(self, match_id: str, player_name: str):
        super().__init__(
            f"Player '{player_name}' is not the creator of match '{match_id}'",
            "❌ Only the match creator can cancel the match.",
            {'matchId': match_id, 'playerName': player_name}
        )


class ContentionError(MatchmakingException):
    """Raised when an optimistic transaction keeps losing races."""
    code = 'Contention'
    category = ErrorCategory.CONTENTION

    def __init__(self, operation: str, attempts: int):
        super().__init__(
            f"Transaction failed for {operation} after {attempts} attempts",
            "❌ The lobby is busy right now. Please try again.",
            {'operation': operation, 'attempts': attempts}
        )


class StoreUnavailableError(MatchmakingException):
    """Raised when the backing store cannot be reached."""
    code = 'Unavailable'
    category = ErrorCategory.UNAVAILABLE

    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Store unavailable during {operation}: {details}",
            "❌ Matchmaking service is temporarily unavailable. Please try again later.",
            {'operation': operation}
        )


_ERRORS_BY_CODE = {
    cls.code: cls for cls in (
        ValidationError, MatchNotFoundError, MatchNotAvailableError, SelfJoinError,
        MatchFullError, AlreadyWaitingError, NotWaitingError, NotCreatorError,
        ContentionError, StoreUnavailableError,
    )
}


def error_from_dict(data: Dict[str, Any]) -> MatchmakingException:
    """Rebuild a serialized error without re-running its constructor logic."""
    cls = _ERRORS_BY_CODE.get(data.get('code'), MatchmakingException)
    error = cls.__new__(cls)
    MatchmakingException.__init__(
        error,
        data.get('message', ''),
        data.get('userMessage'),
        data.get('details') or {}
    )
    error.replayed = True
    return error
