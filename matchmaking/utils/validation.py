"""Request input checks, run before any store access."""

from typing import Optional

from matchmaking.utils.exceptions import ValidationError

MAX_PLAYER_NAME_LENGTH = 64
MAX_REQUEST_KEY_LENGTH = 128


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_player_name(player_name) -> str:
    if not isinstance(player_name, str) or not player_name.strip():
        raise ValidationError('playerName', "Player name is required.")
    name = player_name.strip()
    if len(name) > MAX_PLAYER_NAME_LENGTH:
        raise ValidationError('playerName', f"Player name must be at most {MAX_PLAYER_NAME_LENGTH} characters.")
    return name


def validate_score(score) -> int:
    if not _is_int(score) or score < 0:
        raise ValidationError('score', "Score must be a non-negative integer.")
    return score


def validate_level(level) -> int:
    if not _is_int(level) or level < 1:
        raise ValidationError('level', "Level must be a positive integer.")
    return level


def validate_match_id(match_id) -> str:
    if not isinstance(match_id, str) or not match_id.strip():
        raise ValidationError('matchId', "Match ID is required.")
    return match_id.strip()


def validate_limit(limit, maximum: int) -> int:
    if not _is_int(limit) or limit < 1:
        raise ValidationError('limit', "Limit must be a positive integer.")
    return min(limit, maximum)


def validate_request_key(request_key) -> Optional[str]:
    if request_key is None:
        return None
    if not isinstance(request_key, str) or not request_key.strip():
        raise ValidationError('requestKey', "Idempotency key must be a non-empty string.")
    if len(request_key) > MAX_REQUEST_KEY_LENGTH:
        raise ValidationError('requestKey', f"Idempotency key must be at most {MAX_REQUEST_KEY_LENGTH} characters.")
    return request_key


def validate_external_user_id(external_user_id) -> Optional[str]:
    if external_user_id is None:
        return None
    if not isinstance(external_user_id, (str, int)) or isinstance(external_user_id, bool):
        raise ValidationError('externalUserId', "External user ID must be a string.")
    return str(external_user_id)
