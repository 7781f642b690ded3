import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


class Config:
    """Matchmaking engine configuration settings"""
    
    # Store settings
    REDIS_URL = os.getenv('REDIS_URL')
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'redis').lower()
    KEY_PREFIX = os.getenv('MATCHMAKING_KEY_PREFIX', 'breakout')
    
    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    
    # Optimistic transaction retry bounds
    JOIN_MAX_RETRIES = _int_env('JOIN_MAX_RETRIES', 10)
    CREATE_MAX_RETRIES = _int_env('CREATE_MAX_RETRIES', 10)
    CANCEL_MAX_RETRIES = _int_env('CANCEL_MAX_RETRIES', 10)
    STATS_MAX_RETRIES = _int_env('STATS_MAX_RETRIES', 5)
    RETRY_BACKOFF_MS = _int_env('RETRY_BACKOFF_MS', 5)
    
    # Idempotency cache lifetimes (seconds)
    IDEMPOTENCY_TTL_SECONDS = _int_env('IDEMPOTENCY_TTL_SECONDS', 3600)
    IDEMPOTENCY_READ_TTL_SECONDS = _int_env('IDEMPOTENCY_READ_TTL_SECONDS', 300)
    
    # Lobby listing
    DEFAULT_LOBBY_LIMIT = _int_env('DEFAULT_LOBBY_LIMIT', 10)
    MAX_LOBBY_LIMIT = _int_env('MAX_LOBBY_LIMIT', 100)
    
    # Notifications
    DISCORD_WEBHOOK_URL = os.getenv('DISCORD_WEBHOOK_URL')
    NOTIFY_TIMEOUT_SECONDS = _int_env('NOTIFY_TIMEOUT_SECONDS', 5)
    
    SUPPORTED_BACKENDS = ('redis', 'memory')
    
    @classmethod
    def retry_bounds(cls):
        """Get the configured retry bounds keyed by operation"""
        return {
            'create': cls.CREATE_MAX_RETRIES,
            'join': cls.JOIN_MAX_RETRIES,
            'cancel': cls.CANCEL_MAX_RETRIES,
            'stats': cls.STATS_MAX_RETRIES,
        }
    
    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if cls.STORE_BACKEND not in cls.SUPPORTED_BACKENDS:
            raise ValueError(
                f"STORE_BACKEND must be one of {', '.join(cls.SUPPORTED_BACKENDS)}"
            )
        for operation, bound in cls.retry_bounds().items():
            if bound < 1:
                raise ValueError(f"Retry bound for {operation} must be at least 1")
        if cls.RETRY_BACKOFF_MS < 0:
            raise ValueError("RETRY_BACKOFF_MS cannot be negative")
        if cls.IDEMPOTENCY_TTL_SECONDS <= 0 or cls.IDEMPOTENCY_READ_TTL_SECONDS <= 0:
            raise ValueError("Idempotency TTLs must be positive")
        if cls.DEFAULT_LOBBY_LIMIT < 1 or cls.MAX_LOBBY_LIMIT < cls.DEFAULT_LOBBY_LIMIT:
            raise ValueError("DEFAULT_LOBBY_LIMIT must be between 1 and MAX_LOBBY_LIMIT")
        if not cls.KEY_PREFIX:
            raise ValueError("MATCHMAKING_KEY_PREFIX cannot be empty")
        if cls.STORE_BACKEND == 'redis' and not cls.DEBUG and not cls.REDIS_URL:
            raise ValueError("REDIS_URL is required when DEBUG is off")
