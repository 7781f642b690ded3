"""
Redis utility module for centralized Redis configuration and connection logic.

Provides secure Redis connection management with production validation.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from matchmaking.utils.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

DEV_REDIS_URL = 'redis://localhost:6379'


class RedisUtils:
    """Centralized Redis configuration and connection utilities."""

    @staticmethod
    def get_secure_redis_url(config) -> Optional[str]:
        """Get Redis URL with security validation for production deployments."""
        if config.REDIS_URL:
            if RedisUtils._validate_redis_security(config.REDIS_URL, config.DEBUG):
                return config.REDIS_URL
            logger.error("REDIS_URL environment variable contains insecure configuration")
            return None

        if not config.DEBUG:
            # Production mode - no insecure defaults allowed
            logger.error("Production deployment requires secure Redis configuration. Set REDIS_URL with rediss:// protocol and authentication.")
            return None

        logger.warning("Development mode: using insecure localhost Redis. Do not use in production!")
        return DEV_REDIS_URL

    @staticmethod
    def _validate_redis_security(redis_url: str, debug: bool) -> bool:
        """Validate that Redis URL meets security requirements."""
        if not redis_url:
            return False

        if not debug:
            # Production mode - enforce strict security
            if not redis_url.startswith('rediss://'):
                logger.error("Production Redis must use rediss:// (TLS) protocol")
                return False
            if '@' not in redis_url:
                logger.error("Production Redis must include authentication credentials")
                return False
            return True

        if redis_url.startswith('redis://localhost') or redis_url.startswith('redis://127.0.0.1'):
            return True
        if redis_url.startswith('rediss://'):
            return True
        logger.warning("Potentially insecure Redis URL in development: %s", mask_redis_url(redis_url))
        return True

    @staticmethod
    async def create_redis_client(config) -> 'redis.Redis':
        """Create a Redis client with secure configuration and verify it answers."""
        redis_url = RedisUtils.get_secure_redis_url(config)
        if not redis_url:
            raise StoreUnavailableError('connect', 'no acceptable REDIS_URL configured')

        client = redis.from_url(redis_url, decode_responses=True)
        try:
            await client.ping()
        except RedisError as e:
            logger.error(f"Failed to connect to Redis at {mask_redis_url(redis_url)}: {e}")
            await client.aclose()
            raise StoreUnavailableError('connect', str(e)) from e

        logger.info("Successfully connected to Redis")
        return client


def mask_redis_url(redis_url: str) -> str:
    """Hide credentials before a URL reaches the logs."""
    if '@' not in redis_url:
        return redis_url
    scheme, _, rest = redis_url.partition('://')
    host = rest.rsplit('@', 1)[1]
    return f"{scheme}://***@{host}"
