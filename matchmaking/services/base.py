"""
Base service class for the matchmaking engine.

Provides store access, the shared key layout, a clock, and the optimistic
transaction retry loop used by every mutating operation.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from matchmaking.config import Config
from matchmaking.constants import KeyBuilder
from matchmaking.store.base import KeyValueStore, TransactionConflict
from matchmaking.utils.exceptions import ContentionError

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 0.1


def epoch_ms() -> int:
    return int(time.time() * 1000)


class BaseService:
    """Base class for all services sharing one key-value store."""

    def __init__(self, store: KeyValueStore, config=Config, clock: Optional[Callable[[], int]] = None):
        """
        Initialize base service.

        Args:
            store: Key-value store holding all shared state
            config: Config class (or subclass) with engine settings
            clock: Callable returning epoch milliseconds; defaults to wall time
        """
        self.store = store
        self.config = config
        self.keys = KeyBuilder(config.KEY_PREFIX)
        self.clock = clock or epoch_ms

    def now(self) -> int:
        return self.clock()

    async def run_optimistic(
        self,
        operation: str,
        attempt: Callable[[], Awaitable[Any]],
        max_retries: int
    ) -> Any:
        """
        Run a watch/compute/execute attempt until it commits.

        Only TransactionConflict is retried; every other exception propagates
        from the attempt untouched.

        Raises:
            ContentionError: If every attempt lost its race
        """
        backoff = self.config.RETRY_BACKOFF_MS / 1000
        for attempt_number in range(1, max_retries + 1):
            try:
                return await attempt()
            except TransactionConflict as e:
                logger.info(f"🔄 Retry {attempt_number}/{max_retries} for {operation}: {e}")
                if backoff and attempt_number < max_retries:
                    await asyncio.sleep(min(backoff * (2 ** (attempt_number - 1)), MAX_BACKOFF_SECONDS))

        logger.warning(f"⚠️ {operation} gave up after {max_retries} conflicting attempts")
        raise ContentionError(operation, max_retries)
