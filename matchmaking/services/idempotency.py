"""
Idempotency cache for client-supplied request keys.

Responses are stored in the same key-value store as the domain data, so replay
protection holds across every engine instance. Mutations stage their success
envelope inside the domain transaction; precondition failures and read results
are stored after the fact with a TTL.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional

from matchmaking.services.base import BaseService
from matchmaking.store.base import Transaction
from matchmaking.utils.exceptions import MatchmakingException, error_from_dict
from matchmaking.utils.logger import setup_logger

logger = setup_logger(__name__)


class IdempotencyCache(BaseService):
    """Request-key keyed response cache."""

    def key(self, operation: str, request_key: str) -> str:
        return self.keys.idempotency(operation, request_key)

    @staticmethod
    def success(payload: Any) -> Dict[str, Any]:
        return {'ok': True, 'result': payload}

    @staticmethod
    def failure(error: MatchmakingException) -> Dict[str, Any]:
        return {'ok': False, 'error': error.to_dict()}

    @staticmethod
    def encode(envelope: Dict[str, Any]) -> str:
        return json.dumps(envelope, sort_keys=True, separators=(',', ':'))

    @staticmethod
    def replay(envelope: Dict[str, Any], loader: Callable[[Any], Any]) -> Any:
        """Rebuild a cached result, or re-raise a cached error."""
        if envelope.get('ok'):
            return loader(envelope['result'])
        raise error_from_dict(envelope['error'])

    def _decode(self, key: str, raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON in idempotency record '{key}', ignoring")
            return None

    async def lookup(self, operation: str, request_key: Optional[str]) -> Optional[Dict[str, Any]]:
        if not request_key:
            return None
        key = self.key(operation, request_key)
        envelope = self._decode(key, await self.store.get(key))
        if envelope is not None:
            logger.info(f"🔄 Idempotency: returning cached {operation} result for {request_key}")
        return envelope

    async def read(self, tx: Transaction, operation: str, request_key: Optional[str]) -> Optional[Dict[str, Any]]:
        """Watch and read a record inside a transaction so a concurrent duplicate aborts it."""
        if not request_key:
            return None
        key = self.key(operation, request_key)
        await tx.watch(key)
        return self._decode(key, await tx.get(key))

    def stage(self, tx: Transaction, operation: str, request_key: Optional[str],
              envelope: Dict[str, Any], ttl: int) -> None:
        if request_key:
            tx.set(self.key(operation, request_key), self.encode(envelope), ex=ttl)

    async def remember(self, operation: str, request_key: Optional[str],
                       envelope: Dict[str, Any], ttl: int) -> None:
        if request_key:
            await self.store.set(self.key(operation, request_key), self.encode(envelope), ex=ttl)

    async def cached_read(
        self,
        operation: str,
        request_key: Optional[str],
        fetch: Callable[[], Awaitable[Any]],
        dump: Callable[[Any], Any],
        load: Callable[[Any], Any],
    ) -> Any:
        """Serve a read from cache when a request key is given, else fetch it."""
        envelope = await self.lookup(operation, request_key)
        if envelope is not None:
            return self.replay(envelope, load)

        result = await fetch()
        await self.remember(
            operation, request_key, self.success(dump(result)),
            self.config.IDEMPOTENCY_READ_TTL_SECONDS
        )
        return result
