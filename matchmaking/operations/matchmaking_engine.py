"""
Matchmaking Engine - asynchronous turn-based lobby matchmaking

Players submit a score, open a lobby, and are paired with the next player who
joins it. The join resolves the match immediately, updates both players'
statistics and announces the result.

All coordination goes through the key-value store's optimistic transactions
(watch, read, compute, execute-if-unchanged), never through process-local
locks, so any number of engine instances can serve the same store.

Guarantees:
- At most one player2 per match: concurrent joins race on the match key and
  exactly one transaction commits
- One open lobby per player, enforced by a store-resident waiting lock
- Winner and loser statistics change together or not at all
- A request key makes create/join/cancel replay the first outcome; successful
  responses are written in the same transaction as the mutation
"""

import asyncio
import secrets
import string
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from matchmaking.config import Config
from matchmaking.constants import MatchStates, Operations
from matchmaking.data_models.match import (
    CancelResult, JoinResult, LobbySummary, Match, MatchResolution, PlayerSubmission
)
from matchmaking.data_models.stats import MatchmakingStats, PlayerStats
from matchmaking.services.base import BaseService
from matchmaking.services.idempotency import IdempotencyCache
from matchmaking.services.lobby import LobbyIndex, WaitingLocks
from matchmaking.services.match_store import MatchStore
from matchmaking.services.notifications import (
    LoggingNotificationSink, NotificationSink, build_resolution_event
)
from matchmaking.services.stats_tracker import StatsTracker
from matchmaking.store.base import KeyValueStore, Transaction
from matchmaking.utils.exceptions import (
    AlreadyWaitingError, ErrorCategory, MatchFullError, MatchmakingException,
    MatchNotAvailableError, MatchNotFoundError, NotCreatorError, NotWaitingError,
    SelfJoinError
)
from matchmaking.utils.logger import setup_logger
from matchmaking.utils.resolver import MatchResolver
from matchmaking.utils.validation import (
    validate_external_user_id, validate_level, validate_limit, validate_match_id,
    validate_player_name, validate_request_key, validate_score
)

logger = setup_logger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_match_id(now: int) -> str:
    """match_<epoch ms>_<9 random base36 chars>"""
    suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"match_{now}_{suffix}"


class MatchmakingEngine(BaseService):
    """
    Orchestrates create / join / cancel over the lobby, match records and stats.

    This is the only component that touches LobbyIndex, MatchStore and
    StatsTracker together.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config=Config,
        sink: Optional[NotificationSink] = None,
        clock: Optional[Callable[[], int]] = None,
        id_factory: Optional[Callable[[int], str]] = None
    ):
        super().__init__(store, config, clock)
        self.lobby = LobbyIndex(store, config, self.clock)
        self.waiting = WaitingLocks(store, config, self.clock)
        self.matches = MatchStore(store, config, self.clock)
        self.stats = StatsTracker(store, config, self.clock)
        self.idempotency = IdempotencyCache(store, config, self.clock)
        self.sink = sink or LoggingNotificationSink()
        self.id_factory = id_factory or generate_match_id
        self.logger = logger
        self._notifications: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    async def _idempotent_mutation(
        self,
        operation: str,
        request_key: Optional[str],
        attempt: Callable[[], Awaitable[Tuple[Any, bool]]],
        max_retries: int,
        load: Callable[[Any], Any]
    ) -> Tuple[Any, bool]:
        """
        Replay a cached outcome or run the optimistic attempt loop.

        Returns:
            (result, committed) where committed is False for replays
        """
        envelope = await self.idempotency.lookup(operation, request_key)
        if envelope is not None:
            return self.idempotency.replay(envelope, load), False

        return await self.run_optimistic(operation, attempt, max_retries)

    async def _record_failure(
        self,
        tx: Transaction,
        operation: str,
        request_key: Optional[str],
        error: MatchmakingException
    ) -> None:
        """
        Commit a precondition failure under the request key in the transaction
        that observed it.

        If a duplicate call committed its own outcome in the meantime, execute()
        raises TransactionConflict and the retry replays that outcome instead.
        """
        if not request_key or error.category != ErrorCategory.PRECONDITION or error.replayed:
            return
        self.idempotency.stage(
            tx, operation, request_key, self.idempotency.failure(error),
            self.config.IDEMPOTENCY_TTL_SECONDS
        )
        await tx.execute()

    async def _replay_in_transaction(
        self,
        tx: Transaction,
        operation: str,
        request_key: Optional[str],
        load: Callable[[Any], Any]
    ) -> Optional[Tuple[Any, bool]]:
        """Watch the request key; a duplicate that committed first is replayed."""
        envelope = await self.idempotency.read(tx, operation, request_key)
        if envelope is None:
            return None
        return self.idempotency.replay(envelope, load), False

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_match(
        self,
        player_name: str,
        score: int,
        level: int = 1,
        external_user_id: Optional[str] = None,
        request_key: Optional[str] = None
    ) -> Match:
        """
        Open a new lobby for a player.

        Args:
            player_name: Creator's name
            score: Creator's submitted score (>= 0)
            level: Level the score was achieved on (>= 1)
            external_user_id: Optional ID from an external identity provider
            request_key: Optional idempotency key

        Returns:
            The WAITING match

        Raises:
            ValidationError: Bad input
            AlreadyWaitingError: Player already has an open lobby (carries it)
            ContentionError: Retry budget exhausted
            StoreUnavailableError: Store unreachable
        """
        name = validate_player_name(player_name)
        score = validate_score(score)
        level = validate_level(level)
        external_user_id = validate_external_user_id(external_user_id)
        request_key = validate_request_key(request_key)
        operation = Operations.CREATE_MATCH

        async def attempt():
            async with self.store.transaction() as tx:
                replayed = await self._replay_in_transaction(tx, operation, request_key, Match.from_dict)
                if replayed:
                    return replayed

                try:
                    await self._ensure_not_waiting(tx, name)
                except MatchmakingException as e:
                    await self._record_failure(tx, operation, request_key, e)
                    raise

                existing_stats = await self.stats.read(tx, name)

                now = self.now()
                match = Match(
                    id=self.id_factory(now),
                    player1=PlayerSubmission(
                        name=name,
                        score=score,
                        level=level,
                        submitted_at=now,
                        external_user_id=external_user_id,
                    ),
                    state=MatchStates.WAITING,
                    created_at=now,
                    total_score=score,
                )

                self.matches.stage_save(tx, match)
                self.matches.stage_register(tx, match)
                self.matches.stage_history(tx, name, match)
                self.lobby.stage_add(tx, match)
                self.waiting.stage_acquire(tx, name, match.id)
                if existing_stats is None:
                    self.stats.stage_initialize(tx, name, now)
                self.stats.stage_register(tx, name)
                self.idempotency.stage(
                    tx, operation, request_key, self.idempotency.success(match.to_dict()),
                    self.config.IDEMPOTENCY_TTL_SECONDS
                )
                await tx.execute()
                return match, True

        match, committed = await self._idempotent_mutation(
            operation, request_key, attempt, self.config.CREATE_MAX_RETRIES, Match.from_dict
        )
        if committed:
            self.logger.info(f"🎮 Created match {match.id} for {name} (score: {score})")
        return match

    async def _ensure_not_waiting(self, tx: Transaction, player_name: str) -> None:
        """Raise AlreadyWaitingError if the player's lock points at a WAITING match."""
        existing_id = await self.waiting.read(tx, player_name)
        if not existing_id:
            return
        await tx.watch(self.matches.key(existing_id))
        existing = await self.matches.read(tx, existing_id)
        if existing and existing.is_waiting:
            self.logger.info(f"⚠️ Player {player_name} already has a waiting match: {existing.id}")
            raise AlreadyWaitingError(player_name, existing.to_dict())
        self.logger.warning(f"Replacing stale waiting lock for {player_name} -> {existing_id}")

    # ------------------------------------------------------------------
    # Join
    # ------------------------------------------------------------------

    async def join_match(
        self,
        match_id: str,
        player_name: str,
        score: int,
        level: int = 1,
        external_user_id: Optional[str] = None,
        request_key: Optional[str] = None
    ) -> JoinResult:
        """
        Join a WAITING match as player 2 and resolve it.

        When several players race for the same match, exactly one transaction
        commits; the others re-read the match on retry and fail with
        MatchNotAvailableError.

        Raises:
            ValidationError: Bad input
            MatchNotFoundError: No such match
            MatchNotAvailableError: Match already completed or cancelled
            SelfJoinError: Creator tried to join their own match
            MatchFullError: Match already has a second player
            ContentionError: Retry budget exhausted
            StoreUnavailableError: Store unreachable
        """
        match_id = validate_match_id(match_id)
        name = validate_player_name(player_name)
        score = validate_score(score)
        level = validate_level(level)
        external_user_id = validate_external_user_id(external_user_id)
        request_key = validate_request_key(request_key)
        operation = Operations.JOIN_MATCH

        async def attempt():
            async with self.store.transaction(self.matches.key(match_id), self.lobby.key) as tx:
                replayed = await self._replay_in_transaction(tx, operation, request_key, JoinResult.from_dict)
                if replayed:
                    return replayed

                try:
                    match = await self._joinable_match(tx, match_id, name)
                except MatchmakingException as e:
                    await self._record_failure(tx, operation, request_key, e)
                    raise

                creator_lock = await self.waiting.read(tx, match.creator)
                joiner_stats = await self.stats.read(tx, name)

                now = self.now()
                player2 = PlayerSubmission(
                    name=name,
                    score=score,
                    level=level,
                    submitted_at=now,
                    external_user_id=external_user_id,
                )
                resolution = MatchResolver.resolve_submissions(match.player1, player2)
                completed = match.complete(player2, resolution, now)
                result = JoinResult(match=completed, resolution=resolution)

                self.matches.stage_save(tx, completed)
                self.lobby.stage_remove(tx, match_id)
                if creator_lock == match_id:
                    self.waiting.stage_release(tx, match.creator)
                self.matches.stage_history(tx, match.creator, completed)
                self.matches.stage_history(tx, name, completed)
                if joiner_stats is None:
                    self.stats.stage_initialize(tx, name, now)
                self.stats.stage_register(tx, name)
                self.idempotency.stage(
                    tx, operation, request_key, self.idempotency.success(result.to_dict()),
                    self.config.IDEMPOTENCY_TTL_SECONDS
                )
                await tx.execute()
                return result, True

        result, committed = await self._idempotent_mutation(
            operation, request_key, attempt, self.config.JOIN_MAX_RETRIES, JoinResult.from_dict
        )
        if committed:
            self.logger.info(
                f"🎯 Match {match_id} resolved: {result.resolution.winner} wins "
                f"({result.resolution.winner_score} vs {result.resolution.loser_score})"
            )
            winner_stats, loser_stats = await self._record_outcome(result.resolution)
            self._notify(result.match, result.resolution, winner_stats, loser_stats)
        return result

    async def _joinable_match(self, tx: Transaction, match_id: str, player_name: str) -> Match:
        match = await self.matches.read(tx, match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        if match.state != MatchStates.WAITING:
            raise MatchNotAvailableError(match_id, match.state)
        if match.creator == player_name:
            raise SelfJoinError(match_id, player_name)
        if match.player2 is not None:
            raise MatchFullError(match_id)
        return match

    async def _record_outcome(
        self, resolution: MatchResolution
    ) -> Tuple[Optional[PlayerStats], Optional[PlayerStats]]:
        """Apply the stats update after the match committed; failures cannot undo the match."""
        try:
            return await self.stats.record_outcome(resolution.winner, resolution.loser)
        except MatchmakingException as e:
            self.logger.error(
                f"❌ Stats update failed for {resolution.winner} vs {resolution.loser}: {e}",
                exc_info=True
            )
            return None, None

    def _notify(
        self,
        match: Match,
        resolution: MatchResolution,
        winner_stats: Optional[PlayerStats],
        loser_stats: Optional[PlayerStats]
    ) -> None:
        """Publish the resolution event in the background; the join response never waits on the sink."""
        event = build_resolution_event(match, resolution, winner_stats, loser_stats)
        task = asyncio.create_task(self._publish(match.id, event))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _publish(self, match_id: str, event: Dict[str, Any]) -> None:
        try:
            await asyncio.wait_for(
                self.sink.publish(event), timeout=self.config.NOTIFY_TIMEOUT_SECONDS
            )
        except Exception as e:
            self.logger.error(f"❌ Failed to notify resolution of match {match_id}: {e}", exc_info=True)

    async def drain_notifications(self) -> None:
        """Wait for resolution events still being published, e.g. before shutdown."""
        while self._notifications:
            await asyncio.gather(*list(self._notifications))

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_match(
        self,
        match_id: str,
        player_name: str,
        request_key: Optional[str] = None
    ) -> CancelResult:
        """
        Cancel a WAITING match. Only its creator may do so.

        Raises:
            ValidationError: Bad input
            MatchNotFoundError: No such match
            NotCreatorError: Caller did not create the match
            NotWaitingError: Match already completed or cancelled
            ContentionError: Retry budget exhausted
            StoreUnavailableError: Store unreachable
        """
        match_id = validate_match_id(match_id)
        name = validate_player_name(player_name)
        request_key = validate_request_key(request_key)
        operation = Operations.CANCEL_MATCH

        async def attempt():
            async with self.store.transaction(self.matches.key(match_id)) as tx:
                replayed = await self._replay_in_transaction(tx, operation, request_key, CancelResult.from_dict)
                if replayed:
                    return replayed

                try:
                    match = await self._cancellable_match(tx, match_id, name)
                except MatchmakingException as e:
                    await self._record_failure(tx, operation, request_key, e)
                    raise

                lock = await self.waiting.read(tx, name)

                now = self.now()
                cancelled = match.cancel(name, now)
                result = CancelResult(match_id=match_id, cancelled_at=now)

                self.matches.stage_save(tx, cancelled)
                self.lobby.stage_remove(tx, match_id)
                if lock == match_id:
                    self.waiting.stage_release(tx, name)
                self.idempotency.stage(
                    tx, operation, request_key, self.idempotency.success(result.to_dict()),
                    self.config.IDEMPOTENCY_TTL_SECONDS
                )
                await tx.execute()
                return result, True

        result, committed = await self._idempotent_mutation(
            operation, request_key, attempt, self.config.CANCEL_MAX_RETRIES, CancelResult.from_dict
        )
        if committed:
            self.logger.info(f"❌ Match {match_id} cancelled by {name}")
        return result

    async def _cancellable_match(self, tx: Transaction, match_id: str, player_name: str) -> Match:
        match = await self.matches.read(tx, match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        if match.creator != player_name:
            raise NotCreatorError(match_id, player_name)
        if not match.is_waiting:
            raise NotWaitingError(match_id, match.state)
        return match

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_open_lobbies(self, limit: Optional[int] = None, request_key: Optional[str] = None) -> List[LobbySummary]:
        """
        Oldest-first summaries of WAITING matches.

        Index entries whose match already left WAITING (a join or cancel that
        committed after the index was read) are skipped, and the index is paged
        further so up to `limit` open lobbies are still returned. Pages continue
        from the last createdAt seen rather than a position, so entries removed
        between pages cannot shift a WAITING lobby out of the result.
        """
        limit = validate_limit(
            self.config.DEFAULT_LOBBY_LIMIT if limit is None else limit,
            self.config.MAX_LOBBY_LIMIT
        )
        request_key = validate_request_key(request_key)

        async def fetch():
            lobbies: List[LobbySummary] = []
            now = self.now()
            cursor = float('-inf')
            # IDs already read at the cursor score; the next page re-reads them
            at_cursor: Set[str] = set()
            while len(lobbies) < limit:
                entries = await self.lobby.page_from(cursor, limit + len(at_cursor))
                match_ids = [match_id for match_id, _ in entries if match_id not in at_cursor]
                if not match_ids:
                    break
                last_score = entries[-1][1]
                if last_score != cursor:
                    at_cursor = set()
                cursor = last_score
                at_cursor.update(match_id for match_id, created_at in entries if created_at == cursor)
                for match in await self.matches.get_many(match_ids):
                    if match.is_waiting:
                        lobbies.append(LobbySummary.from_match(match, now))
                        if len(lobbies) == limit:
                            break
            return lobbies

        return await self.idempotency.cached_read(
            Operations.OPEN_LOBBIES, request_key, fetch,
            dump=lambda lobbies: [lobby.to_dict() for lobby in lobbies],
            load=lambda data: [LobbySummary.from_dict(item) for item in data]
        )

    async def get_match_details(self, match_id: str) -> Match:
        match_id = validate_match_id(match_id)
        match = await self.matches.get(match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        return match

    async def get_player_matches(self, player_name: str, limit: int = 10) -> List[Match]:
        """A player's matches in any state, newest first."""
        name = validate_player_name(player_name)
        limit = validate_limit(limit, self.config.MAX_LOBBY_LIMIT)
        return await self.matches.history(name, limit)

    async def get_player_stats(self, player_name: str) -> Optional[PlayerStats]:
        name = validate_player_name(player_name)
        return await self.stats.get(name)

    async def get_matchmaking_stats(self, request_key: Optional[str] = None) -> MatchmakingStats:
        request_key = validate_request_key(request_key)

        async def fetch():
            return MatchmakingStats(
                open_lobbies=await self.lobby.count(),
                total_matches=await self.matches.count(),
                active_players=await self.stats.count_players(),
            )

        return await self.idempotency.cached_read(
            Operations.MATCHMAKING_STATS, request_key, fetch,
            dump=lambda stats: stats.to_dict(),
            load=MatchmakingStats.from_dict
        )
