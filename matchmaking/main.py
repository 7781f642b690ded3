import asyncio
import logging
import sys
import traceback

from matchmaking.config import Config
from matchmaking.operations.matchmaking_engine import MatchmakingEngine
from matchmaking.services.notifications import create_notification_sink
from matchmaking.store.base import KeyValueStore
from matchmaking.store.factory import create_store
from matchmaking.utils.exceptions import StoreUnavailableError
from matchmaking.utils.logger import setup_logger

logger = setup_logger(__name__)


def build_engine(store: KeyValueStore, config=Config) -> MatchmakingEngine:
    """Wire an engine to a connected store and the configured notification sink"""
    return MatchmakingEngine(store, config, sink=create_notification_sink(config))


async def main(config=Config) -> int:
    """Connect to the store, report engine-wide counters and exit"""
    config.validate()

    store = await create_store(config)
    engine = build_engine(store, config)
    try:
        stats = await engine.get_matchmaking_stats()
        logger.info(
            f"📊 Matchmaking status: {stats.open_lobbies} open lobbies, "
            f"{stats.total_matches} matches, {stats.active_players} players"
        )
        return 0
    finally:
        await engine.drain_notifications()
        await store.close()


def run():
    """Console entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except StoreUnavailableError as e:
        logger.error(f"❌ {e.message}")
        sys.exit(2)
    except ValueError as e:
        logger.error(f"❌ Invalid configuration: {e}")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    run()
