from matchmaking.store.memory import InMemoryStore
from matchmaking.store.redis_store import RedisStore
from matchmaking.utils.logger import setup_logger

logger = setup_logger(__name__)


async def create_store(config):
    """Build the store selected by config.STORE_BACKEND"""
    if config.STORE_BACKEND == 'memory':
        logger.warning("Using in-memory store: state is process-local and lost on exit")
        return InMemoryStore()

    return await RedisStore.connect(config)
