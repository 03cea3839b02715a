"""Redis connection utilities."""

from functools import lru_cache

from redis import ConnectionPool, Redis
from redis.asyncio import Redis as AsyncRedis

from api.config import get_settings


@lru_cache
def _get_redis_pool_bytes() -> ConnectionPool:
    """Get a cached Redis connection pool for byte-mode (RQ)."""
    settings = get_settings()
    return ConnectionPool.from_url(
        str(settings.redis_url),
        decode_responses=False,
        max_connections=10,
    )


def get_redis_connection_bytes() -> Redis:
    """Get a Redis connection without decode_responses for RQ."""
    pool = _get_redis_pool_bytes()
    return Redis(connection_pool=pool)


@lru_cache
def get_async_redis() -> AsyncRedis:
    """Async client for the API process (refresh locks, readiness checks)."""
    settings = get_settings()
    return AsyncRedis.from_url(str(settings.redis_url), decode_responses=True)


# Queue names
QUEUE_HIGH = "effectiveness-high"
QUEUE_DEFAULT = "effectiveness-default"
QUEUE_LOW = "effectiveness-low"

# Job result TTL (7 days)
JOB_RESULT_TTL = 60 * 60 * 24 * 7
