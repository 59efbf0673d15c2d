"""Redis connection for draft sessions, commit locks and result caching."""

from functools import lru_cache

from redis import Redis

from config import get_settings


@lru_cache()
def get_redis_client() -> Redis:
    """Shared Redis client for REDIS_URL.

    Unlike a cache, the draft store has no fallback: if Redis is unreachable
    staging operations fail instead of silently dropping state.
    """
    return Redis.from_url(
        get_settings().REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=2,
    )
