"""Process-wide Redis clients.

Both clients are created on first use from ``settings.redis_url``. The sync
client backs the JSON cache and uses short socket timeouts so an unreachable
Redis degrades to cache misses instead of stalling requests.
"""

import logging

from redis.asyncio import Redis as AsyncRedis
from redis import Redis as SyncRedis
from redis.exceptions import RedisError

from ..settings import settings

logger = logging.getLogger("localbite.cache")

SYNC_SOCKET_TIMEOUT_SEC = 1

_redis_async: AsyncRedis | None = None
_redis_sync: SyncRedis | None = None


async def get_redis() -> AsyncRedis:
    global _redis_async
    if _redis_async is None:
        _redis_async = AsyncRedis.from_url(settings.redis_url, decode_responses=True)
    return _redis_async


def get_sync_redis() -> SyncRedis:
    global _redis_sync
    if _redis_sync is None:
        _redis_sync = SyncRedis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=SYNC_SOCKET_TIMEOUT_SEC,
            socket_timeout=SYNC_SOCKET_TIMEOUT_SEC,
        )
    return _redis_sync


def use_clients(async_client: AsyncRedis | None, sync_client: SyncRedis | None) -> None:
    """Install pre-built clients (or None to reconnect lazily from settings)."""
    global _redis_async, _redis_sync
    _redis_async = async_client
    _redis_sync = sync_client


async def ping() -> bool:
    """True when Redis answers PING; connection errors are logged, not raised."""
    try:
        r = await get_redis()
        return bool(await r.ping())
    except (RedisError, OSError) as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
