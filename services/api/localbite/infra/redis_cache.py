"""Small JSON-over-Redis cache.

Redis is an optimization here: when it is unreachable, callers get the
freshly computed value and the error is only logged.
"""

import json
import logging

from redis.exceptions import RedisError

from .redis_client import get_sync_redis

logger = logging.getLogger("localbite.cache")

KEY_PREFIX = "localbite:"


def cache_key(*parts: str) -> str:
    return KEY_PREFIX + ":".join(parts)


def get_or_set_json_sync(key: str, ttl_sec: int, compute_func):
    """Return (value, hit)."""
    try:
        r = get_sync_redis()
        raw = r.get(key)
    except RedisError as e:
        logger.warning(f"Cache read failed for {key}: {e}")
        return compute_func(), False

    if raw:
        logger.debug(f"Cache hit {key}")
        return json.loads(raw), True

    val = compute_func()
    try:
        r.set(key, json.dumps(val), ex=ttl_sec)
    except RedisError as e:
        logger.warning(f"Cache write failed for {key}: {e}")
    return val, False


def invalidate(key: str) -> None:
    try:
        get_sync_redis().delete(key)
    except RedisError as e:
        logger.warning(f"Cache invalidation failed for {key}: {e}")
