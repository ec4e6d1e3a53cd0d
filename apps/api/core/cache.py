"""
Redis Caching Layer

Short-lived caching of per-client metric responses (streak, tonnage).
Includes graceful degradation if Redis is unavailable or caching is disabled.
"""
import json
import logging
from typing import Optional, Any
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from core.config import settings

logger = logging.getLogger(__name__)

# Redis connection pool (singleton)
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Get Redis client with connection pooling. Returns None if Redis unavailable."""
    global _redis_client

    if not settings.CACHE_ENABLED:
        return None

    if _redis_client is not None:
        return _redis_client

    try:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        _redis_client.ping()
        logger.info("Redis connection established")
        return _redis_client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Caching disabled.")
        _redis_client = None
        return None


def cache_key(prefix: str, *args, **kwargs) -> str:
    """Generate cache key from prefix and arguments."""
    key_parts = [prefix]

    for arg in args:
        if arg is not None:
            key_parts.append(str(arg))

    # Sorted for consistency, skip None values
    for k, v in sorted(kwargs.items()):
        if v is not None:
            key_parts.append(f"{k}:{v}")

    return ":".join(key_parts)


def get_cache(key: str) -> Optional[Any]:
    """Get value from cache. Returns None if not found or Redis unavailable."""
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value:
            return json.loads(value)
        return None
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache get error for key {key}: {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = None) -> bool:
    """Set value in cache. Returns True if successful, False otherwise."""
    client = get_redis_client()
    if not client:
        return False

    try:
        if ttl is None:
            ttl = settings.CACHE_TTL_DEFAULT

        client.setex(key, ttl, json.dumps(value, default=str))
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache set error for key {key}: {e}")
        return False


def invalidate_pattern(pattern: str) -> int:
    """Invalidate all keys matching pattern. Returns count of deleted keys."""
    client = get_redis_client()
    if not client:
        return 0

    try:
        keys = client.keys(pattern)
        if keys:
            return client.delete(*keys)
        return 0
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache invalidation error for pattern {pattern}: {e}")
        return 0


def invalidate_client_metrics(client_id: str) -> int:
    """Drop cached streak, tonnage and progression responses for a client after a write."""
    patterns = [
        f"streak:{client_id}:*",
        f"tonnage:{client_id}:*",
        f"progression:{client_id}:*",
    ]

    total_deleted = 0
    for pattern in patterns:
        total_deleted += invalidate_pattern(pattern)

    if total_deleted:
        logger.debug(f"Invalidated {total_deleted} metric cache entries for client {client_id}")
    return total_deleted
