"""Redis caching utilities for AgriTrace.

Caches read-heavy listings (the public batch marketplace).  Writes that
change batch state finish with ``commit_and_invalidate(db, "batches:*")``.
Redis errors are logged and the wrapped function runs uncached;
``CACHE_ENABLED=false`` bypasses Redis entirely.
"""

import functools
import hashlib
import json
import logging
from datetime import date, datetime
from typing import Callable, Optional

import redis.asyncio as redis

from agritrace.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(*args, **kwargs) -> str:
    """Deterministic hash of the arguments ("default" when there are none)."""
    if not args and not kwargs:
        return "default"

    key_data = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True)
    return hashlib.md5(key_data.encode()).hexdigest()


def _key_kwargs(kwargs: dict) -> dict:
    # Injected dependencies (sessions, identities) never take part in the key
    out = {}
    for k, v in kwargs.items():
        if k.startswith("_"):
            continue
        if isinstance(v, (int, str, bool, float, type(None))):
            out[k] = v
        elif isinstance(v, (date, datetime)):
            out[k] = v.isoformat()
    return out


def _serialize(result):
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json")
    if isinstance(result, list) and result and hasattr(result[0], "model_dump"):
        return [item.model_dump(mode="json") for item in result]
    return result


def cached(
    ttl: int = 300,
    prefix: str = "cache",
    key_builder: Optional[Callable] = None,
):
    """Decorator to cache function results in Redis.

    Cache keys: {prefix}:{function_name}:{kwargs_hash}

    Example:
        @cached(ttl=60, prefix="batches")
        async def list_batches(crop: str | None = None, db=Depends(get_db)):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if not settings.cache_enabled:
                return await func(*args, **kwargs)

            if key_builder:
                key = key_builder(*args, **kwargs)
            else:
                key = f"{prefix}:{func.__name__}:{cache_key(**_key_kwargs(kwargs))}"

            try:
                redis_client = await get_redis()
                cached_value = await redis_client.get(key)
                if cached_value:
                    logger.debug("Cache HIT: %s", key)
                    return json.loads(cached_value)
                logger.debug("Cache MISS: %s", key)
            except redis.RedisError as e:
                logger.warning("Redis error (falling back to uncached): %s", e)
                return await func(*args, **kwargs)

            result = await func(*args, **kwargs)
            try:
                await redis_client.setex(key, ttl, json.dumps(_serialize(result)))
            except redis.RedisError as e:
                logger.warning("Failed to store %s in cache: %s", key, e)
            return result

        return wrapper

    return decorator


async def invalidate_cache(pattern: str):
    """Delete every key matching ``pattern`` (e.g. "batches:*")."""
    if not settings.cache_enabled:
        return
    try:
        redis_client = await get_redis()
        keys = [key async for key in redis_client.scan_iter(match=pattern)]
        if keys:
            await redis_client.delete(*keys)
            logger.info("Invalidated %d cache keys matching %s", len(keys), pattern)
    except redis.RedisError as e:
        logger.warning("Failed to invalidate cache: %s", e)


async def commit_and_invalidate(db, pattern: str):
    """Commit the request's session, then drop cached keys matching ``pattern``.

    Keys are dropped only once the writes are visible to other sessions.
    ``get_db`` commits again afterwards, which is a no-op.
    """
    await db.commit()
    await invalidate_cache(pattern)
