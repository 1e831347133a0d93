"""
Caching utilities for expensive dashboard and report payloads
Uses Redis when configured, local memory otherwise
"""
from django.conf import settings
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

DASHBOARD_CACHE_PREFIX = "dashboard"
REPORTS_CACHE_PREFIX = "reports"

REDIS_BACKEND = 'django_redis.cache.RedisCache'


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    # repr() of the filter dataclasses is stable, so it can be hashed directly
    key_data = f"{prefix}:{args!r}:{sorted(kwargs.items())!r}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(cache_ttl=120, key_prefix="dashboard")
        def get_expensive_data(filters):
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            return result
        wrapper.uncached = func
        return wrapper
    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern

    With the Redis backend matching keys are found with SCAN; other backends
    cannot enumerate keys, so the whole cache is cleared.
    """
    if settings.CACHES['default']['BACKEND'] != REDIS_BACKEND:
        cache.clear()
        logger.debug(f"Cache cleared for pattern: {pattern} (non-Redis backend)")
        return

    from django_redis import get_redis_connection
    redis_conn = get_redis_connection("default")

    keys = []
    cursor = 0
    while True:
        cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
        keys.extend(partial_keys)
        if cursor == 0:
            break

    if keys:
        redis_conn.delete(*keys)
        logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    else:
        logger.debug(f"Cache invalidation requested for pattern: {pattern} - No keys found")


def invalidate_dashboard_cache():
    """Invalidate admin and distributor dashboard payloads"""
    invalidate_cache_pattern(DASHBOARD_CACHE_PREFIX)


def invalidate_reports_cache():
    """Invalidate report builder payloads"""
    invalidate_cache_pattern(REPORTS_CACHE_PREFIX)
