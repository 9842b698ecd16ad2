"""Redis client for caching user profiles resolved from session tokens."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as redis
from carwash.config import settings

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

# Key prefixes for namespace organization
USER_PREFIX = "user:"

# Timeout for Redis operations (2 seconds)
REDIS_TIMEOUT = 2.0


async def init_redis():
    """Initialize Redis connection with connection pooling.

    The cache is optional: on failure the client stays ``None`` and every
    helper below degrades to a cache miss.
    """
    global redis_client
    try:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_connect_timeout=5,
            socket_keepalive=True,
        )

        await redis_client.ping()
        logger.info("Redis connection initialized and validated")

    except Exception as e:
        logger.error(f"Failed to initialize Redis connection, user cache disabled: {e}")
        if redis_client:
            try:
                await redis_client.aclose()
            except Exception as close_error:
                logger.debug(f"Error closing Redis client after failed init: {close_error}")
        redis_client = None


async def close_redis():
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")


# ============================================================================
# User Caching Functions
# ============================================================================


async def cache_user(clerk_id: str, user_data: dict, ttl: Optional[int] = None) -> bool:
    """Cache the profile of an authenticated user.

    Args:
        clerk_id: Identity provider user id (session token subject)
        user_data: Dictionary containing the user profile
        ttl: Time-to-live in seconds (default: settings.USER_CACHE_TTL)

    Returns:
        True if successful, False otherwise

    User cache structure:
        {
            "id": str,
            "clerk_id": str,
            "name": str,
            "email": str,
            "role": "CUSTOMER" | "STAFF" | "ADMIN",
            "cached_at": str
        }
    """
    if not redis_client:
        return False

    key = f"{USER_PREFIX}{clerk_id}"
    payload = dict(user_data, cached_at=datetime.now(timezone.utc).isoformat())

    try:
        await asyncio.wait_for(
            redis_client.setex(key, ttl or settings.USER_CACHE_TTL, json.dumps(payload)),
            timeout=REDIS_TIMEOUT,
        )
        logger.debug(f"User cached: {clerk_id}")
        return True
    except asyncio.TimeoutError:
        logger.error(f"Timeout caching user {clerk_id}")
        return False
    except Exception as e:
        logger.error(f"Error caching user {clerk_id}: {e}")
        return False


async def get_cached_user(clerk_id: str) -> Optional[dict]:
    """Retrieve a cached user profile.

    Args:
        clerk_id: Identity provider user id

    Returns:
        User data dictionary or None if not found
    """
    if not redis_client:
        return None

    key = f"{USER_PREFIX}{clerk_id}"

    try:
        value = await asyncio.wait_for(redis_client.get(key), timeout=REDIS_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error(f"Timeout retrieving cached user {clerk_id}")
        return None
    except Exception as e:
        logger.error(f"Error retrieving cached user {clerk_id}: {e}")
        return None

    if value:
        logger.debug(f"User cache hit: {clerk_id}")
        return json.loads(value)

    logger.debug(f"User cache miss: {clerk_id}")
    return None


async def invalidate_user_cache(clerk_id: str) -> bool:
    """Clear a cached user profile (e.g. after a role change).

    Args:
        clerk_id: Identity provider user id

    Returns:
        True if deleted, False otherwise
    """
    if not redis_client:
        return False

    key = f"{USER_PREFIX}{clerk_id}"

    try:
        deleted = await asyncio.wait_for(redis_client.delete(key), timeout=REDIS_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error(f"Timeout invalidating user cache {clerk_id}")
        return False
    except Exception as e:
        logger.error(f"Error invalidating user cache {clerk_id}: {e}")
        return False

    if deleted:
        logger.info(f"User cache invalidated: {clerk_id}")
        return True
    return False


# ============================================================================
# Health Check
# ============================================================================


async def check_redis_health() -> bool:
    """Test Redis connectivity.

    Returns:
        True if Redis is accessible, False otherwise
    """
    if not redis_client:
        logger.error("Redis client not initialized")
        return False

    try:
        await asyncio.wait_for(redis_client.ping(), timeout=REDIS_TIMEOUT)
        logger.debug("Redis health check: OK")
        return True
    except asyncio.TimeoutError:
        logger.error("Redis health check timed out")
        return False
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return False
