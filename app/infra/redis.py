"""
Redis Connection Management

Singleton Redis connection with retries and a short-lived inventory cache.
Every Redis failure degrades to "no cache": callers fall back to
PostgreSQL and the conversation keeps working.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError, RedisError

from app.config import settings

# Logger
logger = logging.getLogger(__name__)

# App prefix for namespacing (allows multiple apps/versions on same Redis)
APP_PREFIX = "registration:v1:"


class RedisClient:
    """
    Manages Redis connection as a singleton.

    Features:
    - Connection pooling
    - Automatic retries with exponential backoff
    - Timeouts
    - Returns None instead of raising when Redis is down
    """

    _client: Optional[Redis] = None
    _connected: bool = False

    @classmethod
    async def get_client(cls) -> Optional[Redis]:
        """
        Get or create Redis client.

        Returns:
            Redis client or None if connection fails
        """
        if cls._client is not None and cls._connected:
            return cls._client

        try:
            retry = Retry(ExponentialBackoff(), retries=2)

            cls._client = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2.0,
                socket_timeout=2.0,
                retry_on_timeout=True,
                retry=retry,
            )

            await cls._client.ping()
            cls._connected = True
            logger.info("Redis connection established successfully")
            return cls._client

        except (ConnectionError, TimeoutError, RedisError, OSError) as e:
            logger.error(f"Failed to connect to Redis: {e}")
            cls._connected = False
            cls._client = None
            return None

    @classmethod
    async def close(cls) -> None:
        """Close Redis connection."""
        if cls._client is not None:
            try:
                await cls._client.close()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                cls._client = None
                cls._connected = False

    @classmethod
    def is_connected(cls) -> bool:
        """Check if Redis is connected."""
        return cls._connected


async def get_redis() -> Optional[Redis]:
    """
    Get the shared Redis client, or None when Redis is unavailable.

    Usage:
        client = await get_redis()
        if client is None:
            # read straight from the database
            ...
    """
    return await RedisClient.get_client()


class InventoryCache:
    """
    Per-organization cache of candidate sessions.

    Keys (with namespace):
    - registration:v1:inventory:{organization_id}:{date} -> list of session dicts (JSON)

    The date is part of the key so a cached list never outlives the day it
    was computed for.
    """

    INVENTORY_PREFIX = f"{APP_PREFIX}inventory:"

    def __init__(self, redis_client: Optional[Redis], ttl: Optional[int] = None):
        self.redis = redis_client
        self.ttl = ttl if ttl is not None else settings.inventory_cache_ttl

    def _key(self, organization_id: str, day: str) -> str:
        return f"{self.INVENTORY_PREFIX}{organization_id}:{day}"

    async def get(self, organization_id: str, day: str) -> Optional[list[dict[str, Any]]]:
        """
        Get cached session dicts.

        Returns:
            List of session dicts, or None on miss / Redis unavailable
        """
        if self.redis is None or self.ttl <= 0:
            return None

        try:
            data = await self.redis.get(self._key(organization_id, day))
            if data is None:
                return None
            return json.loads(data)

        except RedisError as e:
            logger.warning(f"Inventory cache read failed for {organization_id}: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding corrupt inventory cache for {organization_id}: {e}")
            return None

    async def set(self, organization_id: str, day: str, sessions: list[dict[str, Any]]) -> bool:
        """
        Cache session dicts for the configured TTL.

        Returns:
            True if cached, False if Redis unavailable or write failed
        """
        if self.redis is None or self.ttl <= 0:
            return False

        try:
            await self.redis.setex(
                self._key(organization_id, day),
                timedelta(seconds=self.ttl),
                json.dumps(sessions),
            )
            return True

        except RedisError as e:
            logger.warning(f"Inventory cache write failed for {organization_id}: {e}")
            return False


async def get_inventory_cache() -> InventoryCache:
    """
    Get InventoryCache instance.

    Returns InventoryCache even if Redis unavailable (graceful degradation).
    """
    client = await get_redis()
    return InventoryCache(client)


async def check_redis_health() -> bool:
    """
    Check Redis connectivity for health checks.

    Returns:
        True if Redis is accessible and responding, False otherwise
    """
    try:
        client = await get_redis()
        if client is None:
            return False

        await client.ping()
        return True

    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return False
