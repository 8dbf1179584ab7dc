"""
Redis service for crypto crash game backend
Recent crash history cache with connection pooling
"""

import logging
from decimal import Decimal
from typing import List, Optional
import redis.asyncio as redis
from redis.asyncio import ConnectionPool

from config.settings import REDIS_POOL_SIZE
from config.redis_keys import (
    CRASH_HISTORY_KEY,
    LAST_CRASH_POINT_KEY,
    CRASH_HISTORY_LENGTH,
    LAST_CRASH_POINT_TTL,
)

# Setup logging
logger = logging.getLogger(__name__)

class RedisService:
    """Redis service with connection pooling"""

    def __init__(self, redis_url: str, pool_size: int = REDIS_POOL_SIZE):
        self.redis_url = redis_url
        self.pool_size = pool_size
        self.pool: Optional[ConnectionPool] = None
        self.client: Optional[redis.Redis] = None
        self.connected = False

    async def connect(self) -> redis.Redis:
        """Initialize Redis connection with pooling"""
        try:
            # Create connection pool
            self.pool = ConnectionPool.from_url(
                self.redis_url,
                max_connections=self.pool_size,
                retry_on_timeout=True,
                socket_keepalive=True,
                decode_responses=True
            )

            # Create Redis client
            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            await self.client.ping()
            self.connected = True

            logger.info(f"✅ Redis connected with pool size {self.pool_size}")
            return self.client

        except Exception as e:
            logger.error(f"❌ Redis connection failed: {e}")
            self.connected = False
            raise

    async def disconnect(self):
        """Close Redis connection"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self.connected = False
            logger.info("🛑 Redis disconnected")
        except Exception as e:
            logger.warning(f"⚠️ Redis disconnect error: {e}")

    async def ping(self) -> bool:
        """Check Redis connection health"""
        try:
            if not self.client:
                return False
            await self.client.ping()
            return True
        except Exception:
            return False

    async def get_async_client(self) -> redis.Redis:
        """Get async Redis client instance"""
        if not self.connected or not self.client:
            raise RuntimeError("Redis not connected")
        return self.client

    # Crash history
    async def push_crash_point(self, crash_point: Decimal) -> bool:
        """Prepend a crash point to the history list and trim it"""
        try:
            client = await self.get_async_client()
            pipe = client.pipeline()
            pipe.lpush(CRASH_HISTORY_KEY, str(crash_point))
            pipe.ltrim(CRASH_HISTORY_KEY, 0, CRASH_HISTORY_LENGTH - 1)
            pipe.setex(LAST_CRASH_POINT_KEY, LAST_CRASH_POINT_TTL, str(crash_point))
            await pipe.execute()
            return True
        except Exception as e:
            logger.error(f"❌ Error saving crash point {crash_point}: {e}")
            return False

    async def get_crash_history(self, limit: int = 20) -> List[Decimal]:
        """Recent crash points, newest first"""
        try:
            client = await self.get_async_client()
            values = await client.lrange(CRASH_HISTORY_KEY, 0, max(0, limit - 1))
            return [Decimal(value) for value in values]
        except Exception as e:
            logger.error(f"❌ Error reading crash history: {e}")
            return []

