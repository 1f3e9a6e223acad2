import redis.asyncio as aioredis
from redis.asyncio import Redis
from typing import Optional
import json
import logging

from config.settings import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper with helper methods"""

    def __init__(self):
        self.cache_client: Optional[Redis] = None
        self.pubsub_client: Optional[Redis] = None

    async def connect(self):
        """Initialize Redis connections"""
        try:
            # Cache client for de-duplication claims
            self.cache_client = await aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                max_connections=10
            )

            # Pub/Sub client
            self.pubsub_client = await aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True
            )

            await self.cache_client.ping()
            await self.pubsub_client.ping()

            logger.info("✅ Redis connections initialized")
        except Exception as e:
            logger.error(f"❌ Redis connection failed: {e}")
            raise

    async def disconnect(self):
        """Close Redis connections"""
        if self.cache_client:
            await self.cache_client.close()
        if self.pubsub_client:
            await self.pubsub_client.close()
        logger.info("🔌 Redis connections closed")

    async def claim_once(self, key: str, ttl_seconds: int) -> bool:
        """
        Atomically claim a key for ttl_seconds.

        Returns:
            True if this caller set the key, False if it already existed
        """
        claimed = await self.cache_client.set(key, "1", nx=True, ex=ttl_seconds)
        return bool(claimed)

    async def release(self, key: str):
        """Drop a previously claimed key"""
        try:
            await self.cache_client.delete(key)
        except Exception as e:
            logger.error(f"Error releasing {key}: {e}")

    async def publish_event(self, channel: str, message: dict):
        """Publish to pub/sub channel"""
        try:
            await self.pubsub_client.publish(channel, json.dumps(message, default=str))
            logger.debug(f"📤 Published to {channel}: {message.get('type')}")
        except Exception as e:
            logger.error(f"Error publishing to {channel}: {e}")


# Global Redis client instance
redis_client = RedisClient()
