"""
Redis client.

Redis connection used to fan workflow events out to UI subscribers.
"""

from typing import Optional
import redis.asyncio as aioredis
from shared.errors import RetryableError, ConfigError


class RedisClient:
    """Async Redis client for pub/sub publication."""

    def __init__(self, redis_url: str):
        """
        Initialize Redis client.

        Args:
            redis_url: redis:// or rediss:// connection URL
        """
        try:
            self.client: aioredis.Redis = aioredis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=False
            )
            self.prefix = "ambient-workflow:"
        except Exception as e:
            raise ConfigError(f"Failed to initialize Redis client: {str(e)}") from e

    def _prefix_key(self, key: str) -> str:
        """Add namespace prefix to key."""
        return f"{self.prefix}{key}"

    async def publish(self, channel: str, message: str) -> int:
        """
        Publish a message on a pub/sub channel.

        Args:
            channel: Channel name (unprefixed)
            message: Serialized message

        Returns:
            Number of subscribers that received the message

        Raises:
            RetryableError: If publication fails
        """
        try:
            return await self.client.publish(
                self._prefix_key(channel),
                message.encode("utf-8")
            )
        except Exception as e:
            raise RetryableError(f"Failed to publish to Redis: {str(e)}") from e

    async def close(self):
        """Close Redis connection."""
        await self.client.aclose()


def create_redis_client(redis_url: Optional[str]) -> Optional[RedisClient]:
    """
    Build a Redis client when a URL is configured.

    Args:
        redis_url: Connection URL or None

    Returns:
        RedisClient, or None when Redis publication is disabled
    """
    if not redis_url:
        return None
    return RedisClient(redis_url)
