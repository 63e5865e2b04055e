from upstash_redis import Redis
from typing import List, Optional
import json
import logging

from app.config import settings


logger = logging.getLogger(__name__)

# Global Redis client
redis_client: Optional[Redis] = None


async def init_redis():
    """Initialize Upstash Redis connection."""
    global redis_client
    if not settings.UPSTASH_REDIS_URL or not settings.UPSTASH_REDIS_TOKEN:
        logger.info("Redis not configured - suggestions cache disabled")
        return
    redis_client = Redis(
        url=settings.UPSTASH_REDIS_URL,
        token=settings.UPSTASH_REDIS_TOKEN,
    )
    logger.info("Redis (Upstash) initialized")


async def close_redis():
    """Close Redis connection."""
    global redis_client
    redis_client = None
    logger.info("Redis connection closed")


def get_redis() -> Redis:
    """Get Redis client instance."""
    if redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


class RedisService:
    """
    Redis cache for the suggestions deck.
    Optimized for Upstash free tier (10k commands/day); every operation is a
    no-op when Redis is not configured.
    """

    def __init__(self, client: Optional[Redis] = None):
        self.client = client if client is not None else redis_client

    @staticmethod
    def _suggestions_key(user_id: str, mode: str) -> str:
        return f"suggestions:{user_id}:{mode}"

    # ==================== Suggestions Cache ====================

    async def cache_suggestions(self, user_id: str, mode: str, suggestions: List[dict]) -> None:
        """Cache the suggestions deck for a few minutes."""
        if self.client is None:
            return
        key = self._suggestions_key(user_id, mode)
        self.client.setex(key, settings.SUGGESTIONS_CACHE_SECONDS, json.dumps(suggestions))

    async def get_cached_suggestions(self, user_id: str, mode: str) -> Optional[List[dict]]:
        """Get cached suggestions deck."""
        if self.client is None:
            return None
        data = self.client.get(self._suggestions_key(user_id, mode))
        return json.loads(data) if data else None

    async def invalidate_suggestions(self, *user_ids: str) -> None:
        """Drop cached decks after a swipe changes who is already paired."""
        if self.client is None:
            return
        keys = [
            self._suggestions_key(user_id, mode)
            for user_id in user_ids
            for mode in ("dating", "friends")
        ]
        self.client.delete(*keys)
