import logging
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from coach.models import Scene

logger = logging.getLogger(__name__)


def session_key(user_id: str, scene: Scene) -> str:
    return f"{user_id}_{scene.value}"


class SessionHistory:
    """Conversation summaries cached per (user, scene).

    Lookups fail open: an unreachable cache reads as "no earlier context" and
    never aborts a chat. Expiry is left to whoever operates the cache.
    """

    def __init__(self, redis: aioredis.Redis, metrics):
        self.redis = redis
        self.metrics = metrics

    async def get(self, key: str) -> Optional[str]:
        try:
            summary = await self.redis.get(key)
        except RedisError as e:
            self.metrics.incr("errors.history_lookup")
            logger.warning("could not read history summary %s: %s", key, e)
            return None

        if isinstance(summary, bytes):
            summary = summary.decode("utf-8")
        return summary or None

    async def put(self, key: str, summary: str) -> bool:
        try:
            await self.redis.set(key, summary)
        except RedisError as e:
            logger.warning("could not store history summary %s: %s", key, e)
            return False
        return True
