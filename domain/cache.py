"""Redis backed cache for recipes, stories, segments and image urls.

Reads that fail behave like misses and writes that fail are dropped, so a
flaky cache slows things down but never breaks a request.
"""

import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError


logger = logging.getLogger(__name__)


HOUR = 60 * 60
DAY = HOUR * 24
WEEK = DAY * 7


def recipe_key(recipe_id: str) -> str:
    return f"recipe:{recipe_id}"


def story_key(recipe_id: str) -> str:
    return f"recipe:{recipe_id}:story"


def segment_key(recipe_id: str, segment_number: int) -> str:
    return f"recipe:{recipe_id}:segment:{segment_number}"


def image_key(recipe_id: str, paragraph_index: int) -> str:
    return f"recipe:{recipe_id}:image:{paragraph_index}"


def image_pattern(recipe_id: str) -> str:
    return f"recipe:{recipe_id}:image:*"


class CacheStore:
    def __init__(
        self,
        *,
        url: str = "redis://localhost:6379",
        client: redis.Redis | None = None,
    ) -> None:
        self.url = url
        self.client = (
            redis.Redis.from_url(url, decode_responses=True)
            if client is None
            else client
        )

    async def ping(self) -> bool:
        try:
            await self.client.ping()
        except (RedisError, OSError) as e:
            logger.warning("Redis at %s unavailable: %r", self.url, e)
            return False
        return True

    async def connect(self) -> bool:
        """Check the server is there. The app still starts when it is not."""
        ok = await self.ping()
        if ok:
            logger.info("Connected to Redis at %s", self.url)
        return ok

    async def close(self) -> None:
        await self.client.aclose()

    async def get(self, key: str) -> Any:
        try:
            value = await self.client.get(key)
        except (RedisError, OSError) as e:
            logger.error("Error getting key %r: %r", key, e)
            return None
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError as e:
            logger.error("Unreadable value under key %r: %r", key, e)
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self.client.set(key, json.dumps(value), ex=ttl)
        except (RedisError, OSError) as e:
            logger.error("Error setting key %r: %r", key, e)

    async def scan(self, pattern: str) -> dict[str, Any]:
        found: dict[str, Any] = {}
        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]
        except (RedisError, OSError) as e:
            logger.error("Error scanning %r: %r", pattern, e)
            return found
        for key in keys:
            value = await self.get(key)
            if value is not None:
                found[key] = value
        return found
