import asyncio
import logging
import weakref

from domain.cache import DAY, CacheStore, story_key
from domain.errors import NotFound
from domain.models import Source, split_paragraphs
from domain.repository import RecipeFileRepository


logger = logging.getLogger(__name__)


class StoryStateManager:
    """Owns the cumulative story text of each recipe.

    The story starts as the seed from the recipe file and only ever grows at
    the end. Priming the seed and appending are serialized per recipe so
    neither can overwrite the other; the lock lives in this process only.
    """

    def __init__(
        self,
        *,
        cache: CacheStore,
        repository: RecipeFileRepository,
        ttl: int = DAY,
    ) -> None:
        self.cache = cache
        self.repository = repository
        self.ttl = ttl
        # Entries go away once no coroutine holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock(self, recipe_id: str) -> asyncio.Lock:
        lock = self._locks.get(recipe_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[recipe_id] = lock
        return lock

    async def _read(self, recipe_id: str) -> str | None:
        """The stored story, which may be an empty seed."""
        data = await self.cache.get(story_key(recipe_id))
        if not isinstance(data, dict) or not isinstance(data.get("story"), str):
            return None
        return data["story"]

    async def cached_story(self, recipe_id: str) -> str | None:
        """The stored story, treating an empty one as not initialized."""
        return await self._read(recipe_id) or None

    async def _write(self, recipe_id: str, story: str) -> None:
        await self.cache.set(story_key(recipe_id), {"story": story}, self.ttl)

    async def get_story(self, recipe_id: str) -> tuple[str, Source]:
        story = await self._read(recipe_id)
        if story is not None:
            return story, Source.cache

        async with self._lock(recipe_id):
            story = await self._read(recipe_id)
            if story is not None:
                return story, Source.cache

            recipe, _ = await self.repository.get(recipe_id)
            await self._write(recipe_id, recipe.story)
        return recipe.story, Source.file

    async def append_expansion(self, recipe_id: str, text: str) -> str:
        async with self._lock(recipe_id):
            current = await self._read(recipe_id)
            if current is None:
                recipe = await self.repository.cached(recipe_id)
                if recipe is None:
                    raise NotFound(
                        f"No story found for recipe '{recipe_id}'. "
                        "Load the recipe first to initialize the story."
                    )
                current = recipe.story

            story = current + text
            await self._write(recipe_id, story)

        logger.info("Story for %s is now %d characters", recipe_id, len(story))
        return story

    async def paragraphs(self, recipe_id: str) -> list[str]:
        story = await self.cached_story(recipe_id)
        if story is None:
            raise NotFound(f"No story found for recipe '{recipe_id}'.")
        return split_paragraphs(story)
