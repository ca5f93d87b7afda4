import asyncio
import json
import logging
from pathlib import Path

from domain.cache import DAY, CacheStore, recipe_key
from domain.errors import NotFound
from domain.models import Recipe, Source


logger = logging.getLogger(__name__)


class RecipeFileRepository:
    """Recipes stored as `<id>.json` files, read through the cache."""

    def __init__(
        self,
        directory: Path,
        *,
        cache: CacheStore,
        ttl: int = DAY,
    ) -> None:
        self.directory = directory
        self.cache = cache
        self.ttl = ttl

    def _path(self, recipe_id: str) -> Path:
        if not recipe_id or Path(recipe_id).name != recipe_id:
            raise NotFound(f"Recipe with ID '{recipe_id}' not found.")
        return self.directory / f"{recipe_id}.json"

    async def _read(self, path: Path) -> Recipe:
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return Recipe.from_dict(json.loads(text))

    async def get(self, recipe_id: str) -> tuple[Recipe, Source]:
        cached = await self.cache.get(recipe_key(recipe_id))
        if cached is not None:
            return Recipe.from_dict(cached), Source.cache

        path = self._path(recipe_id)
        try:
            recipe = await self._read(path)
        except FileNotFoundError:
            raise NotFound(f"Recipe with ID '{recipe_id}' not found.") from None

        await self.cache.set(recipe_key(recipe_id), recipe.to_dict(), self.ttl)
        return recipe, Source.file

    async def cached(self, recipe_id: str) -> Recipe | None:
        """The recipe only if a previous `get` has primed the cache."""
        data = await self.cache.get(recipe_key(recipe_id))
        return None if data is None else Recipe.from_dict(data)

    async def list(self) -> list[Recipe]:
        paths = sorted(self.directory.glob("*.json"))
        recipes = await asyncio.gather(*(self._read(p) for p in paths))
        logger.debug("Listed %d recipes from %s", len(recipes), self.directory)
        return list(recipes)
