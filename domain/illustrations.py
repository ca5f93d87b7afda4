import asyncio
import logging

from domain.cache import WEEK, CacheStore, image_key, image_pattern
from domain.errors import InvalidArgument, NotFound
from domain.llm_service import LLMService
from domain.prompts import image_prompt
from domain.repository import RecipeFileRepository
from domain.story import StoryStateManager


logger = logging.getLogger(__name__)


class IllustrationService:
    """Images for story paragraphs, addressed by paragraph index."""

    def __init__(
        self,
        *,
        cache: CacheStore,
        repository: RecipeFileRepository,
        stories: StoryStateManager,
        llm: LLMService,
        ttl: int = WEEK,
        stride: int = 3,
        max_concurrent: int = 4,
    ) -> None:
        self.cache = cache
        self.repository = repository
        self.stories = stories
        self.llm = llm
        self.ttl = ttl
        self.stride = stride
        self.max_concurrent = max_concurrent

    async def _title(self, recipe_id: str) -> str:
        recipe, _ = await self.repository.get(recipe_id)
        return recipe.title

    async def _generate(
        self, recipe_id: str, index: int, paragraph: str, title: str
    ) -> str:
        url = await self.llm.generate_image(image_prompt(paragraph, title))
        await self.cache.set(image_key(recipe_id, index), {"imageUrl": url}, self.ttl)
        return url

    async def image_for_paragraph(
        self,
        recipe_id: str,
        paragraph_index: int,
        *,
        force_refresh: bool = False,
    ) -> str:
        if (
            isinstance(paragraph_index, bool)
            or not isinstance(paragraph_index, int)
            or paragraph_index < 0
        ):
            raise InvalidArgument("Invalid paragraph index")

        if not force_refresh:
            cached = await self.cache.get(image_key(recipe_id, paragraph_index))
            if cached and cached.get("imageUrl"):
                return cached["imageUrl"]

        title = await self._title(recipe_id)
        paragraphs = await self.stories.paragraphs(recipe_id)
        if paragraph_index >= len(paragraphs):
            raise NotFound(f"Paragraph index {paragraph_index} not found in story.")

        return await self._generate(
            recipe_id, paragraph_index, paragraphs[paragraph_index], title
        )

    async def generate_all_images(
        self, recipe_id: str
    ) -> tuple[dict[int, str], dict[int, str]]:
        """Regenerate every `stride`th paragraph's image.

        A paragraph whose generation fails is logged and left out of the
        result; the others carry on.
        """
        title = await self._title(recipe_id)
        paragraphs = await self.stories.paragraphs(recipe_id)
        indices = list(range(self.stride - 1, len(paragraphs), self.stride))
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def generate(index: int) -> str:
            async with semaphore:
                return await self._generate(recipe_id, index, paragraphs[index], title)

        results = await asyncio.gather(
            *(generate(i) for i in indices), return_exceptions=True
        )

        generated: dict[int, str] = {}
        for index, result in zip(indices, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Image for %s paragraph %d failed: %r", recipe_id, index, result
                )
                continue
            generated[index] = result

        return generated, await self.image_urls(recipe_id)

    async def image_urls(self, recipe_id: str) -> dict[int, str]:
        urls: dict[int, str] = {}
        for key, value in (await self.cache.scan(image_pattern(recipe_id))).items():
            index = key.rsplit(":", 1)[-1]
            if index.isdigit() and value.get("imageUrl"):
                urls[int(index)] = value["imageUrl"]
        return dict(sorted(urls.items()))
