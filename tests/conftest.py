import asyncio
import json
from pathlib import Path
from typing import Any

import fakeredis
import pytest

from domain.cache import CacheStore
from domain.expansion import ExpansionOrchestrator
from domain.illustrations import IllustrationService
from domain.repository import RecipeFileRepository
from domain.story import StoryStateManager


SEED = "Intro.  Second half of sentence.\nNext paragraph here."


class FakeLLM:
    """Stands in for `LLMService`, recording every prompt it is given."""

    def __init__(
        self,
        *,
        continuation: str | None = None,
        expansion: str = "\nMore story.",
        fail_images_for: tuple[str, ...] = (),
    ) -> None:
        self.continuation = continuation
        self.expansion = expansion
        self.fail_images_for = fail_images_for
        self.continue_calls: list[str] = []
        self.expand_calls: list[tuple[str, int]] = []
        self.image_calls: list[str] = []

    async def continue_story(self, context: str) -> str:
        self.continue_calls.append(context)
        if self.continuation is not None:
            return self.continuation
        return f" Segment {len(self.continue_calls)}."

    async def expand_story(self, story: str, *, paragraphs: int = 10) -> str:
        self.expand_calls.append((story, paragraphs))
        return self.expansion

    async def generate_image(self, prompt: str) -> str:
        self.image_calls.append(prompt)
        await asyncio.sleep(0)
        if any(s in prompt for s in self.fail_images_for):
            raise RuntimeError("image generation failed")
        return f"https://images.example.com/{len(self.image_calls)}.png"

    async def close(self) -> None:
        pass


def write_recipe(directory: Path, **fields: Any) -> dict[str, Any]:
    recipe = {
        "id": "apple-pie",
        "title": "Apple Pie",
        "ingredients": ["apples", "pastry"],
        "instructions": ["Fill the pastry.", "Bake."],
        "story": SEED,
    }
    recipe.update(fields)
    path = directory / f"{recipe['id']}.json"
    path.write_text(json.dumps(recipe), encoding="utf-8")
    return recipe


@pytest.fixture
def recipes_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "recipes"
    directory.mkdir()
    write_recipe(directory)
    return directory


@pytest.fixture
def cache() -> CacheStore:
    client = fakeredis.FakeAsyncRedis(
        server=fakeredis.FakeServer(), decode_responses=True
    )
    return CacheStore(client=client)


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def repo(recipes_dir: Path, cache: CacheStore) -> RecipeFileRepository:
    return RecipeFileRepository(recipes_dir, cache=cache)


@pytest.fixture
def stories(cache: CacheStore, repo: RecipeFileRepository) -> StoryStateManager:
    return StoryStateManager(cache=cache, repository=repo)


@pytest.fixture
def orchestrator(
    cache: CacheStore, stories: StoryStateManager, llm: FakeLLM
) -> ExpansionOrchestrator:
    return ExpansionOrchestrator(
        cache=cache,
        stories=stories,
        llm=llm,  # pyright: ignore[reportArgumentType]
        expansion_paragraphs=5,
    )


@pytest.fixture
def illustrations(
    cache: CacheStore,
    repo: RecipeFileRepository,
    stories: StoryStateManager,
    llm: FakeLLM,
) -> IllustrationService:
    return IllustrationService(
        cache=cache,
        repository=repo,
        stories=stories,
        llm=llm,  # pyright: ignore[reportArgumentType]
    )
