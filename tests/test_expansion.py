import asyncio

import pytest

from conftest import SEED, FakeLLM
from domain.cache import CacheStore, segment_key
from domain.errors import GenerationFailed, InvalidArgument, NotFound
from domain.expansion import ExpansionOrchestrator
from domain.models import Source
from domain.story import StoryStateManager


class FailingLLM(FakeLLM):
    async def continue_story(self, context: str) -> str:
        if self.continue_calls:
            raise RuntimeError("model is down")
        return await super().continue_story(context)


@pytest.mark.parametrize(
    "context,segment_number",
    (
        ("", 1),
        ("   ", 1),
        ("Once upon a time", -1),
        ("Once upon a time", True),
        ("Once upon a time", "1"),
    ),
)
@pytest.mark.asyncio
async def test_continue_story_validates(
    orchestrator: ExpansionOrchestrator,
    llm: FakeLLM,
    context: str,
    segment_number: int,
) -> None:
    with pytest.raises(InvalidArgument):
        await orchestrator.continue_story("apple-pie", context, segment_number)
    assert llm.continue_calls == []


@pytest.mark.asyncio
async def test_continue_story_reuses_cached_segment(
    orchestrator: ExpansionOrchestrator,
) -> None:
    first = await orchestrator.continue_story("apple-pie", "Once upon a time", 1)
    assert first.source == Source.llm
    assert first.next_segment_number == 2

    second = await orchestrator.continue_story("apple-pie", "Different context", 1)
    assert second.source == Source.cache
    assert second.continuation == first.continuation
    await orchestrator.drain()


@pytest.mark.asyncio
async def test_continue_story_pregenerates_next_segment(
    orchestrator: ExpansionOrchestrator, llm: FakeLLM
) -> None:
    first = await orchestrator.continue_story("apple-pie", "Once upon a time", 1)
    await orchestrator.drain()
    assert llm.continue_calls == ["Once upon a time", first.continuation]

    second = await orchestrator.continue_story("apple-pie", "Anything", 2)
    assert second.source == Source.cache
    assert second.continuation == " Segment 2."
    assert second.next_segment_number == 3
    assert len(llm.continue_calls) == 2
    await orchestrator.drain()


@pytest.mark.asyncio
async def test_pregeneration_skips_cached_segment(
    orchestrator: ExpansionOrchestrator, llm: FakeLLM, cache: CacheStore
) -> None:
    await cache.set(segment_key("apple-pie", 2), {"continuation": "Kept."}, 60)
    await orchestrator.continue_story("apple-pie", "Once upon a time", 1)
    await orchestrator.drain()

    assert len(llm.continue_calls) == 1
    assert await cache.get(segment_key("apple-pie", 2)) == {"continuation": "Kept."}


@pytest.mark.asyncio
async def test_pregeneration_failure_is_swallowed(
    cache: CacheStore, stories: StoryStateManager
) -> None:
    llm = FailingLLM()
    orchestrator = ExpansionOrchestrator(
        cache=cache, stories=stories, llm=llm  # pyright: ignore[reportArgumentType]
    )
    result = await orchestrator.continue_story("apple-pie", "Once upon a time", 1)
    await orchestrator.drain()

    assert result.continuation == " Segment 1."
    assert await cache.get(segment_key("apple-pie", 2)) is None


@pytest.mark.asyncio
async def test_empty_continuation_is_not_cached(
    cache: CacheStore, stories: StoryStateManager
) -> None:
    llm = FakeLLM(continuation="")
    orchestrator = ExpansionOrchestrator(
        cache=cache, stories=stories, llm=llm  # pyright: ignore[reportArgumentType]
    )
    result = await orchestrator.continue_story("apple-pie", "Once upon a time", 4)
    await orchestrator.drain()

    assert result.continuation == ""
    assert result.source == Source.llm
    assert result.next_segment_number == 5
    assert await cache.get(segment_key("apple-pie", 4)) is None
    assert len(llm.continue_calls) == 1


@pytest.mark.asyncio
async def test_segment_zero_is_allowed(orchestrator: ExpansionOrchestrator) -> None:
    result = await orchestrator.continue_story("apple-pie", "Once upon a time", 0)
    assert result.next_segment_number == 1
    await orchestrator.drain()


@pytest.mark.asyncio
async def test_expand_story_requires_story(
    orchestrator: ExpansionOrchestrator, llm: FakeLLM
) -> None:
    with pytest.raises(NotFound):
        await orchestrator.expand_story("apple-pie")
    assert llm.expand_calls == []


@pytest.mark.asyncio
async def test_expand_story_appends(
    orchestrator: ExpansionOrchestrator, stories: StoryStateManager, llm: FakeLLM
) -> None:
    await stories.get_story("apple-pie")
    expansion = await orchestrator.expand_story("apple-pie")

    assert llm.expand_calls == [(SEED, 5)]
    assert expansion.expansion == "\nMore story."
    assert expansion.story == SEED + "\nMore story."
    assert await stories.get_story("apple-pie") == (expansion.story, Source.cache)


@pytest.mark.asyncio
async def test_expand_story_empty_generation(
    cache: CacheStore, stories: StoryStateManager
) -> None:
    llm = FakeLLM(expansion="")
    orchestrator = ExpansionOrchestrator(
        cache=cache, stories=stories, llm=llm  # pyright: ignore[reportArgumentType]
    )
    await stories.get_story("apple-pie")
    with pytest.raises(GenerationFailed):
        await orchestrator.expand_story("apple-pie")
    assert await stories.get_story("apple-pie") == (SEED, Source.cache)


class StallingLLM(FakeLLM):
    """Answers the first request at once and holds every later one."""

    def __init__(self) -> None:
        super().__init__()
        self.stalled = asyncio.Event()
        self.release = asyncio.Event()

    async def continue_story(self, context: str) -> str:
        if not self.continue_calls:
            return await super().continue_story(context)
        self.continue_calls.append(context)
        self.stalled.set()
        await self.release.wait()
        return " Much later."


@pytest.mark.asyncio
async def test_pregeneration_does_not_delay_response(
    cache: CacheStore, stories: StoryStateManager
) -> None:
    llm = StallingLLM()
    orchestrator = ExpansionOrchestrator(
        cache=cache, stories=stories, llm=llm  # pyright: ignore[reportArgumentType]
    )

    result = await asyncio.wait_for(
        orchestrator.continue_story("apple-pie", "Once upon a time", 1), timeout=1
    )
    assert result.continuation == " Segment 1."

    await asyncio.wait_for(llm.stalled.wait(), timeout=1)
    assert await cache.get(segment_key("apple-pie", 2)) is None

    llm.release.set()
    await orchestrator.drain()
    assert await cache.get(segment_key("apple-pie", 2)) == {
        "continuation": " Much later."
    }
