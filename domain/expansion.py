"""Serving and growing the story.

Continuations are addressed by segment number, the position a client has
reached, not by the text it sends as context. Client context windows drift as
text accumulates, so identical positions still land on the same cache entry.
The server keeps no session state; the client sends its segment number every
time and advances it with `next_segment_number`.
"""

import asyncio
import logging

from domain.cache import HOUR, CacheStore, segment_key
from domain.errors import GenerationFailed, InvalidArgument, NotFound
from domain.llm_service import LLMService
from domain.models import Continuation, Expansion, Source
from domain.story import StoryStateManager


logger = logging.getLogger(__name__)


class ExpansionOrchestrator:
    def __init__(
        self,
        *,
        cache: CacheStore,
        stories: StoryStateManager,
        llm: LLMService,
        segment_ttl: int = HOUR,
        expansion_paragraphs: int = 10,
    ) -> None:
        self.cache = cache
        self.stories = stories
        self.llm = llm
        self.segment_ttl = segment_ttl
        self.expansion_paragraphs = expansion_paragraphs
        self._speculating: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    async def continue_story(
        self,
        recipe_id: str,
        context: str,
        segment_number: int,
    ) -> Continuation:
        if not isinstance(context, str) or not context.strip():
            raise InvalidArgument("Context must be a non-empty string.")
        if (
            isinstance(segment_number, bool)
            or not isinstance(segment_number, int)
            or segment_number < 0
        ):
            raise InvalidArgument("Segment number must be a non-negative integer.")

        key = segment_key(recipe_id, segment_number)
        cached = await self.cache.get(key)
        if cached is not None:
            continuation = cached.get("continuation", "")
            source = Source.cache
        else:
            continuation = await self.llm.continue_story(context)
            source = Source.llm
            if continuation:
                await self.cache.set(
                    key, {"continuation": continuation}, self.segment_ttl
                )
            else:
                logger.warning(
                    "Empty continuation for %s segment %d", recipe_id, segment_number
                )
                continuation = ""

        if continuation:
            self.speculate(recipe_id, continuation, segment_number + 1)

        return Continuation(
            recipe_id=recipe_id,
            continuation=continuation,
            source=source,
            next_segment_number=segment_number + 1,
        )

    def speculate(self, recipe_id: str, context: str, segment_number: int) -> None:
        """Start generating a segment in the background. Never raises."""
        key = segment_key(recipe_id, segment_number)
        if key in self._speculating:
            return
        self._speculating.add(key)
        task = asyncio.create_task(self._pregenerate(key, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _pregenerate(self, key: str, context: str) -> None:
        try:
            if await self.cache.get(key) is not None:
                logger.debug("%s already cached", key)
                return
            continuation = await self.llm.continue_story(context)
            if continuation:
                await self.cache.set(
                    key, {"continuation": continuation}, self.segment_ttl
                )
                logger.info("Pre-generated %s", key)
        except Exception:
            logger.exception("Pre-generating %s failed", key)
        finally:
            self._speculating.discard(key)

    async def drain(self) -> None:
        """Wait for every speculative generation started so far."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def expand_story(self, recipe_id: str) -> Expansion:
        story = await self.stories.cached_story(recipe_id)
        if story is None:
            raise NotFound(
                "No story found for this recipe. "
                "First load the recipe to initialize the story."
            )

        expansion = await self.llm.expand_story(
            story, paragraphs=self.expansion_paragraphs
        )
        if not expansion:
            raise GenerationFailed("Failed to generate story expansion.")

        story = await self.stories.append_expansion(recipe_id, expansion)
        return Expansion(recipe_id=recipe_id, expansion=expansion, story=story)
