from domain.amistral import MistralClient
from domain.images import ImageGenerator
from domain.prompts import CONTINUE_STORY_PROMPT, ExpandStoryPrompt


class LLMService:
    """Everything that asks a model for content: story text and images."""

    def __init__(
        self,
        mistral_client: MistralClient | None = None,
        image_generator: ImageGenerator | None = None,
    ) -> None:
        self.mistral_client = (
            MistralClient() if mistral_client is None else mistral_client
        )
        self.image_generator = (
            ImageGenerator() if image_generator is None else image_generator
        )

    async def continue_story(self, context: str) -> str:
        return await self.mistral_client.complete(context, CONTINUE_STORY_PROMPT)

    async def expand_story(self, story: str, *, paragraphs: int = 10) -> str:
        prompt = ExpandStoryPrompt(paragraphs=paragraphs)
        return await self.mistral_client.complete(story, str(prompt))

    async def generate_image(self, prompt: str) -> str:
        return await self.image_generator.generate(prompt)

    async def close(self) -> None:
        await self.mistral_client.close()
        await self.image_generator.close()
