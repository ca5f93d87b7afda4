"""Image generation with OpenAI, optionally re-hosted on S3.

OpenAI image urls expire after an hour, which is shorter than image
associations live in the cache. Configure a bucket to keep them around.
"""

import asyncio
import hashlib
import logging

import boto3  # pyright: ignore[reportMissingTypeStubs]
from botocore.exceptions import BotoCoreError, ClientError
import httpx
import openai

from domain.errors import GenerationFailed, UpstreamUnavailable


logger = logging.getLogger(__name__)


DEFAULT_MODEL = "dall-e-3"
DEFAULT_SIZE = "1024x1024"


class ImageBucket:
    def __init__(
        self,
        name: str,
        *,
        region: str = "us-west-2",
        s3_client: object | None = None,
    ) -> None:
        self.name = name
        self.region = region
        self.s3 = (
            boto3.client("s3", region_name=region) if s3_client is None else s3_client
        )

    def url(self, image_name: str) -> str:
        return f"https://{self.name}.s3.{self.region}.amazonaws.com/{image_name}"

    async def upload(self, image_name: str, body: bytes) -> str:
        try:
            await asyncio.to_thread(
                self.s3.put_object,  # pyright: ignore[reportUnknownMemberType, reportAttributeAccessIssue]
                Bucket=self.name,
                Key=image_name,
                Body=body,
                ContentType="image/png",
                ACL="public-read",
            )
        except (BotoCoreError, ClientError) as e:
            raise UpstreamUnavailable(f"Could not upload {image_name}: {e!r}") from e
        return self.url(image_name)


def image_name(prompt: str) -> str:
    return f"{hashlib.md5(prompt.encode('utf-8')).hexdigest()}.png"


class ImageGenerator:
    def __init__(
        self,
        *,
        openai_client: openai.AsyncClient | None = None,
        http_client: httpx.AsyncClient | None = None,
        bucket: ImageBucket | None = None,
        model: str = DEFAULT_MODEL,
        size: str = DEFAULT_SIZE,
    ) -> None:
        self._openai_client = openai_client
        self.http_client = (
            httpx.AsyncClient(timeout=60) if http_client is None else http_client
        )
        self.bucket = bucket
        self.model = model
        self.size = size

    @property
    def openai_client(self) -> openai.AsyncClient:
        # openai.AsyncClient() raises when OPENAI_API_KEY is unset.
        if self._openai_client is None:
            self._openai_client = openai.AsyncClient()
        return self._openai_client

    async def generate(self, prompt: str) -> str:
        try:
            resp = await self.openai_client.images.generate(
                model=self.model,
                prompt=prompt,
                n=1,
                size=self.size,  # pyright: ignore[reportArgumentType]
                response_format="url",
            )
        except openai.OpenAIError as e:
            raise UpstreamUnavailable(f"Image generation failed: {e!r}") from e

        url = resp.data[0].url if resp.data else None
        if not url:
            raise GenerationFailed("Invalid response from OpenAI API.")

        if self.bucket is None:
            return url

        name = image_name(prompt)
        logger.info("Re-hosting image as %s", name)
        try:
            image = await self.http_client.get(url)
            image.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Could not download image: {e!r}") from e
        return await self.bucket.upload(name, image.content)

    async def close(self) -> None:
        if self._openai_client is not None:
            await self._openai_client.close()
        await self.http_client.aclose()
