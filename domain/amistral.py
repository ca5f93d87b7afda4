import asyncio
import os
from typing import Any

import httpx

from domain.errors import GenerationFailed, UpstreamUnavailable


BASE_URL = "https://api.mistral.ai/v1/"
DEFAULT_MODEL = "mistral-small-latest"
TIMEOUT = 60 * 5


class MistralClient:
    """Chat completions without history; every call stands alone."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self.token = os.environ.get("MISTRAL_API_KEY") if token is None else token
        self.aclient = (
            httpx.AsyncClient(
                base_url=BASE_URL,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=TIMEOUT,
            )
            if client is None
            else client
        )

    def payload(self, prompt: str, system: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }

    async def complete(self, prompt: str, system: str) -> str:
        if not self.token:
            raise UpstreamUnavailable(
                "Mistral API key is not configured. "
                "Please set the MISTRAL_API_KEY environment variable."
            )
        try:
            resp = await self.aclient.post(
                "chat/completions", json=self.payload(prompt, system)
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Mistral API call failed: {e!r}") from e

        data = resp.json()
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise GenerationFailed(
                f"Unexpected response structure from Mistral API. {data}"
            ) from None
        return content or ""

    async def close(self) -> None:
        await self.aclient.aclose()


async def main() -> None:
    cl = MistralClient()

    while True:
        qu = input("Story so far: ")
        if qu.lower() in ("q", "quit", "exit"):
            break
        ans = await cl.complete(qu, "Continue the story.")
        print(ans)

    await cl.close()


if __name__ == "__main__":
    from rich import print

    asyncio.run(main())
