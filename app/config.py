from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class Config(BaseSettings):
    env: Env = Env.local
    log_level: str = "INFO"
    public_dir: Path = Path("public")
    recipes_dir: Path = Path("data/recipes")

    redis_host: str = "localhost"
    redis_port: int = 6379

    mistral_api_key: str | None = None
    mistral_model: str = "mistral-small-latest"
    openai_image_model: str = "dall-e-3"
    image_size: str = "1024x1024"
    images_bucket: str | None = None
    image_bucket_region: str = "us-west-2"

    recipe_ttl: int = 60 * 60 * 24
    story_ttl: int = 60 * 60 * 24
    segment_ttl: int = 60 * 60
    image_ttl: int = 60 * 60 * 24 * 7

    expansion_paragraphs: int = Field(default=10, ge=5)
    image_stride: int = Field(default=3, ge=1)
    max_concurrent_images: int = Field(default=4, ge=1)

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}"
