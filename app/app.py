import contextlib
import functools
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from rich.logging import RichHandler
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Mount, Route
from starlette.staticfiles import StaticFiles

from app import config
from domain.amistral import MistralClient
from domain.cache import CacheStore
from domain.errors import (
    GenerationFailed,
    InvalidArgument,
    NotFound,
    StoryError,
    UpstreamUnavailable,
)
from domain.expansion import ExpansionOrchestrator
from domain.illustrations import IllustrationService
from domain.images import ImageBucket, ImageGenerator
from domain.llm_service import LLMService
from domain.repository import RecipeFileRepository
from domain.story import StoryStateManager


logger = logging.getLogger(__name__)


CONFIG = config.Config()


STATUS_CODES: dict[type[StoryError], int] = {
    InvalidArgument: 400,
    NotFound: 404,
    GenerationFailed: 500,
    UpstreamUnavailable: 502,
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def aJSONResponse(route: Callable[..., Awaitable[Any | tuple[Any, int]]]):
    @functools.wraps(route)
    async def wrapper(*args: Any, **kwargs: Any) -> JSONResponse:
        resp = await route(*args, **kwargs)
        if not isinstance(resp, tuple):
            data, code = resp, 200
        else:
            data, code = resp
        return JSONResponse(data, status_code=code)

    return wrapper


async def story_error(request: Request, exc: Exception) -> JSONResponse:
    code = next(
        (c for cls, c in STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    if code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    return JSONResponse({"message": str(exc)}, status_code=code)


def parse_index(value: str | None, name: str) -> int:
    if value is None or not value.strip().isdecimal():
        raise InvalidArgument(f"{name} must be a non-negative integer.")
    return int(value)


@aJSONResponse
async def list_recipes(request: Request) -> list[dict[str, str]]:
    repo: RecipeFileRepository = request.app.state.repo
    recipes = await repo.list()
    return [{"id": r.id, "title": r.title} for r in recipes]


@aJSONResponse
async def recipe_detail(request: Request) -> dict[str, Any]:
    id = request.path_params["id"]
    repo: RecipeFileRepository = request.app.state.repo
    stories: StoryStateManager = request.app.state.stories
    illustrations: IllustrationService = request.app.state.illustrations

    recipe, _ = await repo.get(id)
    story, source = await stories.get_story(id)
    return {
        "id": recipe.id,
        "title": recipe.title,
        "story": story,
        "ingredients": recipe.ingredients,
        "instructions": recipe.instructions,
        "imageUrls": await illustrations.image_urls(id),
        "source": source.value,
    }


@aJSONResponse
async def expand(request: Request) -> dict[str, Any]:
    id = request.path_params["id"]
    orchestrator: ExpansionOrchestrator = request.app.state.orchestrator
    illustrations: IllustrationService = request.app.state.illustrations

    expansion = await orchestrator.expand_story(id)
    return {
        "id": id,
        "expansion": expansion.expansion,
        "story": expansion.story,
        "imageUrls": await illustrations.image_urls(id),
    }


@aJSONResponse
async def continue_story(request: Request) -> dict[str, Any]:
    id = request.path_params["id"]
    context = request.query_params.get("context", "")
    segment_number = parse_index(
        request.query_params.get("segmentNumber"), "segmentNumber"
    )
    orchestrator: ExpansionOrchestrator = request.app.state.orchestrator

    continuation = await orchestrator.continue_story(id, context, segment_number)
    return continuation.to_dict()


@aJSONResponse
async def paragraph_image(request: Request) -> dict[str, str]:
    id = request.path_params["id"]
    index = parse_index(request.path_params["paragraph_index"], "Paragraph index")
    refresh = request.query_params.get("refresh", "").lower() in ("1", "true", "yes")
    illustrations: IllustrationService = request.app.state.illustrations

    url = await illustrations.image_for_paragraph(id, index, force_refresh=refresh)
    return {"imageUrl": url}


@aJSONResponse
async def generate_images(request: Request) -> dict[str, Any]:
    id = request.path_params["id"]
    illustrations: IllustrationService = request.app.state.illustrations

    generated, all_urls = await illustrations.generate_all_images(id)
    return {
        "id": id,
        "generatedImages": [
            {"paragraphIndex": i, "imageUrl": url, "regenerated": True}
            for i, url in generated.items()
        ],
        "allImageUrls": all_urls,
    }


@aJSONResponse
async def health(request: Request) -> dict[str, str]:
    cache: CacheStore = request.app.state.cache
    return {
        "status": "ok",
        "cache": "ok" if await cache.ping() else "unavailable",
    }


def default_llm(cfg: config.Config) -> LLMService:
    bucket = (
        ImageBucket(cfg.images_bucket, region=cfg.image_bucket_region)
        if cfg.images_bucket
        else None
    )
    return LLMService(
        mistral_client=MistralClient(
            model=cfg.mistral_model, token=cfg.mistral_api_key
        ),
        image_generator=ImageGenerator(
            bucket=bucket, model=cfg.openai_image_model, size=cfg.image_size
        ),
    )


def create_app(
    cfg: config.Config | None = None,
    *,
    cache: CacheStore | None = None,
    llm: LLMService | None = None,
) -> Starlette:
    """Build the app. Anything not passed in is created, and closed, here."""
    cfg = CONFIG if cfg is None else cfg

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        configure_logging(cfg.log_level)
        app_cache = CacheStore(url=cfg.redis_url) if cache is None else cache
        app_llm = default_llm(cfg) if llm is None else llm
        if cache is None:
            await app_cache.connect()

        repo = RecipeFileRepository(
            cfg.recipes_dir, cache=app_cache, ttl=cfg.recipe_ttl
        )
        stories = StoryStateManager(
            cache=app_cache, repository=repo, ttl=cfg.story_ttl
        )
        orchestrator = ExpansionOrchestrator(
            cache=app_cache,
            stories=stories,
            llm=app_llm,
            segment_ttl=cfg.segment_ttl,
            expansion_paragraphs=cfg.expansion_paragraphs,
        )
        app.state.cache = app_cache
        app.state.repo = repo
        app.state.stories = stories
        app.state.orchestrator = orchestrator
        app.state.illustrations = IllustrationService(
            cache=app_cache,
            repository=repo,
            stories=stories,
            llm=app_llm,
            ttl=cfg.image_ttl,
            stride=cfg.image_stride,
            max_concurrent=cfg.max_concurrent_images,
        )
        yield
        await orchestrator.drain()
        if llm is None:
            await app_llm.close()
        if cache is None:
            await app_cache.close()

    routes: list[BaseRoute] = [
        Route("/health", health),
        Route("/api/recipes", list_recipes),
        Route("/api/recipe/{id}", recipe_detail),
        Route("/api/recipe/{id}/expand", expand, methods=["POST"]),
        Route("/api/recipe/{id}/continue", continue_story),
        Route("/api/recipe/{id}/image/{paragraph_index}", paragraph_image),
        Route(
            "/api/recipe/{id}/generate-images", generate_images, methods=["POST"]
        ),
    ]
    if cfg.public_dir.is_dir():
        routes.append(Mount("/", StaticFiles(directory=cfg.public_dir, html=True)))

    return Starlette(
        debug=True if cfg.env == config.Env.local else False,
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
            )
        ],
        exception_handlers={StoryError: story_error},
        lifespan=lifespan,
    )


app = create_app()
