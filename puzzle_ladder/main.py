import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from puzzle_ladder.api.routes import router
from puzzle_ladder.config import debug_events_enabled, log_level_from_env, settings_from_env
from puzzle_ladder.infra.storage import create_redis_store
from puzzle_ladder.providers.heart_api import HeartApiProvider
from puzzle_ladder.runtime import GameRuntime, build_runtime

# Configure logging
logging.basicConfig(level=log_level_from_env())
logger = logging.getLogger(__name__)


def build_default_runtime() -> GameRuntime:
    settings = settings_from_env()
    return build_runtime(
        store=create_redis_store(),
        provider=HeartApiProvider.from_settings(settings),
        settings=settings,
        debug_events=debug_events_enabled(),
    )


def create_app(runtime: GameRuntime | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        rt = runtime or build_default_runtime()
        app.state.runtime = rt
        rt.restore()
        logger.info("Puzzle ladder ready")
        try:
            yield
        finally:
            await rt.aclose()
            app.state.runtime = None

    app = FastAPI(title="puzzle-ladder", version="0.1.0", lifespan=lifespan)
    app.include_router(router)

    @app.get("/info")
    async def info() -> dict[str, str]:
        return {"name": "puzzle-ladder", "version": "0.1.0"}

    return app


app = create_app()
