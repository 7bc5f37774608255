"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from questline.achievements.router import router as achievements_router
from questline.config import get_settings
from questline.database import close_db, create_schema, init_db
from questline.health.router import router as health_router
from questline.middleware import setup_middleware
from questline.progress.router import router as progress_router
from questline.quests.router import router as quests_router
from questline.redis_client import close_redis, init_redis
from questline.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.auto_create_schema:
        await create_schema()
        logger.info("Database schema ensured from ORM metadata")
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Questline API",
        description="Quest progress, XP and achievements for wallet-identified learners",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(quests_router)
    app.include_router(progress_router)
    app.include_router(users_router)
    app.include_router(achievements_router)

    return app


app = create_app()
