"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from nbhd.config import get_settings
from nbhd.database import close_db, get_session_factory, init_db
from nbhd.gamification.badge_service import register_badge_handlers
from nbhd.gamification.events import bus
from nbhd.gamification.router import router as badges_router
from nbhd.gamification.seed import seed_badges
from nbhd.groups.router import router as groups_router
from nbhd.health.router import router as health_router
from nbhd.messaging.direct_router import router as direct_router
from nbhd.middleware import setup_middleware
from nbhd.notifications.router import router as notifications_router
from nbhd.redis_client import close_redis, get_redis, init_redis
from nbhd.social.router import router as social_router
from nbhd.ws.bridge import PubSubBridge
from nbhd.ws.presence import get_presence, set_presence
from nbhd.ws.router import router as ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed badge definitions (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_badges(db)
    except SQLAlchemyError:
        logger.warning("Badge seeding failed (tables may not exist yet)", exc_info=True)

    get_presence()

    # Cross-instance delivery only exists with the redis presence backend
    bridge: PubSubBridge | None = None
    bridge_task: asyncio.Task | None = None
    if settings.presence_backend == "redis":
        bridge = PubSubBridge(get_redis())
        bridge_task = asyncio.create_task(bridge.start())

    yield

    if bridge is not None and bridge_task is not None:
        await bridge.stop()
        bridge_task.cancel()
        try:
            await bridge_task
        except asyncio.CancelledError:
            pass

    set_presence(None)
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Neighborhood Social API",
        description="Messaging, groups, trusted contacts, notifications and badges for neighborhood networks",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    register_badge_handlers(bus)

    app.include_router(health_router, tags=["Health"])
    app.include_router(direct_router)
    app.include_router(groups_router)
    app.include_router(social_router)
    app.include_router(notifications_router)
    app.include_router(badges_router)
    app.include_router(ws_router)

    return app


app = create_app()
