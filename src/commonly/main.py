"""FastAPI application factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from commonly.chat.router import router as chat_router
from commonly.config import get_settings
from commonly.database import close_db, init_db
from commonly.health.router import router as health_router
from commonly.middleware import setup_middleware
from commonly.notifications.router import router as notifications_router
from commonly.redis_client import close_redis, init_redis
from commonly.users.router import router as users_router
from commonly.wallet.router import router as wallet_router
from commonly.ws.bridge import PubSubBridge
from commonly.ws.router import router as ws_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)

    bridge: PubSubBridge | None = None
    bridge_task: asyncio.Task | None = None
    redis = init_redis(settings.redis_url)
    if redis is not None:
        bridge = PubSubBridge(redis)
        bridge_task = asyncio.create_task(bridge.start())

    yield

    if bridge is not None and bridge_task is not None:
        await bridge.stop()
        bridge_task.cancel()
        try:
            await bridge_task
        except asyncio.CancelledError:
            pass
    await close_redis()

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Commonly Community API",
        description="Chat, wallet, referral and notification backend for the Commonly marketplace",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(chat_router)
    app.include_router(users_router)
    app.include_router(wallet_router)
    app.include_router(notifications_router)
    app.include_router(ws_router)

    return app


app = create_app()
