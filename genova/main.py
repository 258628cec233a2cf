# genova/main.py
"""
Genova API application.

``create_app`` wires routers, the error envelope and the background
credential sweep; ``app`` is the ASGI entry point for uvicorn.
"""

import asyncio
from contextlib import asynccontextmanager, suppress
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from . import __version__
from .core.config import settings
from .core.redis import close_redis_client
from .errors import register_error_handlers
from .routes.v1 import (
    attendance as attendance_v1,
    consortiums as consortiums_v1,
    health as health_v1,
    notifications as notifications_v1,
    payments as payments_v1,
    prometheus as prometheus_v1,
    sessions as sessions_v1,
)
from .services.checkin_codes import CheckInCodeStore, get_checkin_code_store

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


async def purge_checkin_codes_forever(store: CheckInCodeStore, interval_seconds: int) -> None:
    """Drop expired check-in credentials every ``interval_seconds``."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = await asyncio.to_thread(store.purge_expired)
            if purged:
                logger.info(f"Purged {purged} expired check-in codes")
        except Exception as exc:
            logger.warning(f"Check-in code sweep failed: {exc}")


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"Genova API {__version__} starting up (environment: {settings.environment})")
    sweep = asyncio.create_task(
        purge_checkin_codes_forever(
            get_checkin_code_store(), settings.checkin_code_sweep_seconds
        )
    )
    try:
        yield
    finally:
        sweep.cancel()
        with suppress(asyncio.CancelledError):
            await sweep
        if settings.checkin_code_backend == "redis":
            close_redis_client()
        logger.info("Genova API shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Genova API",
        description="Tutoring sessions: scheduling, attendance and settlement",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    register_error_handlers(app)

    api = APIRouter(prefix="/api")
    api.include_router(sessions_v1.router, prefix="/sessions")
    api.include_router(attendance_v1.router, prefix="/attendance")
    api.include_router(payments_v1.router, prefix="/payments")
    api.include_router(consortiums_v1.router, prefix="/consortiums")
    api.include_router(notifications_v1.router, prefix="/notifications")
    app.include_router(api)

    app.include_router(health_v1.router)
    app.include_router(prometheus_v1.router)
    return app


app = create_app()
