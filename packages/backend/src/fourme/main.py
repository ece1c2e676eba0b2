"""FastAPI application factory.

create_app() returns a configured FastAPI instance. The lifespan
handles startup and shutdown: the database must be reachable and
migrated or the process refuses to start; Redis is optional and only
feeds the rate limiter.

Routers, middleware, CORS, and the 400 validation handler are all
registered here; each concern lives in its own module.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text

from fourme import __version__
from fourme.api import api_router
from fourme.api.health import router as health_router
from fourme.config import settings
from fourme.db.engine import engine
from fourme.db.migrate import upgrade_database
from fourme.middleware.rate_limit import (
    RateLimitMiddleware,
    close_redis,
    init_redis,
)
from fourme.middleware.request_id import RequestIdMiddleware
from fourme.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` at shutdown.
    A database or migration failure propagates and aborts startup.
    """
    logger.info(
        "fourme.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("fourme.database_connected")

    if settings.auto_migrate:
        await asyncio.to_thread(upgrade_database, settings.database_url)
        logger.info("fourme.migrations_applied")

    try:
        await init_redis()
        logger.info("fourme.redis_connected", url=settings.redis_url)
    except (RedisError, OSError) as e:
        # Redis is optional; only rate limiting needs it
        logger.warning("fourme.redis_unavailable", error=str(e))

    yield

    logger.info("fourme.shutdown")
    await close_redis()
    await engine.dispose()


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed path, query, or body → 400 naming each violated constraint."""
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="4me",
        description="Multi-tenant task boards: projects, boards, tasks, labels, comments",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Starlette runs middleware in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: fourme.main:app)
app = create_app()
