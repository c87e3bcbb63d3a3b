"""FastAPI application entry point for the Creator Escrow service.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode),
       start the auto-release sweep.
    2. Running: Serve the booking, payment, dispute and settlement APIs
       at /api/v1/* on a single Uvicorn process.
    3. Shutdown: Stop the sweep, close database and Redis connections.

Run with:
    uv run uvicorn creator_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from creator_escrow.config import get_settings
from creator_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from creator_escrow.infrastructure.database.engine import (
        close_db,
        get_session_factory,
        init_db,
    )

    await init_db()

    # 3. Initialize Redis (optional: idempotency and event fan-out degrade without it)
    from creator_escrow.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))
        await close_redis()

    # 4. Start the auto-release sweep
    from creator_escrow.orchestration.scheduler import start_scheduler, stop_scheduler

    start_scheduler(get_session_factory())

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    stop_scheduler()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Creator Escrow",
        description=(
            "Booking escrow lifecycle, dispute resolution and settlement "
            "ledger for a creator marketplace."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from creator_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from creator_escrow.api.routes.bookings import router as bookings_router
    from creator_escrow.api.routes.disputes import router as disputes_router
    from creator_escrow.api.routes.health import router as health_router
    from creator_escrow.api.routes.payments import router as payments_router
    from creator_escrow.api.routes.settlements import router as settlements_router

    app.include_router(health_router)
    app.include_router(bookings_router)
    app.include_router(payments_router)
    app.include_router(disputes_router)
    app.include_router(settlements_router)

    return app


# The app instance used by Uvicorn
app = create_app()
