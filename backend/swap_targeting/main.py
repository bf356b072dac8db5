"""Swap Targeting API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map SwapTargetingError -> structured JSON envelope
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup and disposed on shutdown via lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Request context middleware added last so it wraps CORS and every route
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swap_targeting.api.error_handlers import register_error_handlers
from swap_targeting.api.request_context import REQUEST_ID_HEADER, RequestContextMiddleware
from swap_targeting.api.routes import (
    health, target_resolution, targeting_lifecycle, user_targeting,
)
from swap_targeting.config import get_settings
from swap_targeting.infrastructure import database
from swap_targeting.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    database.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("Swap Targeting API started")
    yield
    logger.info("Swap Targeting API shutting down")
    if database.db_manager:
        await database.db_manager.dispose()


app = FastAPI(
    title="Swap Targeting API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)
app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)
app.include_router(targeting_lifecycle.router)
app.include_router(target_resolution.router)
app.include_router(user_targeting.router)

register_error_handlers(app)
