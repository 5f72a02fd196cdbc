"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from frishta.api.middleware import RequestIDMiddleware
from frishta.api.router import api_router
from frishta.config import settings
from frishta.database import close_db
from frishta.exceptions import FrishtaError
from frishta.logging import setup_logging
from frishta.services.notifications import notifier

logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking
if settings.sentry_dsn:
    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        send_default_pii=False,
    )
    logger.info("Sentry initialized")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    # Startup: Database initialization is handled by Alembic migrations
    yield
    # Shutdown: let in-flight emails finish before closing the pool
    await notifier.drain()
    await close_db()


app = FastAPI(
    title="Frishta API",
    description="Music app backend: registration, email verification and sessions",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
    openapi_url="/api/openapi.json" if settings.debug_enabled else None,
)


@app.exception_handler(FrishtaError)
async def frishta_error_handler(_request: Request, exc: FrishtaError) -> JSONResponse:
    """Render domain errors as ``{"detail", "code"}`` with their status code."""
    if exc.status_code >= 500:
        logger.error(f"Request failed: {exc.code}", exc_info=exc)
    return JSONResponse({"detail": exc.message, "code": exc.code}, status_code=exc.status_code)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Store failures outside the registration flow surface as a generic 500."""
    logger.error(f"Record store failure: {exc!r}", exc_info=exc)
    return JSONResponse({"detail": "Server error", "code": "server_error"}, status_code=500)


# Request ID middleware for log correlation
app.add_middleware(RequestIDMiddleware)  # type: ignore[arg-type]

# CORS middleware
app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

# Include API router
app.include_router(api_router, prefix="/api")

# Serve songs and thumbnails
app.mount(
    "/media",
    StaticFiles(directory=Path(settings.media_path), check_dir=False),
    name="media",
)


if __name__ == "__main__":
    import uvicorn

    from frishta.logging import get_uvicorn_log_config

    uvicorn.run(
        "frishta.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=get_uvicorn_log_config(),
    )
