import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from tour_admin.api import (
    articles, auth, bookings, database, reviews, seed, tours, translate, uploads, users,
)
from tour_admin.core.context import ServiceContext
from tour_admin.core.rate_limit import limiter
from tour_admin.core.settings import Settings
from tour_admin.middleware.logging import RequestLoggingMiddleware

_KEY_PARAM = re.compile(r'([?&]key=)[^&\s]+')
_GOOGLE_KEY = re.compile(r'(AIza[0-9A-Za-z\-_]{35})')


def _scrub(value):
    if isinstance(value, str):
        # the translate client sends its key as a query param
        return _GOOGLE_KEY.sub("REDACTED", _KEY_PARAM.sub(r"\1REDACTED", value))
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    if isinstance(value, dict):
        return {key: _scrub(item) for key, item in value.items()}
    return value


def redact_api_keys(logger, method_name, event_dict):
    """structlog processor: API keys never reach a rendered log line"""
    return {key: _scrub(value) for key, value in event_dict.items()}


def configure_logging(settings: Settings) -> None:
    # Configure structured logging with JSON output
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_api_keys,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    # structlog handles formatting
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(message)s',
        handlers=handlers,
    )


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info("Starting application...")
    try:
        app.state.context = await ServiceContext.create(settings)
        logger.info("Service context initialized")
    except Exception:
        logger.exception("Failed to initialize service context")
        raise

    yield

    logger.info("Shutting down application...")
    try:
        await app.state.context.close()
        logger.info("Service context closed")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(
        title="Tour Admin API",
        description="Back-office API for tours, articles, bookings, reviews and users",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings

    # Add rate limiter to app state
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Initialize Prometheus metrics instrumentation
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    @app.get("/")
    def health_check():
        return {"status": "API active", "version": "1.0.0"}

    @app.get("/health")
    async def health_check_detailed(request: Request):
        """Detailed health check endpoint"""
        context: ServiceContext = request.app.state.context
        db_health = await context.db.health_check()
        db_status = db_health["status"]
        return {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "version": "1.0.0",
            "components": {
                "database": db_status,
                "translation": "configured" if context.translate_client else "disabled",
                "api": "healthy"
            },
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    prefix = "/api/v1"

    # Include API routers
    app.include_router(auth.router, prefix=prefix)
    app.include_router(tours.router, prefix=prefix)
    app.include_router(articles.router, prefix=prefix)
    app.include_router(bookings.router, prefix=prefix)
    app.include_router(reviews.router, prefix=prefix)
    app.include_router(users.router, prefix=prefix, tags=["users"])
    app.include_router(translate.router, prefix=prefix)
    app.include_router(uploads.router, prefix=prefix)
    app.include_router(seed.router, prefix=prefix)
    app.include_router(database.router, prefix=f"{prefix}/database", tags=["database"])

    app.mount("/media", StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False), name="media")

    return app


app = create_app()
