"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ruleflow.actions.dispatcher import create_default_dispatcher
from ruleflow.api.routes import rules, triggers
from ruleflow.core.config import get_settings
from ruleflow.core.exceptions import TriggerError
from ruleflow.core.logging import get_logger, setup_logging
from ruleflow.storage.redis_client import (
    close_redis_pool,
    get_redis,
    init_redis_pool,
    ping_redis,
)
from ruleflow.storage.rule_store import RedisRuleRepository

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    settings = get_settings()

    # Startup
    setup_logging("api")
    logger.info("Starting application", app_name=settings.app_name, version=settings.app_version)

    await init_redis_pool()
    logger.info("Redis connection pool initialized")

    redis = get_redis()
    app.state.dispatcher = create_default_dispatcher(
        redis=redis,
        repository=RedisRuleRepository(redis),
        settings=settings,
    )

    yield

    # Shutdown
    logger.info("Shutting down application")
    await app.state.dispatcher.close()
    await close_redis_pool()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="DSL rule engine with pluggable actions",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(triggers.router, prefix="/api/v1")
    app.include_router(rules.router, prefix="/api/v1")

    # Error response handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        detail = exc.detail
        content = {
            "code": exc.status_code,
            "message": detail if isinstance(detail, str) else "HTTP error",
            "data": None if isinstance(detail, str) else detail,
        }
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "code": 422,
                "message": "Validation error",
                "data": jsonable_errors(exc),
            },
        )

    @app.exception_handler(TriggerError)
    async def trigger_exception_handler(request: Request, exc: TriggerError) -> JSONResponse:
        logger.warning("Trigger rejected", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=400,
            content={
                "code": 400,
                "message": exc.message,
                "data": exc.details or None,
            },
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=500,
            content={
                "code": 500,
                "message": "Internal server error",
                "data": str(exc) if settings.debug else None,
            },
        )

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> JSONResponse:
        """Health check endpoint, including Redis connectivity."""
        redis_ok = await ping_redis()
        return JSONResponse(
            status_code=200 if redis_ok else 503,
            content={
                "status": "ok" if redis_ok else "degraded",
                "version": settings.app_version,
                "redis": "ok" if redis_ok else "unavailable",
            },
        )

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without non-serializable context objects."""
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


# Application instance for uvicorn
app = create_app()
