"""FastAPI application factory and main entrypoint."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles

from api.config import Settings, get_settings
from api.exceptions import EffectivenessError
from api.logging import setup_logging
from api.sentry import init_sentry

# Initialize logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    init_sentry()
    logger.info(
        "api_starting",
        env=settings.env,
        debug=settings.debug,
        version="0.1.0",
    )

    yield

    # Pooled connections belong to this loop
    from api.database import get_engine

    await get_engine().dispose()
    logger.info("api_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Website Effectiveness Scoring",
        description="Score client and competitor websites on marketing effectiveness",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Middleware (order matters - first added = last executed)
    from api.metrics import MetricsMiddleware
    from api.middleware import LoggingMiddleware, RequestIDMiddleware

    app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # CORS must be last (first to process)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    from api.routers import effectiveness, health

    app.include_router(health.router)
    app.include_router(effectiveness.router)

    mount_screenshots(app, settings)

    return app


def mount_screenshots(app: FastAPI, settings: Settings) -> None:
    """Serve stored screenshots when their base URL is a path on this app."""
    base_url = settings.screenshot_base_url.rstrip("/")
    if not base_url.startswith("/"):
        # Absolute URLs point at external storage or a CDN
        return
    directory = Path(settings.screenshot_dir)
    directory.mkdir(parents=True, exist_ok=True)
    app.mount(base_url, StaticFiles(directory=directory), name="screenshots")


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers."""

    @app.exception_handler(EffectivenessError)
    async def effectiveness_error_handler(
        request: Request, exc: EffectivenessError
    ) -> ORJSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "application_error",
            error_code=exc.code,
            message=exc.message,
            path=request.url.path,
        )
        return ORJSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle Pydantic validation errors."""
        errors = jsonable_encoder(exc.errors())
        first_error = errors[0] if errors else {"msg": "Validation error"}

        logger.warning("validation_error", path=request.url.path, errors=errors)
        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "code": "VALIDATION_ERROR",
                "message": first_error.get("msg", "Validation error"),
                "errors": errors,
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
        """Handle unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )


app = create_app()
