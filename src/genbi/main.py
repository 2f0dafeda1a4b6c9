"""
GenBI Agent - Main Application.

FastAPI application: asking and deploy modules, background trackers bound to
the application lifespan, feature flags.
"""

import logging
import sys
import traceback
from contextlib import asynccontextmanager
from uuid import UUID, uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from genbi import __version__
from genbi.api.routes.telemetry import router as telemetry_router
from genbi.config import Settings, get_settings
from genbi.deps import ServiceContainer, build_container
from genbi.exceptions import GenBIException
from genbi.modules.asking.router import router as asking_router
from genbi.modules.deploy.router import router as deploy_router
from genbi.schemas import ErrorDetail, ErrorResponse, HealthResponse

logger = logging.getLogger("genbi")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.app_log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the background trackers, reload unfinished work, stop on shutdown."""
    settings: Settings = app.state.settings
    container: ServiceContainer = app.state.container
    logger.info(
        f"Starting GenBI API v{__version__} "
        f"[env={settings.app_env}] "
        f"[features={settings.features.to_dict()}]"
    )
    await container.asking_service.initialize()
    container.start_trackers()
    yield
    logger.info("Shutting down GenBI API")
    await container.stop_trackers()
    await container.aclose()


def _request_id(request: Request) -> UUID | None:
    request_id_str = getattr(request.state, "request_id", None)
    if request_id_str:
        try:
            return UUID(request_id_str)
        except (ValueError, TypeError):
            pass
    return None


def create_app(settings: Settings | None = None, container: ServiceContainer | None = None) -> FastAPI:
    """Build the application. Settings are resolved once here and injected everywhere else."""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="GenBI API",
        description="Conversational SQL generation, previews, charts and answers backed by an external AI service.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.container = container or build_container(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Middleware
    # =========================================================================

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        response = await call_next(request)

        logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code}")
        return response

    # registered last so it runs first
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # =========================================================================
    # Exception Handlers
    # =========================================================================

    @app.exception_handler(GenBIException)
    async def genbi_exception_handler(request: Request, exc: GenBIException):
        """Handle GenBI custom exceptions."""
        logger.warning(f"GenBIException: {exc.code} - {exc.message}")
        body = ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                request_id=_request_id(request),
            )
        )
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception on {request.url.path}")
        logger.error(f"Exception type: {type(exc).__name__}")
        logger.error(f"Exception message: {str(exc)}")
        logger.error(f"Traceback:\n{traceback.format_exc()}")

        body = ErrorResponse(
            error=ErrorDetail(
                code="INTERNAL_ERROR",
                message=str(exc) if settings.app_debug else "An unexpected error occurred",
                request_id=_request_id(request),
            )
        )
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """Health check endpoint."""
        trackers = app.state.container.trackers
        return HealthResponse(
            status="healthy" if all(t.is_started for t in trackers.values()) else "degraded",
            version=__version__,
            features=settings.features.to_dict(),
            app_env=settings.app_env,
            is_production=settings.is_production,
            trackers={name: len(t.get_tasks()) for name, t in trackers.items()},
        )

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint redirect to docs."""
        return {"message": "Welcome to GenBI API", "docs": "/docs"}

    # =========================================================================
    # Register Module Routers
    # =========================================================================

    app.include_router(asking_router)
    app.include_router(deploy_router)
    app.include_router(telemetry_router)

    return app
