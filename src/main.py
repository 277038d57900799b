"""
FastAPI application entry point.

This module creates and configures the FastAPI application that hosts the
app shell: one session (AuthManager) and one navigation state machine
(Router) per process, driven through the HTTP API.

For local development:
    uvicorn src.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.dependencies import ServiceContainer, build_services
from .api.routes import auth, health, navigation, students
from .config.settings import get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup resolves the initial session and shows the first page;
    shutdown drops the identity subscription.
    """
    settings = get_settings()

    logger.info(
        "TrainerHub API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": settings.mock_modes,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    if app.state.services is None:
        app.state.services = build_services(settings)
    services: ServiceContainer = app.state.services
    await services.start()

    yield

    logger.info("TrainerHub API shutting down")
    await services.stop()


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Application factory.

    Args:
        services: Prebuilt services (tests pass containers wired to the
            in-memory mocks); built from settings at startup when omitted.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        App shell for a personal-training service.

        ## Workflow

        1. **Trainer signup**: `POST /api/v1/auth/signup`
        2. **Pre-register students**: `POST /api/v1/students`
        3. **Student first access**: `POST /api/v1/auth/pending-check`, then
           `POST /api/v1/auth/activate`
        4. **Navigate**: `POST /api/v1/navigation` with a path; role guards
           and redirects apply
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        auth.router,
        prefix="/api/v1/auth",
        tags=["Auth"],
    )

    app.include_router(
        students.router,
        prefix="/api/v1/students",
        tags=["Students"],
    )

    app.include_router(
        navigation.router,
        prefix="/api/v1/navigation",
        tags=["Navigation"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "TrainerHub API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        The full error is logged server-side; clients get a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn imports
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
