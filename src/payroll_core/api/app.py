"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_core.api.routes import (
    deductions_router,
    health_router,
    logs_router,
    overtime_router,
    payrolls_router,
    periods_router,
)
from payroll_core.collaborators import StaticAuthorizationChecker, StaticCompensationLookup
from payroll_core.config import get_settings
from payroll_core.container import ServiceContainer, build_container
from payroll_core.database import create_engine_from_settings, create_session_factory
from payroll_core.errors import PayrollError

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "CONFIGURATION_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "TRANSIENT_ERROR": status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def default_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build services from the environment when no container was supplied."""
    settings = get_settings()
    engine = create_engine_from_settings(settings)
    logger.warning(
        "Starting with in-memory compensation and authorization collaborators; "
        "pass a ServiceContainer to create_app() to use real ones"
    )
    app.state.container = build_container(
        settings,
        create_session_factory(engine),
        compensation=StaticCompensationLookup(),
        authorization=StaticAuthorizationChecker(),
    )
    yield
    await engine.dispose()


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Core API",
        description="Payroll processing and lifecycle engine",
        version=container.settings.engine_version if container else "1.0.0",
        lifespan=None if container else default_lifespan,
    )
    if container is not None:
        app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map core error kinds to status codes."""
        status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payrolls_router, prefix="/api/v1")
    app.include_router(logs_router, prefix="/api/v1")
    app.include_router(overtime_router, prefix="/api/v1")
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(deductions_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
