"""
Common FastAPI application factory with standard middleware and configuration.

This module provides a factory function for creating FastAPI applications with
consistent configuration, middleware, and error handling.

Features:
    - Automatic logging setup
    - CORS configuration (credentials allowed, origins from settings)
    - Request timing and logging middleware
    - Centralized exception handling (see common.exceptions)
    - Health check endpoint
    - OpenAPI documentation

Middleware:
    - CORS: allowed origins from CORS_ORIGINS / ALLOWED_ORIGINS, any origin when unset
    - Request Timing: Adds X-Process-Time header to all HTTP responses
    - Logging: One line per request with method, path, status and duration

Endpoints:
    - GET /health: Health check endpoint
    - GET /docs: Swagger UI documentation
    - GET /redoc: ReDoc documentation

Usage:
    ```python
    from common.fastapi import create_fastapi_app
    from fastapi import APIRouter

    api_router = APIRouter()

    @api_router.get("/{client_id}/funnel")
    async def funnel(client_id: str):
        return {"data": []}

    app = create_fastapi_app(
        service_name="analytics-gateway",
        description="Analytics gateway API",
        api_router=api_router,
    )
    ```
"""

from collections.abc import Callable
from datetime import datetime, timezone
import time
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from loguru import logger

from common.config import BaseServiceSettings, get_settings
from common.exceptions import register_exception_handlers
from common.logging import setup_logging


def create_fastapi_app(
    service_name: str,
    description: str,
    api_router: APIRouter | None = None,
    additional_setup: Callable[[FastAPI, BaseServiceSettings], None] | None = None,
    settings: BaseServiceSettings | None = None,
) -> FastAPI:
    """
    Create a FastAPI application with standardized configuration and middleware.

    Args:
        service_name: Name of the service (e.g., "analytics-gateway"). Used to load
            settings and configure logging.
        description: Human-readable description of the service, used in OpenAPI
            documentation.
        api_router: Optional APIRouter included under the settings' API_PREFIX
            (empty prefix for settings without one).
        additional_setup: Optional callback for additional application setup,
            called after all standard configuration is complete. Signature:
            `(app: FastAPI, settings: BaseServiceSettings) -> None`
            Useful for adding routers outside the API prefix and startup/shutdown
            handlers.
        settings: Optional settings instance; loaded via get_settings() when omitted.

    Returns:
        Fully configured FastAPI application instance ready to run.

    Side Effects:
        - Configures logging for the service (via setup_logging)
        - Adds middleware and exception handlers to the application
    """
    settings = settings or get_settings(service_name)

    # Setup logging first
    setup_logging(service_name, settings)

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        description=description,
        docs_url="/docs",
        redoc_url="/redoc",
        debug=settings.DEBUG,
    )
    app.state.settings = settings

    # Configure CORS
    # Note: with allow_credentials=True Starlette echoes the request origin
    # instead of "*" when any origin is allowed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(
        request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        """Add process time header to responses and log the request."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        client_host = request.client.host if request.client else "-"
        logger.info(
            f"{request.method} {request.url.path} - {response.status_code} - "
            f"{process_time:.3f}s - {client_host}"
        )
        return response

    register_exception_handlers(app, settings)

    if api_router:
        app.include_router(api_router, prefix=getattr(settings, "API_PREFIX", ""))

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    if additional_setup:
        additional_setup(app, settings)

    return app
