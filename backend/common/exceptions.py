"""
Standardized error handling for gateway API responses.

This module defines the gateway's error taxonomy and the single place where error
kinds are mapped to HTTP status codes and JSON bodies. Every error response is a
JSON object with at least an ``error`` field (machine-readable category) and a
``message`` field (human-readable).

Taxonomy:
    - MissingTenantError: no tenant id supplied where one is required (400)
    - UnknownTenantError: tenant id is not registered (404)
    - TenantConnectionError: tenant database unreachable or auth failure (500)
    - QueryError: query failed against a live connection (500)
    - UpstreamUnavailableError: visualization upstream unreachable (502)

Architecture:
    Errors carry their context (tenant id, operation, original exception). The
    internal cause is logged for diagnosis but only included in responses when the
    service runs in development mode.

Example:
    ```python
    from common.exceptions import QueryError

    try:
        rows = await connection_manager.query(tenant_id, statement, params)
    except SQLAlchemyError as e:
        raise QueryError(tenant_id, "leads", e) from e
    ```
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.config import BaseServiceSettings

# HTTP Status Code Constants
HTTP_400_BAD_REQUEST = 400
HTTP_404_NOT_FOUND = 404
HTTP_422_UNPROCESSABLE_ENTITY = 422
HTTP_500_INTERNAL_SERVER_ERROR = 500
HTTP_502_BAD_GATEWAY = 502

TENANT_SOURCES = {
    "path": "/api/{clientId}/...",
    "query": "?clientId=...",
    "header": "X-Client-Id",
}

AVAILABLE_ENDPOINTS = {
    "root": "/",
    "health": "/health",
    "clients": "/clients",
    "analytics": "/api/:clientId/*",
    "grafana": "/:clientId/dashboard",
}


class GatewayError(Exception):
    """
    Base exception for errors that are converted to structured HTTP responses.

    Attributes:
        error: Machine-readable error category, returned as the ``error`` field.
        message: Human-readable message safe to expose to clients.
        tenant_id: Tenant the failing request was bound to, if any.
        operation: Name of the operation that failed, if any.
        internal_error: Original exception. Logged, never exposed outside
            development mode.
        extra: Additional fields merged into the response body.
    """

    error = "Gateway error"

    def __init__(
        self,
        message: str,
        *,
        tenant_id: str | None = None,
        operation: str | None = None,
        internal_error: BaseException | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.tenant_id = tenant_id
        self.operation = operation
        self.internal_error = internal_error
        self.extra = extra or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return get_status_code(self)


class MissingTenantError(GatewayError):
    error = "Client ID is required"

    def __init__(self) -> None:
        super().__init__(
            "Please provide client ID via URL parameter, query string, or header",
            extra={"acceptedSources": dict(TENANT_SOURCES)},
        )


class UnknownTenantError(GatewayError):
    error = "Unknown client"

    def __init__(self, tenant_id: str) -> None:
        super().__init__(
            f"Client '{tenant_id}' not found",
            tenant_id=tenant_id,
            extra={"clientId": tenant_id},
        )


class TenantConnectionError(GatewayError):
    """Tenant database could not be reached or the liveness check failed."""

    error = "Database connection failed"

    def __init__(self, tenant_id: str, cause: BaseException | None = None) -> None:
        super().__init__(
            f"Unable to connect to the database for client '{tenant_id}'",
            tenant_id=tenant_id,
            operation="connect",
            internal_error=cause,
        )


class QueryError(GatewayError):
    """A query against a live tenant connection failed."""

    error = "Query failed"

    def __init__(self, tenant_id: str, operation: str, cause: BaseException | None = None) -> None:
        super().__init__(
            f"Failed to retrieve {operation} data for client '{tenant_id}'",
            tenant_id=tenant_id,
            operation=operation,
            internal_error=cause,
        )


class UpstreamUnavailableError(GatewayError):
    """The visualization upstream refused, reset or timed out the connection."""

    error = "Grafana service unavailable"

    def __init__(self, cause: BaseException | None = None, tenant_id: str | None = None) -> None:
        super().__init__(
            "Unable to connect to Grafana dashboard",
            tenant_id=tenant_id,
            operation="proxy",
            internal_error=cause,
        )


ERROR_STATUS_CODES: dict[type[GatewayError], int] = {
    MissingTenantError: HTTP_400_BAD_REQUEST,
    UnknownTenantError: HTTP_404_NOT_FOUND,
    TenantConnectionError: HTTP_500_INTERNAL_SERVER_ERROR,
    QueryError: HTTP_500_INTERNAL_SERVER_ERROR,
    UpstreamUnavailableError: HTTP_502_BAD_GATEWAY,
}


def get_status_code(exc: GatewayError) -> int:
    """Look up the HTTP status for an error, walking its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return HTTP_500_INTERNAL_SERVER_ERROR


def error_body(exc: GatewayError, debug: bool = False) -> dict[str, Any]:
    """
    Build the JSON body for a gateway error.

    Args:
        exc: The error to render.
        debug: When True the internal cause is included as ``detail``.

    Returns:
        Dictionary with ``error``, ``message`` and any extra fields of the error.
    """
    body: dict[str, Any] = {"error": exc.error, "message": exc.message}
    body.update(exc.extra)
    if debug and exc.internal_error is not None:
        body["detail"] = str(exc.internal_error)
    return body


def error_response(exc: GatewayError, debug: bool = False) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc, debug))


def log_gateway_error(exc: GatewayError, request_path: str) -> None:
    context = f"tenant={exc.tenant_id or '-'} operation={exc.operation or '-'} path={request_path}"
    if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        if exc.internal_error is not None:
            logger.opt(exception=exc.internal_error).error(f"{exc.error} ({context}): {exc.internal_error}")
        else:
            logger.error(f"{exc.error} ({context})")
    else:
        logger.warning(f"{exc.error} ({context}): {exc.message}")


def register_exception_handlers(app: FastAPI, settings: BaseServiceSettings) -> None:
    """
    Install the gateway's exception handlers on an application.

    Handlers:
        - GatewayError: status from ERROR_STATUS_CODES, structured body
        - RequestValidationError: 422 with the validation details
        - Starlette HTTPException: 404 lists the known endpoints, other codes
          echo the exception detail
        - Exception: 500 with a generic message (the real message only in
          development mode)
    """
    debug = settings.is_development

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        log_gateway_error(exc, request.url.path)
        return error_response(exc, debug)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "Invalid request parameters",
                "message": "Invalid request parameters. Please check your input.",
                "details": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code == HTTP_404_NOT_FOUND:
            return JSONResponse(
                status_code=HTTP_404_NOT_FOUND,
                content={
                    "error": "Endpoint not found",
                    "message": "The requested resource does not exist",
                    "availableEndpoints": AVAILABLE_ENDPOINTS,
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(
            f"Unhandled exception in {request.method} {request.url.path}: {exc}"
        )
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": str(exc) if debug else "Something went wrong",
            },
        )
