"""
Shared API Dependencies for the Analytics Gateway

This module provides FastAPI dependency functions shared across endpoints: tenant
resolution and access to the application's components (tenant registry,
metrics repository, dashboard proxy).

Tenant Resolution:
    The tenant id is looked up in three places, first non-empty value wins:
        1. path parameter ``client_id``  (/api/{client_id}/funnel)
        2. query parameter ``clientId``   (?clientId=maple)
        3. header ``X-Client-Id``

    - require_tenant (strict): missing id -> MissingTenantError (400),
      unregistered id -> UnknownTenantError (404)
    - optional_tenant (permissive): never fails; unresolved requests continue
      with no tenant bound

    On success the id is bound to ``request.state.tenant_id``.

Components:
    Components live on ``app.state`` and are created by the application factory,
    so tests can build an app with fakes in their place.

Example:
    ```python
    from fastapi import Depends
    from services.analytics_gateway.api.dependencies import require_tenant

    @router.get("/{client_id}/leads")
    async def leads(tenant_id: str = Depends(require_tenant)):
        ...
    ```
"""

from collections.abc import Callable

from fastapi import Request, WebSocket
from loguru import logger
from starlette.requests import HTTPConnection

from common.exceptions import MissingTenantError, UnknownTenantError
from common.tenants import TenantRegistry
from services.analytics_gateway.database.metrics_repository import MetricsRepository
from services.analytics_gateway.services.dashboard_proxy import DashboardProxy

TENANT_PATH_PARAM = "client_id"
TENANT_QUERY_PARAM = "clientId"
TENANT_HEADER = "X-Client-Id"

TenantExtractor = Callable[[HTTPConnection], str | None]


def tenant_from_path(connection: HTTPConnection) -> str | None:
    return connection.path_params.get(TENANT_PATH_PARAM)


def tenant_from_query(connection: HTTPConnection) -> str | None:
    return connection.query_params.get(TENANT_QUERY_PARAM)


def tenant_from_header(connection: HTTPConnection) -> str | None:
    return connection.headers.get(TENANT_HEADER)


# Precedence order: path beats query beats header
TENANT_EXTRACTORS: tuple[TenantExtractor, ...] = (
    tenant_from_path,
    tenant_from_query,
    tenant_from_header,
)


def extract_tenant_id(
    connection: HTTPConnection,
    extractors: tuple[TenantExtractor, ...] = TENANT_EXTRACTORS,
) -> str | None:
    """Return the first non-empty tenant id candidate, or None."""
    for extractor in extractors:
        value = extractor(connection)
        if value and value.strip():
            return value.strip()
    return None


def get_tenant_registry(connection: HTTPConnection) -> TenantRegistry:
    return connection.app.state.tenant_registry


def get_metrics_repository(request: Request) -> MetricsRepository:
    return request.app.state.metrics_repository


def get_dashboard_proxy(connection: HTTPConnection) -> DashboardProxy:
    return connection.app.state.dashboard_proxy


def resolve_tenant(connection: HTTPConnection, strict: bool) -> str | None:
    """
    Resolve and bind the tenant id for a request or websocket.

    Args:
        connection: Incoming HTTP request or websocket.
        strict: Raise on a missing or unknown tenant instead of passing through.

    Returns:
        The bound tenant id, or None (permissive mode only).

    Raises:
        MissingTenantError: Strict mode and no candidate id was found.
        UnknownTenantError: Strict mode and the candidate is not registered.
    """
    registry = get_tenant_registry(connection)
    tenant_id = extract_tenant_id(connection)

    if tenant_id is None:
        if strict:
            raise MissingTenantError()
        connection.state.tenant_id = None
        return None

    if not registry.exists(tenant_id):
        if strict:
            raise UnknownTenantError(tenant_id)
        logger.debug(f"Ignoring unknown client id '{tenant_id}' on {connection.url.path}")
        connection.state.tenant_id = None
        return None

    connection.state.tenant_id = tenant_id
    return tenant_id


def require_tenant(request: Request) -> str:
    """Strict tenant resolution for HTTP routes."""
    return resolve_tenant(request, strict=True)


def optional_tenant(request: Request) -> str | None:
    """Permissive tenant resolution for HTTP routes."""
    return resolve_tenant(request, strict=False)


def optional_websocket_tenant(websocket: WebSocket) -> str | None:
    """Permissive tenant resolution for websocket routes."""
    return resolve_tenant(websocket, strict=False)
