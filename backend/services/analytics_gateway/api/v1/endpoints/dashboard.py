"""
Grafana Dashboard Proxy Routes

Two access modes are exposed, each for every HTTP method and for WebSocket
upgrades (Grafana Live):

    - Tenant-scoped: /{client_id}/dashboard[/...]
      Strict resolution. An unknown or missing tenant never reaches Grafana; HTTP
      requests get 400/404 and WebSockets are closed with 1008 (policy violation).
      The tenant segment is removed and X-Client-Id is set on the upstream request.

    - Direct: /dashboard[/...]
      Permissive resolution (clientId query parameter or X-Client-Id header).
      Requests without a registered tenant are forwarded anonymously.

See Also:
    - services.analytics_gateway.services.dashboard_proxy: Routing and transport
"""

from fastapi import APIRouter, Depends, Request, WebSocket
from loguru import logger

from common.exceptions import GatewayError
from services.analytics_gateway.api.dependencies import (
    get_dashboard_proxy,
    optional_tenant,
    optional_websocket_tenant,
    require_tenant,
    resolve_tenant,
)
from services.analytics_gateway.services.dashboard_proxy import DashboardProxy

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]

WS_1008_POLICY_VIOLATION = 1008


@router.api_route("/dashboard", methods=PROXY_METHODS, include_in_schema=False)
@router.api_route("/dashboard/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def direct_dashboard(
    request: Request,
    tenant_id: str | None = Depends(optional_tenant),
    proxy: DashboardProxy = Depends(get_dashboard_proxy),
):
    return await proxy.forward(request, tenant_id)


@router.websocket("/dashboard")
@router.websocket("/dashboard/{path:path}")
async def direct_dashboard_websocket(
    websocket: WebSocket,
    tenant_id: str | None = Depends(optional_websocket_tenant),
    proxy: DashboardProxy = Depends(get_dashboard_proxy),
) -> None:
    await proxy.forward_websocket(websocket, tenant_id)


@router.api_route("/{client_id}/dashboard", methods=PROXY_METHODS, include_in_schema=False)
@router.api_route("/{client_id}/dashboard/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def tenant_dashboard(
    request: Request,
    tenant_id: str = Depends(require_tenant),
    proxy: DashboardProxy = Depends(get_dashboard_proxy),
):
    logger.info(f"Grafana access for client: {tenant_id} - {request.method} {request.url.path}")
    return await proxy.forward(request, tenant_id)


@router.websocket("/{client_id}/dashboard")
@router.websocket("/{client_id}/dashboard/{path:path}")
async def tenant_dashboard_websocket(
    websocket: WebSocket,
    proxy: DashboardProxy = Depends(get_dashboard_proxy),
) -> None:
    try:
        tenant_id = resolve_tenant(websocket, strict=True)
    except GatewayError as e:
        logger.warning(f"Rejected dashboard websocket {websocket.url.path}: {e.message}")
        await websocket.close(code=WS_1008_POLICY_VIOLATION)
        return

    logger.info(f"Grafana websocket for client: {tenant_id} - {websocket.url.path}")
    await proxy.forward_websocket(websocket, tenant_id)
