"""
Service Descriptor and Client Listing Endpoints

Endpoints:
    - GET /         Service descriptor with the registered tenant ids
    - GET /clients  Public listing of registered tenants (no connection details)
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request

from common.exceptions import AVAILABLE_ENDPOINTS
from common.tenants import TenantRegistry
from services.analytics_gateway.api.dependencies import get_tenant_registry
from services.analytics_gateway.api.v1.models import ClientListResponse, ClientSummary

router = APIRouter()


@router.get("/", response_model=dict[str, Any])
async def service_descriptor(
    request: Request,
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> dict[str, Any]:
    settings = request.app.state.settings
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "description": request.app.description,
        "availableClients": registry.list_ids(),
        "endpoints": AVAILABLE_ENDPOINTS,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/clients", response_model=ClientListResponse)
async def list_clients(
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> ClientListResponse:
    """
    List every registered tenant.

    Database URLs and other connection details are never included.
    """
    clients = [
        ClientSummary(
            id=tenant.id,
            name=tenant.name,
            domain=tenant.domain,
            grafanaOrgId=tenant.grafana_org_id,
        )
        for tenant in registry.tenants()
    ]
    return ClientListResponse(
        clients=clients,
        total=len(clients),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
