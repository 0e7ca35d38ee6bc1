"""
Per-Tenant Analytics API Endpoints

This module exposes the chatbot analytics queries for one tenant at a time. Every
route is tenant-scoped: the ``client_id`` path segment is resolved strictly before
the handler runs, so handlers only ever see a registered tenant.

Endpoints (mounted under /api):
    - GET /{client_id}/funnel         Engagement funnel (optional startDate/endDate)
    - GET /{client_id}/daily          Daily funnel series (days, default 30)
    - GET /{client_id}/hourly         Hour-of-day distribution (days, default 7)
    - GET /{client_id}/leads          Lead capture statistics
    - GET /{client_id}/agents         Human hand-off statistics
    - GET /{client_id}/conversations  Chat message statistics
    - GET /{client_id}/links          Link click statistics
    - GET /{client_id}/overview       All of the above in one response
    - GET /{client_id}/test           Database connectivity test

Response Envelope:
    ``{"client": <display name>, "data": [...], "timestamp": <ISO 8601>}``

Example:
    ```bash
    GET /api/maple/leads?days=14
    ```
"""

from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query

from common.tenants import TenantRegistry
from services.analytics_gateway.api.dependencies import (
    get_metrics_repository,
    get_tenant_registry,
    require_tenant,
)
from services.analytics_gateway.api.v1.models import ConnectionTestResponse, MetricsResponse
from services.analytics_gateway.database.base import DEFAULT_DAYS, DEFAULT_HOURLY_DAYS
from services.analytics_gateway.database.metrics_repository import MetricsRepository

router = APIRouter()

MAX_DAYS = 365


def days_query(default: int) -> Any:
    return Query(default=default, ge=1, le=MAX_DAYS, description="Trailing window in days")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def envelope(client_name: str, data: list[dict[str, Any]]) -> MetricsResponse:
    return MetricsResponse(client=client_name, data=data, timestamp=utc_timestamp())


@router.get("/{client_id}/funnel", response_model=MetricsResponse)
async def get_funnel(
    tenant_id: str = Depends(require_tenant),
    start_date: date | None = Query(default=None, alias="startDate", description="Start date (YYYY-MM-DD)"),
    end_date: date | None = Query(default=None, alias="endDate", description="End date (YYYY-MM-DD), inclusive"),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> MetricsResponse:
    """
    Engagement funnel for a tenant.

    The date range applies only when both startDate and endDate are given;
    otherwise the whole history is aggregated.
    """
    data = await repository.get_user_events_funnel(tenant_id, start_date, end_date)
    return envelope(registry.lookup(tenant_id).name, data)


@router.get("/{client_id}/daily", response_model=MetricsResponse)
async def get_daily(
    tenant_id: str = Depends(require_tenant),
    days: int = days_query(DEFAULT_DAYS),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> MetricsResponse:
    data = await repository.get_daily_user_events(tenant_id, days)
    return envelope(registry.lookup(tenant_id).name, data)


@router.get("/{client_id}/hourly", response_model=MetricsResponse)
async def get_hourly(
    tenant_id: str = Depends(require_tenant),
    days: int = days_query(DEFAULT_HOURLY_DAYS),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> MetricsResponse:
    data = await repository.get_hourly_distribution(tenant_id, days)
    return envelope(registry.lookup(tenant_id).name, data)


@router.get("/{client_id}/leads", response_model=MetricsResponse)
async def get_leads(
    tenant_id: str = Depends(require_tenant),
    days: int = days_query(DEFAULT_DAYS),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> MetricsResponse:
    data = await repository.get_lead_stats(tenant_id, days)
    return envelope(registry.lookup(tenant_id).name, data)


@router.get("/{client_id}/agents", response_model=MetricsResponse)
async def get_agents(
    tenant_id: str = Depends(require_tenant),
    days: int = days_query(DEFAULT_DAYS),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> MetricsResponse:
    data = await repository.get_agent_connection_stats(tenant_id, days)
    return envelope(registry.lookup(tenant_id).name, data)


@router.get("/{client_id}/conversations", response_model=MetricsResponse)
async def get_conversations(
    tenant_id: str = Depends(require_tenant),
    days: int = days_query(DEFAULT_DAYS),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> MetricsResponse:
    data = await repository.get_conversation_stats(tenant_id, days)
    return envelope(registry.lookup(tenant_id).name, data)


@router.get("/{client_id}/links", response_model=MetricsResponse)
async def get_links(
    tenant_id: str = Depends(require_tenant),
    days: int = days_query(DEFAULT_DAYS),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> MetricsResponse:
    data = await repository.get_link_click_stats(tenant_id, days)
    return envelope(registry.lookup(tenant_id).name, data)


@router.get("/{client_id}/overview", response_model=dict[str, Any])
async def get_overview(
    tenant_id: str = Depends(require_tenant),
    days: int = days_query(DEFAULT_DAYS),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> dict[str, Any]:
    """
    Dashboard overview: funnel, leads, agents, conversations and links at once.

    Either every section is returned or the request fails with the error of
    the first failing section.
    """
    overview = await repository.get_dashboard_overview(tenant_id, days)
    return {
        "client": registry.lookup(tenant_id).name,
        **overview,
        "timestamp": utc_timestamp(),
    }


@router.get("/{client_id}/test", response_model=ConnectionTestResponse)
async def test_connection(
    tenant_id: str = Depends(require_tenant),
    registry: TenantRegistry = Depends(get_tenant_registry),
    repository: MetricsRepository = Depends(get_metrics_repository),
) -> ConnectionTestResponse:
    """Connect to the tenant database (or reuse the connection) and report success."""
    await repository.test_connection(tenant_id)
    tenant = registry.lookup(tenant_id)
    return ConnectionTestResponse(
        status="success",
        message=f"Data source connected successfully for {tenant.name}",
        clientId=tenant_id,
        timestamp=utc_timestamp(),
    )
