"""
Analytics Gateway - FastAPI Application Entry Point

This module is the entry point of the multi-tenant chatbot analytics gateway. One
process serves every tenant: it runs the analytics queries against each tenant's
own PostgreSQL database and proxies the shared Grafana instance so that every
tenant sees its own dashboards.

The service provides:
    - GET /, /health, /clients: service descriptor, liveness and tenant listing
    - /api/{client_id}/...: per-tenant analytics (funnel, daily, hourly, leads,
      agents, conversations, links, overview, test)
    - /{client_id}/dashboard/... and /dashboard/...: Grafana reverse proxy
      (HTTP and WebSocket)

Architecture:
    Components are created once per application and stored on ``app.state``:
        - tenant_registry: static tenant table
        - connection_manager: lazily connected tenant database engines
        - metrics_repository: analytics queries
        - dashboard_proxy: Grafana transport
    create_gateway_app() accepts replacements for each of them, which is how the
    test suite runs the full HTTP surface without databases or Grafana.

Lifecycle:
    Tenant databases are connected on first use, never at startup. On shutdown
    every tenant connection is released and the Grafana client is closed.

Example:
    To run the service locally:
        ```bash
        uvicorn services.analytics_gateway:app --port 3001 --reload
        ```

    Or through the console script:
        ```bash
        analytics-gateway
        ```
"""

from fastapi import FastAPI
from loguru import logger

from common.config import AnalyticsGatewaySettings, get_settings
from common.database import TenantConnectionManager
from common.fastapi import create_fastapi_app
from common.tenants import TenantRegistry, build_tenant_registry
from services.analytics_gateway.api.v1.api import api_router, root_router
from services.analytics_gateway.database.base import SERVICE_NAME
from services.analytics_gateway.database.metrics_repository import MetricsRepository
from services.analytics_gateway.services.dashboard_proxy import DashboardProxy


def create_gateway_app(
    settings: AnalyticsGatewaySettings | None = None,
    registry: TenantRegistry | None = None,
    connection_manager: TenantConnectionManager | None = None,
    dashboard_proxy: DashboardProxy | None = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Gateway settings; loaded from the environment when omitted.
        registry: Tenant registry; built from the static tenant table when omitted.
        connection_manager: Tenant connection manager; a new one over
            ``registry`` when omitted.
        dashboard_proxy: Grafana proxy; created from settings when omitted.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings(SERVICE_NAME)
    registry = registry or build_tenant_registry()
    connection_manager = connection_manager or TenantConnectionManager(registry, settings)
    dashboard_proxy = dashboard_proxy or DashboardProxy.from_settings(settings)

    def setup_gateway(app: FastAPI, settings: AnalyticsGatewaySettings) -> None:
        app.state.tenant_registry = registry
        app.state.connection_manager = connection_manager
        app.state.metrics_repository = MetricsRepository(connection_manager, registry)
        app.state.dashboard_proxy = dashboard_proxy

        app.include_router(root_router)

        @app.on_event("startup")
        async def log_startup() -> None:
            logger.info(f"{settings.SERVICE_NAME} v{settings.SERVICE_VERSION} starting on port {settings.PORT}")
            logger.info(f"Environment: {settings.ENVIRONMENT}")
            logger.info(f"Available clients: {', '.join(registry.list_ids())}")
            logger.info(f"Grafana upstream: {settings.GRAFANA_URL}")
            if settings.is_development:
                base_url = f"http://localhost:{settings.PORT}"
                for tenant_id in registry.list_ids():
                    logger.info(f"  {tenant_id}: {base_url}{settings.API_PREFIX}/{tenant_id}/overview")
                    logger.info(f"  {tenant_id}: {base_url}/{tenant_id}/dashboard")

        @app.on_event("shutdown")
        async def release_resources() -> None:
            logger.info("Shutting down, closing tenant connections")
            errors = await connection_manager.release_all()
            if errors:
                logger.warning(f"Failed to close connections for: {', '.join(errors)}")
            await dashboard_proxy.aclose()

    return create_fastapi_app(
        service_name=SERVICE_NAME,
        description="Multi-client analytics platform for chatbot services",
        api_router=api_router,
        additional_setup=setup_gateway,
        settings=settings,
    )


app = create_gateway_app()


def run() -> None:
    """Console entry point: serve the gateway with uvicorn."""
    import uvicorn

    settings = get_settings(SERVICE_NAME)
    uvicorn.run(
        "services.analytics_gateway.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
