from fastapi import APIRouter

from services.analytics_gateway.api.v1.endpoints import clients, dashboard, metrics

# Mounted under API_PREFIX (/api)
api_router = APIRouter()
api_router.include_router(metrics.router, tags=["analytics"])

# Mounted at the application root
root_router = APIRouter()
root_router.include_router(clients.router, tags=["clients"])
root_router.include_router(dashboard.router, tags=["dashboard"])
