"""
Analytics Gateway Package

This package provides the multi-tenant gateway in front of the chatbot analytics
databases and the shared Grafana instance.

Package Structure:
    - main.py: FastAPI application entry point
    - api/: Tenant resolution dependencies and API endpoints
    - database/: Analytics queries against tenant databases
    - services/: Grafana reverse proxy

Exports:
    app (FastAPI): The application instance, for uvicorn or other ASGI servers.

Usage:
    ```python
    from services.analytics_gateway import app

    # uvicorn services.analytics_gateway:app --port 3001
    ```
"""

from services.analytics_gateway.main import app

__all__ = ["app"]
