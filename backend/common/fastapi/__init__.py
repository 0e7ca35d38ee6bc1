"""
Common FastAPI utilities and middleware.

Main Components:
    - app_factory: FastAPI application factory with standard configuration

Usage:
    ```python
    from common.fastapi import create_fastapi_app

    app = create_fastapi_app(
        service_name="analytics-gateway",
        description="Multi-tenant chatbot analytics gateway",
        api_router=api_router,
    )
    ```
"""
from .app_factory import create_fastapi_app

__all__ = ["create_fastapi_app"]
