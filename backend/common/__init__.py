"""
Common utilities and shared code for the chatbot analytics gateway.

Modules:
    - config: Centralized configuration management with environment-based settings
    - database: Per-tenant database connection lifecycle (lazy connect, cache, teardown)
    - exceptions: Error taxonomy, status mapping and JSON error responses
    - fastapi: FastAPI application factory with common middleware and configuration
    - logging: Centralized logging configuration using loguru
    - tenants: Static tenant registry

Tenant Isolation:
    Every tenant has a dedicated PostgreSQL database and a Grafana organization.
    Requests carry a tenant id which is validated against the registry before any
    data access or dashboard proxying happens.

Usage:
    ```python
    from common.config import get_settings
    from common.database import TenantConnectionManager
    from common.logging import setup_logging
    from common.tenants import build_tenant_registry
    ```
"""

__version__ = "1.0.0"
