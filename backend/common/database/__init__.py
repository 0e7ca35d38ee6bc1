"""
Tenant database connection management.

Each tenant has a dedicated PostgreSQL database. This package owns the lifecycle of
the per-tenant async engines: lazy creation, liveness verification, caching and
teardown.

Usage:
    ```python
    from common.database import TenantConnectionManager

    manager = TenantConnectionManager(registry, settings)
    rows = await manager.query("maple", "SELECT 1 AS ok")
    await manager.release_all()
    ```
"""

from .tenant_session import (
    TenantConnectionManager,
    create_tenant_engine,
    ping_engine,
)

__all__ = [
    "TenantConnectionManager",
    "create_tenant_engine",
    "ping_engine",
]
