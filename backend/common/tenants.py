"""
Static tenant registry for the analytics gateway.

Each tenant (a chatbot client) has its own PostgreSQL database and its own Grafana
organization. The tenant table is defined here and resolved once at process start:
connection targets come from per-tenant environment variables, everything else is
static. Descriptors are immutable and never change while the process runs.

Usage:
    ```python
    from common.tenants import build_tenant_registry

    registry = build_tenant_registry()
    registry.exists("maple")        # True
    registry.lookup("maple").name   # "Maple Community Services"
    registry.list_ids()             # ["maple", "client2"]
    ```
"""

from collections.abc import Iterable, Mapping
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from common.exceptions import UnknownTenantError


class TenantDescriptor(BaseModel):
    """
    Identity, connection target and display metadata of one tenant.

    Attributes:
        id: Unique tenant identifier used in URLs and headers.
        name: Display name.
        database_url: Connection URL of the tenant database. None when the
            environment does not provide one; acquiring a connection then fails.
        grafana_org_id: Grafana organization holding the tenant's dashboards.
        domain: Public domain of the tenant's site.
        timezone: IANA time zone used for day/hour bucketing.
        source_id: Value of the "clientId" column in the tenant's tables.
        branding: Opaque presentation metadata.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    database_url: str | None = Field(default=None, repr=False)
    grafana_org_id: int
    domain: str
    timezone: str = "Australia/Sydney"
    source_id: str
    branding: dict[str, Any] = Field(default_factory=dict)


# Static tenant table: (descriptor fields, env var holding the database URL)
TENANT_DEFINITIONS: tuple[tuple[dict[str, Any], str], ...] = (
    (
        {
            "id": "maple",
            "name": "Maple Community Services",
            "grafana_org_id": 1,
            "domain": "maplecommunity.com.au",
            "timezone": "Australia/Sydney",
            "source_id": "maplecommunity",
            "branding": {
                "primaryColor": "#FDC200",
                "logoUrl": "https://maplecommunity.com.au/logo.png",
            },
        },
        "MAPLE_DATABASE_URL",
    ),
    (
        {
            "id": "client2",
            "name": "Client 2 NDIS Services",
            "grafana_org_id": 2,
            "domain": "client2.com",
            "timezone": "Australia/Sydney",
            "source_id": "client2",
            "branding": {"primaryColor": "#2196F3", "logoUrl": None},
        },
        "CLIENT2_DATABASE_URL",
    ),
)


class TenantRegistry:
    """Read-only lookup table of tenants keyed by id, in registration order."""

    def __init__(self, tenants: Iterable[TenantDescriptor]) -> None:
        self._tenants: dict[str, TenantDescriptor] = {}
        for tenant in tenants:
            if tenant.id in self._tenants:
                msg = f"Duplicate tenant id: {tenant.id}"
                raise ValueError(msg)
            self._tenants[tenant.id] = tenant

    def lookup(self, tenant_id: str) -> TenantDescriptor:
        """
        Return the descriptor for a tenant id.

        Raises:
            UnknownTenantError: If the id is not registered.
        """
        try:
            return self._tenants[tenant_id]
        except (KeyError, TypeError):
            raise UnknownTenantError(str(tenant_id)) from None

    def exists(self, tenant_id: str | None) -> bool:
        if not tenant_id or not isinstance(tenant_id, str):
            return False
        return tenant_id in self._tenants

    def list_ids(self) -> list[str]:
        return list(self._tenants)

    def tenants(self) -> list[TenantDescriptor]:
        return list(self._tenants.values())

    def __len__(self) -> int:
        return len(self._tenants)


def build_tenant_registry(environ: Mapping[str, str] | None = None) -> TenantRegistry:
    """
    Build the registry from the static tenant table.

    Args:
        environ: Mapping to read database URLs from. Defaults to the process
            environment (after loading .env).

    Returns:
        TenantRegistry with one descriptor per entry of TENANT_DEFINITIONS.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    return TenantRegistry(
        TenantDescriptor(**fields, database_url=environ.get(url_env) or None)
        for fields, url_env in TENANT_DEFINITIONS
    )
