"""
Client (Tenant) Response Models for API Endpoints

This module defines Pydantic models for the public tenant listing. Database
connection targets are never part of these models.

Models:
    - ClientSummary: One registered tenant
    - ClientListResponse: Response of GET /clients

Example:
    ```python
    {
        "clients": [
            {
                "id": "maple",
                "name": "Maple Community",
                "domain": "maplecommunity.com.au",
                "grafanaOrgId": 1
            }
        ],
        "total": 1,
        "timestamp": "2026-01-01T00:00:00+00:00"
    }
    ```
"""

from pydantic import BaseModel


class ClientSummary(BaseModel):
    """
    Public view of a registered tenant.

    Attributes:
        id: Tenant id used in URLs, query strings and the X-Client-Id header.
        name: Display name.
        domain: Website the chatbot is embedded on.
        grafanaOrgId: Grafana organization holding the tenant's dashboards.
    """

    id: str
    name: str
    domain: str
    grafanaOrgId: int


class ClientListResponse(BaseModel):
    clients: list[ClientSummary]
    total: int
    timestamp: str
