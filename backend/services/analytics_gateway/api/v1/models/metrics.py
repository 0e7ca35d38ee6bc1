"""
Metrics Response Models for API Endpoints

Envelope models shared by the per-tenant analytics endpoints. Row contents are
left as plain dictionaries since every query returns its own column set.

Models:
    - MetricsResponse: ``{"client", "data", "timestamp"}`` envelope
    - ConnectionTestResponse: Result of the connectivity test
"""

from typing import Any

from pydantic import BaseModel


class MetricsResponse(BaseModel):
    """
    Envelope for a metrics query.

    Attributes:
        client: Display name of the tenant.
        data: Result rows (column name -> value).
        timestamp: ISO 8601 time the response was produced (UTC).
    """

    client: str
    data: list[dict[str, Any]]
    timestamp: str


class ConnectionTestResponse(BaseModel):
    status: str
    message: str
    clientId: str
    timestamp: str
