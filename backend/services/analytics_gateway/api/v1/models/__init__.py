"""
Response models for analytics gateway API endpoints.
"""

from .clients import ClientListResponse, ClientSummary
from .metrics import ConnectionTestResponse, MetricsResponse

__all__ = [
    "ClientListResponse",
    "ClientSummary",
    "ConnectionTestResponse",
    "MetricsResponse",
]
