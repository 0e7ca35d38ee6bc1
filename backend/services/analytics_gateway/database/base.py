"""
Base Utilities for the Analytics Gateway Database Layer

Constants and row normalization shared by repository implementations.

Constants:
    SERVICE_NAME: The service name used for logging and connection naming
    DEFAULT_DAYS: Default trailing window for per-day statistics
    DEFAULT_HOURLY_DAYS: Default trailing window for the hourly distribution
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

SERVICE_NAME = "analytics-gateway"

DEFAULT_DAYS = 30
DEFAULT_HOURLY_DAYS = 7


def normalize_value(value: Any) -> Any:
    # ROUND(...::numeric) comes back as Decimal
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def normalize_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert driver-specific values (Decimal, date) into JSON-friendly ones."""
    return [{key: normalize_value(value) for key, value in row.items()} for row in rows]
