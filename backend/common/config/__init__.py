"""
Centralized configuration management for the analytics gateway.

This module provides a unified interface for accessing configuration settings.
It selects the appropriate settings class based on the service name.

The configuration system uses Pydantic Settings, which automatically loads values from:
    1. Environment variables (highest priority)
    2. .env file in the project root
    3. Default values defined in the settings classes

Example:
    ```python
    from common.config import get_settings

    settings = get_settings("analytics-gateway")
    print(settings.SERVICE_NAME)  # "analytics-gateway"
    print(settings.PORT)  # 3001
    ```
"""

from common.config.settings import AnalyticsGatewaySettings, BaseServiceSettings


def get_settings(service_name: str | None = None) -> BaseServiceSettings:
    """
    Get settings instance for the specified service.

    Args:
        service_name: Name of the service to get settings for. Any name containing
            "gateway" (the default when omitted) returns AnalyticsGatewaySettings;
            other names return BaseServiceSettings.

    Returns:
        Instance of the appropriate settings class.

    Note:
        - Settings are loaded from environment variables and .env file
        - Each call returns a new instance (settings are not cached)
    """
    if service_name is None or "gateway" in service_name.lower():
        return AnalyticsGatewaySettings()
    return BaseServiceSettings()


__all__ = [
    "AnalyticsGatewaySettings",
    "BaseServiceSettings",
    "get_settings",
]
