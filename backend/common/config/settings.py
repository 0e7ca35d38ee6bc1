"""
Centralized configuration management for the analytics gateway.

This module defines Pydantic Settings classes for managing configuration of the
gateway process. Base settings hold what every service needs (metadata, logging,
CORS); the gateway settings add the visualization upstream and the tenant
database connection parameters.

Configuration Loading:
    Settings are loaded in the following priority order (highest to lowest):
    1. Environment variables
    2. .env file in the project root
    3. Default values defined in the classes

Validation:
    All settings are validated using Pydantic validators to ensure:
    - Type correctness
    - Value constraints (e.g., positive timeouts and pool sizes)
    - Format requirements (e.g., CORS origins parsing)

Settings Hierarchy:
    BaseServiceSettings (base class)
    └── AnalyticsGatewaySettings

Example:
    ```python
    from common.config.settings import AnalyticsGatewaySettings

    settings = AnalyticsGatewaySettings()
    print(settings.SERVICE_NAME)  # "analytics-gateway"
    print(settings.PORT)  # 3001
    print(settings.GRAFANA_URL)  # "http://localhost:3000"
    ```

Environment Variables:
    All settings can be overridden via environment variables. For example:
    - PORT=3001
    - LOG_LEVEL=DEBUG
    - GRAFANA_URL=https://grafana.internal:3000
    - ALLOWED_ORIGINS=http://localhost:3000,https://example.com

    Per-tenant database URLs (MAPLE_DATABASE_URL, CLIENT2_DATABASE_URL, ...) are
    not settings fields; they are resolved by the tenant registry at startup.
"""

from typing import Any

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings

DEVELOPMENT_ENVIRONMENTS = frozenset({"dev", "development", "local"})


class BaseServiceSettings(BaseSettings):
    """
    Base settings class providing common configuration for services.

    Attributes:
        SERVICE_NAME (str): Name identifier for the service.
        SERVICE_VERSION (str): Version string for the service.
        HOST (str): Interface the HTTP server binds to. Default: "0.0.0.0"
        PORT (int): Port number the service listens on. Default: 8000
        ENVIRONMENT (str): Deployment environment. "development" (or "dev") enables
            detailed error messages. Default: "production"
        DEBUG (bool): Enable debug mode. Default: False
        LOG_LEVEL (str): Logging level. Default: "INFO"
        LOG_TO_FILE (bool): Write rotating log files in addition to stdout. Default: True
        LOG_DIR (str): Directory for log files. Default: "logs"
        CORS_ORIGINS (list[str]): Allowed CORS origins. Read from CORS_ORIGINS or
            ALLOWED_ORIGINS. Empty means any origin.

    Note:
        - CORS_ORIGINS can be set as a comma-separated string or a list
        - Variable names are case-sensitive
    """

    # Service Information (defaults)
    SERVICE_NAME: str = "base-service"
    SERVICE_VERSION: str = "0.0.1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Global Configuration
    ENVIRONMENT: str = "production"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True
    LOG_DIR: str = "logs"

    # CORS Configuration
    CORS_ORIGINS: Any = Field(
        default="",
        validation_alias=AliasChoices("CORS_ORIGINS", "ALLOWED_ORIGINS"),
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> list[str]:
        """
        Assemble CORS origins from string or list format.

        Accepts either a comma-separated string
        ("http://localhost:3000,https://example.com") or a list of strings.
        Empty input and unsupported types give an empty list.
        """
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, list):
            return v
        return []

    @property
    def is_development(self) -> bool:
        """True when ENVIRONMENT names a development deployment."""
        return self.ENVIRONMENT.strip().lower() in DEVELOPMENT_ENVIRONMENTS

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"
        populate_by_name = True


class AnalyticsGatewaySettings(BaseServiceSettings):
    """
    Settings configuration for the analytics gateway.

    Inherited Attributes:
        All attributes from BaseServiceSettings are available with these overrides:
        - SERVICE_NAME: "analytics-gateway"
        - SERVICE_VERSION: "1.0.0"
        - PORT: 3001

    Additional Attributes:
        API_PREFIX (str): Prefix for the per-tenant metric routes. Default: "/api"
        GRAFANA_URL (str): Base URL of the shared Grafana instance that dashboard
            traffic is proxied to.
        PROXY_TIMEOUT (float): Read/write timeout for upstream requests, seconds.
        PROXY_CONNECT_TIMEOUT (float): Connect timeout for upstream requests, seconds.
        PROXY_VERIFY_TLS (bool): Verify the upstream TLS certificate.
        DATABASE_CONNECT_TIMEOUT (float): Upper bound for establishing a tenant
            database connection including the liveness ping, seconds.
        DATABASE_POOL_SIZE (int): Connections kept per tenant engine.
        DATABASE_MAX_OVERFLOW (int): Extra connections allowed per tenant engine.
        DATABASE_POOL_RECYCLE (int): Seconds after which pooled connections are recycled.
        DATABASE_SSL (str): asyncpg ssl mode for tenant databases. "disable" turns
            TLS off; any other value is passed through (default "require").

    Example:
        ```python
        settings = AnalyticsGatewaySettings()
        print(settings.GRAFANA_URL)
        print(settings.DATABASE_CONNECT_TIMEOUT)  # 10.0
        ```
    """

    SERVICE_NAME: str = "analytics-gateway"
    SERVICE_VERSION: str = "1.0.0"
    PORT: int = 3001

    # API Configuration
    API_PREFIX: str = "/api"

    # Visualization upstream
    GRAFANA_URL: str = "http://localhost:3000"
    PROXY_TIMEOUT: float = 60.0
    PROXY_CONNECT_TIMEOUT: float = 10.0
    PROXY_VERIFY_TLS: bool = True

    # Tenant database configuration
    DATABASE_CONNECT_TIMEOUT: float = 10.0
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 5
    DATABASE_POOL_RECYCLE: int = 1800
    DATABASE_SSL: str = "require"

    @field_validator(
        "PROXY_TIMEOUT",
        "PROXY_CONNECT_TIMEOUT",
        "DATABASE_CONNECT_TIMEOUT",
        "DATABASE_POOL_SIZE",
        "DATABASE_POOL_RECYCLE",
    )
    @classmethod
    def validate_positive(cls, v: float, info: ValidationInfo) -> float:
        """
        Validate that timeouts and pool sizes are strictly positive.

        Raises:
            ValueError: If the value is zero or negative.
        """
        if v <= 0:
            msg = f"{info.field_name} must be a positive number"
            raise ValueError(msg)
        return v

    @field_validator("DATABASE_MAX_OVERFLOW")
    @classmethod
    def validate_non_negative(cls, v: int, info: ValidationInfo) -> int:
        if v < 0:
            msg = f"{info.field_name} cannot be negative"
            raise ValueError(msg)
        return v

    @field_validator("GRAFANA_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")
