"""
Tenant-aware database connection management.

Each tenant owns a dedicated PostgreSQL database. The TenantConnectionManager keeps
one SQLAlchemy AsyncEngine per tenant: created lazily on first use, verified with a
liveness round-trip, cached for the lifetime of the process and disposed on
shutdown.

Concurrency:
    Reads of an already cached engine take no lock. Establishing a connection is
    serialized per tenant id with an asyncio.Lock, so concurrent first requests for
    the same tenant create exactly one engine while other tenants connect in
    parallel. A failed attempt is never cached; the next call starts from scratch.
    An engine that finishes connecting after its tenant was released is disposed
    instead of cached.

Usage:
    ```python
    manager = TenantConnectionManager(registry, settings)

    engine = await manager.acquire("maple")
    rows = await manager.query("maple", 'SELECT COUNT(*) AS n FROM "Leads"')

    await manager.release_all()
    ```
"""

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from common.config import AnalyticsGatewaySettings
from common.exceptions import TenantConnectionError
from common.tenants import TenantDescriptor, TenantRegistry

ASYNC_DRIVER = "postgresql+asyncpg"

EngineFactory = Callable[[TenantDescriptor, AnalyticsGatewaySettings], AsyncEngine]


def create_tenant_engine(
    tenant: TenantDescriptor, settings: AnalyticsGatewaySettings
) -> AsyncEngine:
    """
    Create (but do not connect) the async engine for a tenant database.

    The tenant URL may use any postgres scheme (postgres://, postgresql://,
    postgresql+psycopg2://); it is rewritten to the asyncpg driver. A ``sslmode``
    query argument is translated into asyncpg's ``ssl`` connect argument.

    Raises:
        ValueError: If the tenant has no database URL configured.
    """
    if not tenant.database_url:
        msg = f"Database URL not configured for tenant {tenant.id}"
        raise ValueError(msg)

    url = make_url(tenant.database_url)
    ssl_mode = url.query.get("sslmode", settings.DATABASE_SSL)
    url = url.set(drivername=ASYNC_DRIVER).difference_update_query(["sslmode"])

    connect_args: dict[str, Any] = {
        "timeout": settings.DATABASE_CONNECT_TIMEOUT,
        "server_settings": {"application_name": settings.SERVICE_NAME},
    }
    if ssl_mode and ssl_mode != "disable":
        connect_args["ssl"] = ssl_mode

    return create_async_engine(
        url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_recycle=settings.DATABASE_POOL_RECYCLE,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


async def ping_engine(engine: AsyncEngine) -> None:
    """Run a SELECT 1 round-trip to prove the engine can authenticate and query."""
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))


class TenantConnectionManager:
    """
    Owner of all tenant database engines.

    Attributes:
        registry: Tenant registry used to resolve connection targets.
        settings: Gateway settings (timeouts, pool sizes).
    """

    def __init__(
        self,
        registry: TenantRegistry,
        settings: AnalyticsGatewaySettings,
        engine_factory: EngineFactory = create_tenant_engine,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self._engine_factory = engine_factory
        self._engines: dict[str, AsyncEngine] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._generations: dict[str, int] = {}

    def is_connected(self, tenant_id: str) -> bool:
        return tenant_id in self._engines

    def connected_tenants(self) -> list[str]:
        return list(self._engines)

    async def acquire(self, tenant_id: str) -> AsyncEngine:
        """
        Return the engine for a tenant, establishing it on first use.

        Args:
            tenant_id: A registered tenant id.

        Returns:
            The cached, verified AsyncEngine for the tenant.

        Raises:
            UnknownTenantError: If the tenant is not registered.
            TenantConnectionError: If the engine cannot be created or the
                liveness check fails or times out, or the tenant is released
                while connecting. Nothing is cached.
        """
        engine = self._engines.get(tenant_id)
        if engine is not None:
            return engine

        tenant = self.registry.lookup(tenant_id)
        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        async with lock:
            engine = self._engines.get(tenant_id)
            if engine is not None:
                return engine

            generation = self._generations.get(tenant_id, 0)
            engine = await self._connect(tenant)
            if self._generations.get(tenant_id, 0) != generation:
                # Released while connecting
                await self._dispose_quietly(tenant_id, engine)
                raise TenantConnectionError(
                    tenant_id, RuntimeError("connection released while being established")
                )
            self._engines[tenant_id] = engine
            return engine

    async def _connect(self, tenant: TenantDescriptor) -> AsyncEngine:
        try:
            engine = self._engine_factory(tenant, self.settings)
        except Exception as e:
            logger.error(f"Unable to create database engine for tenant {tenant.id}: {e}")
            raise TenantConnectionError(tenant.id, e) from e

        try:
            await asyncio.wait_for(
                ping_engine(engine), timeout=self.settings.DATABASE_CONNECT_TIMEOUT
            )
        except Exception as e:
            logger.error(f"Unable to connect to database for tenant {tenant.id}: {e!r}")
            await self._dispose_quietly(tenant.id, engine)
            raise TenantConnectionError(tenant.id, e) from e

        logger.info(f"Database connection established for tenant: {tenant.id}")
        return engine

    async def _dispose_quietly(self, tenant_id: str, engine: AsyncEngine) -> None:
        try:
            await engine.dispose()
        except Exception as e:
            logger.warning(f"Error disposing failed engine for tenant {tenant_id}: {e}")

    async def query(
        self,
        tenant_id: str,
        statement: str,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Run a parameterized statement on the tenant's database and return all rows.

        Args:
            tenant_id: A registered tenant id.
            statement: SQL text with named (``:name``) bind parameters.
            params: Values for the bind parameters.

        Returns:
            List of rows as column-name -> value dictionaries.

        Raises:
            TenantConnectionError: If no connection can be established.
            sqlalchemy.exc.SQLAlchemyError: If the statement fails.
        """
        engine = await self.acquire(tenant_id)
        async with engine.connect() as connection:
            result = await connection.execute(text(statement), dict(params or {}))
            return [dict(row) for row in result.mappings().all()]

    def _invalidate(self, tenant_id: str) -> None:
        self._generations[tenant_id] = self._generations.get(tenant_id, 0) + 1

    async def release(self, tenant_id: str) -> None:
        """Dispose one tenant's engine. Later acquire() calls reconnect."""
        self._invalidate(tenant_id)
        engine = self._engines.pop(tenant_id, None)
        if engine is not None:
            await engine.dispose()
            logger.info(f"Database connection closed for tenant: {tenant_id}")

    async def release_all(self) -> dict[str, BaseException]:
        """
        Dispose every cached engine.

        Close errors are logged and collected, never raised. The cache is
        cleared regardless of errors, so later acquire() calls start
        clean. Connections still being established when this runs are disposed
        instead of cached. Calling this with nothing cached is a no-op.

        Returns:
            Mapping of tenant id to the error raised while closing it.
        """
        for tenant_id in set(self._locks) | set(self._engines):
            self._invalidate(tenant_id)

        errors: dict[str, BaseException] = {}
        engines = list(self._engines.items())
        self._engines.clear()
        for tenant_id, engine in engines:
            try:
                await engine.dispose()
                logger.info(f"Database connection closed for tenant: {tenant_id}")
            except Exception as e:
                logger.error(f"Error closing connection for tenant {tenant_id}: {e}")
                errors[tenant_id] = e
        return errors
