"""
Tests for the per-tenant database connection manager.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from common.database import TenantConnectionManager, create_tenant_engine
from common.exceptions import TenantConnectionError, UnknownTenantError
from common.tenants import TenantDescriptor

from conftest import EngineFactory, FakeEngine


class TestAcquire:
    """Tests for lazy connection establishment and caching."""

    @pytest.mark.asyncio
    async def test_first_acquire_connects_and_pings(self, connection_manager, engine_factory):
        """Test that the first acquire creates an engine and verifies it."""
        engine = await connection_manager.acquire("maple")

        assert engine_factory.calls == ["maple"]
        assert engine.pings == 1
        assert connection_manager.is_connected("maple")

    @pytest.mark.asyncio
    async def test_cached_engine_is_reused(self, connection_manager, engine_factory):
        """Test that later acquires return the cached engine without reconnecting."""
        first = await connection_manager.acquire("maple")
        second = await connection_manager.acquire("maple")

        assert first is second
        assert engine_factory.calls == ["maple"]
        assert first.pings == 1

    @pytest.mark.asyncio
    async def test_concurrent_acquires_connect_once(self, registry, settings):
        """Test that N concurrent first acquires establish exactly one connection."""
        factory = EngineFactory(FakeEngine(delay=0.01))
        manager = TenantConnectionManager(registry, settings, engine_factory=factory)

        engines = await asyncio.gather(*(manager.acquire("maple") for _ in range(20)))

        assert factory.calls == ["maple"]
        assert all(engine is engines[0] for engine in engines)

    @pytest.mark.asyncio
    async def test_different_tenants_connect_independently(self, registry, settings):
        """Test that first access of one tenant does not wait on another."""
        slow = FakeEngine(delay=0.3)
        factory = EngineFactory(slow, FakeEngine())
        manager = TenantConnectionManager(registry, settings, engine_factory=factory)

        slow_task = asyncio.ensure_future(manager.acquire("maple"))
        await asyncio.sleep(0)
        await asyncio.wait_for(manager.acquire("acme"), timeout=0.2)

        assert manager.is_connected("acme")
        assert not manager.is_connected("maple")
        await slow_task
        assert sorted(manager.connected_tenants()) == ["acme", "maple"]

    @pytest.mark.asyncio
    async def test_unknown_tenant_raises_without_connecting(self, connection_manager, engine_factory):
        with pytest.raises(UnknownTenantError):
            await connection_manager.acquire("nope")

        assert engine_factory.calls == []


class TestConnectionFailures:
    """Tests that failed attempts are reported and never cached."""

    @pytest.mark.asyncio
    async def test_ping_failure_is_not_cached(self, registry, settings):
        """Test that a failed liveness check leaves no entry and a retry succeeds."""
        broken = FakeEngine(ping_error=OSError("connection refused"))
        healthy = FakeEngine()
        factory = EngineFactory(broken, healthy)
        manager = TenantConnectionManager(registry, settings, engine_factory=factory)

        with pytest.raises(TenantConnectionError) as exc_info:
            await manager.acquire("maple")

        assert exc_info.value.tenant_id == "maple"
        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.internal_error, OSError)
        assert broken.disposed is True
        assert not manager.is_connected("maple")

        engine = await manager.acquire("maple")

        assert engine is healthy
        assert factory.calls == ["maple", "maple"]

    @pytest.mark.asyncio
    async def test_engine_creation_failure(self, registry, settings):
        factory = EngineFactory(error=ValueError("Database URL not configured"))
        manager = TenantConnectionManager(registry, settings, engine_factory=factory)

        with pytest.raises(TenantConnectionError):
            await manager.acquire("maple")

        assert not manager.is_connected("maple")
        assert await manager.acquire("maple") is factory.created[0]

    @pytest.mark.asyncio
    async def test_ping_timeout_raises_connection_error(self, registry, settings):
        """Test that a hanging liveness check is bounded by the connect timeout."""
        settings.DATABASE_CONNECT_TIMEOUT = 0.05
        hanging = FakeEngine(delay=5)
        manager = TenantConnectionManager(
            registry, settings, engine_factory=EngineFactory(hanging)
        )

        with pytest.raises(TenantConnectionError):
            await manager.acquire("maple")

        assert hanging.disposed is True
        assert manager.connected_tenants() == []


class TestRelease:
    """Tests for teardown."""

    @pytest.mark.asyncio
    async def test_release_all_then_acquire_reconnects(self, registry, settings):
        """Test that release_all disposes engines and later acquires start fresh."""
        first, second = FakeEngine(), FakeEngine()
        factory = EngineFactory(first, second)
        manager = TenantConnectionManager(registry, settings, engine_factory=factory)
        await manager.acquire("maple")

        errors = await manager.release_all()

        assert errors == {}
        assert first.disposed is True
        assert manager.connected_tenants() == []

        engine = await manager.acquire("maple")

        assert engine is second
        assert engine.pings == 1

    @pytest.mark.asyncio
    async def test_release_all_collects_close_errors(self, registry, settings):
        """Test that close errors are returned, not raised, and the cache is cleared."""
        factory = EngineFactory(
            FakeEngine(dispose_error=RuntimeError("socket gone")), FakeEngine()
        )
        manager = TenantConnectionManager(registry, settings, engine_factory=factory)
        await manager.acquire("maple")
        await manager.acquire("acme")

        errors = await manager.release_all()

        assert list(errors) == ["maple"]
        assert manager.connected_tenants() == []

    @pytest.mark.asyncio
    async def test_release_all_during_connect_keeps_one_engine(self, registry, settings):
        """Test that an engine finished after release_all is disposed, not cached."""
        slow, fresh = FakeEngine(delay=0.1), FakeEngine()
        factory = EngineFactory(slow, fresh)
        manager = TenantConnectionManager(registry, settings, engine_factory=factory)

        first = asyncio.ensure_future(manager.acquire("maple"))
        await asyncio.sleep(0.01)
        assert await manager.release_all() == {}
        second = asyncio.ensure_future(manager.acquire("maple"))

        with pytest.raises(TenantConnectionError):
            await first
        engine = await second

        assert engine is fresh
        assert slow.disposed is True
        assert fresh.disposed is False
        assert factory.calls == ["maple", "maple"]
        assert manager.connected_tenants() == ["maple"]

    @pytest.mark.asyncio
    async def test_release_during_connect_disposes_engine(self, registry, settings):
        slow = FakeEngine(delay=0.1)
        manager = TenantConnectionManager(registry, settings, engine_factory=EngineFactory(slow))

        pending = asyncio.ensure_future(manager.acquire("maple"))
        await asyncio.sleep(0.01)
        await manager.release("maple")

        with pytest.raises(TenantConnectionError):
            await pending

        assert slow.disposed is True
        assert not manager.is_connected("maple")

    @pytest.mark.asyncio
    async def test_release_all_with_nothing_cached(self, connection_manager):
        assert await connection_manager.release_all() == {}

    @pytest.mark.asyncio
    async def test_release_single_tenant(self, connection_manager):
        engine = await connection_manager.acquire("maple")

        await connection_manager.release("maple")

        assert engine.disposed is True
        assert not connection_manager.is_connected("maple")


class TestQuery:
    """Tests for running statements through the manager."""

    @pytest.mark.asyncio
    async def test_query_returns_rows_as_dicts(self, connection_manager, sample_rows):
        rows = await connection_manager.query(
            "maple", 'SELECT * FROM "Leads" WHERE "clientId" = :source_id', {"source_id": "x"}
        )

        assert rows == sample_rows

    @pytest.mark.asyncio
    async def test_query_errors_propagate(self, registry, settings):
        error = OperationalError("SELECT", {}, Exception("relation missing"))
        manager = TenantConnectionManager(
            registry, settings, engine_factory=EngineFactory(FakeEngine(fail_with=error))
        )

        with pytest.raises(OperationalError):
            await manager.query("maple", "SELECT broken")


class TestCreateTenantEngine:
    """Tests for engine construction from tenant URLs."""

    def test_missing_url_raises(self, settings):
        tenant = TenantDescriptor(
            id="empty", name="Empty", grafana_org_id=9, domain="e.test", source_id="e"
        )

        with pytest.raises(ValueError):
            create_tenant_engine(tenant, settings)

    def test_url_is_rewritten_to_asyncpg(self, settings):
        """Test that postgres URLs use the asyncpg driver and drop sslmode."""
        tenant = TenantDescriptor(
            id="maple",
            name="Maple",
            database_url="postgresql://user:pw@db.test:5432/maple?sslmode=require",
            grafana_org_id=1,
            domain="m.test",
            source_id="m",
        )

        engine = create_tenant_engine(tenant, settings)

        assert engine.url.drivername == "postgresql+asyncpg"
        assert engine.url.database == "maple"
        assert "sslmode" not in engine.url.query
