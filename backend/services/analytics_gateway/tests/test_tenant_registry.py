"""
Tests for the static tenant registry.
"""

import pytest
from pydantic import ValidationError

from common.exceptions import UnknownTenantError
from common.tenants import TenantDescriptor, TenantRegistry, build_tenant_registry


class TestTenantRegistry:
    """Tests for lookup and membership."""

    def test_lookup_returns_descriptor(self, registry):
        """Test that a registered id resolves to its descriptor."""
        tenant = registry.lookup("maple")

        assert tenant.name == "Maple Community Services"
        assert tenant.grafana_org_id == 1
        assert tenant.source_id == "maplecommunity"

    @pytest.mark.parametrize("tenant_id", ["unknown", "MAPLE", "maple ", ""])
    def test_unregistered_ids_do_not_exist(self, registry, tenant_id):
        """Test that exists() is false and lookup() fails for unregistered ids."""
        assert registry.exists(tenant_id) is False

        with pytest.raises(UnknownTenantError) as exc_info:
            registry.lookup(tenant_id)

        assert exc_info.value.status_code == 404
        assert exc_info.value.tenant_id == tenant_id

    def test_none_does_not_exist(self, registry):
        assert registry.exists(None) is False

    def test_list_ids_keeps_registration_order(self, registry):
        assert registry.list_ids() == ["maple", "acme"]
        assert len(registry) == 2

    def test_duplicate_ids_are_rejected(self):
        """Test that two descriptors with the same id cannot be registered."""
        tenant = TenantDescriptor(
            id="maple", name="Maple", grafana_org_id=1, domain="m.test", source_id="m"
        )

        with pytest.raises(ValueError):
            TenantRegistry([tenant, tenant])

    def test_descriptors_are_immutable(self, registry):
        tenant = registry.lookup("maple")

        with pytest.raises(ValidationError):
            tenant.name = "Other"

    def test_database_url_not_in_repr(self, registry):
        assert "secret" not in repr(registry.lookup("maple"))


class TestBuildTenantRegistry:
    """Tests for building the registry from the environment."""

    def test_database_urls_come_from_environment(self):
        """Test that each tenant reads its own database URL variable."""
        registry = build_tenant_registry(
            {"MAPLE_DATABASE_URL": "postgresql://u:p@maple-db/maple"}
        )

        assert registry.list_ids() == ["maple", "client2"]
        assert registry.lookup("maple").database_url == "postgresql://u:p@maple-db/maple"
        assert registry.lookup("client2").database_url is None

    def test_empty_url_is_treated_as_missing(self):
        registry = build_tenant_registry({"MAPLE_DATABASE_URL": ""})

        assert registry.lookup("maple").database_url is None
