"""
Tests for the error taxonomy and response formatting.
"""

import pytest

from common.exceptions import (
    ERROR_STATUS_CODES,
    GatewayError,
    MissingTenantError,
    QueryError,
    TenantConnectionError,
    UnknownTenantError,
    UpstreamUnavailableError,
    error_body,
    get_status_code,
)


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (MissingTenantError(), 400),
            (UnknownTenantError("nobody"), 404),
            (TenantConnectionError("maple"), 500),
            (QueryError("maple", "leads"), 500),
            (UpstreamUnavailableError(), 502),
        ],
    )
    def test_status_codes(self, error, status_code):
        assert error.status_code == status_code

    def test_subclasses_inherit_status(self):
        class SlowUpstreamError(UpstreamUnavailableError):
            pass

        assert get_status_code(SlowUpstreamError()) == 502

    def test_unmapped_errors_are_500(self):
        assert GatewayError("unexpected").status_code == 500
        assert GatewayError not in ERROR_STATUS_CODES


class TestErrorBody:
    def test_internal_error_hidden_outside_development(self):
        """Test that the original cause is only exposed in debug mode."""
        error = QueryError("maple", "leads", RuntimeError('relation "Leads" does not exist'))

        assert error_body(error) == {
            "error": "Query failed",
            "message": "Failed to retrieve leads data for client 'maple'",
        }
        assert error_body(error, debug=True)["detail"] == 'relation "Leads" does not exist'

    def test_extra_fields_are_merged(self):
        body = error_body(UnknownTenantError("nobody"))

        assert body == {
            "error": "Unknown client",
            "message": "Client 'nobody' not found",
            "clientId": "nobody",
        }
