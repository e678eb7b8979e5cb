"""Unit tests for admin API key authentication."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from gallery.core.auth import parse_api_keys, validate_api_key
from gallery.core.config import SecuritySettings
from gallery.core.errors import AuthenticationAppError


def _security(keys: str | None = "valid-key-1,valid-key-2", required: bool = True) -> SecuritySettings:
    return SecuritySettings(admin_api_keys=keys, admin_api_key_required=required)


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_single_key(self) -> None:
        assert parse_api_keys("my-secret-key") == {"my-secret-key"}

    def test_parse_multiple_keys_with_whitespace(self) -> None:
        """Test that whitespace is trimmed from keys."""
        assert parse_api_keys("key1 , key2  ,  key3") == {"key1", "key2", "key3"}

    @pytest.mark.parametrize("raw", [None, "", "   ,  ,  "])
    def test_parse_empty_values_return_empty_set(self, raw) -> None:
        assert parse_api_keys(raw) == set()

    def test_parse_removes_duplicate_keys(self) -> None:
        assert parse_api_keys("key1,key2,key1,key3,key2") == {"key1", "key2", "key3"}


class TestValidateAPIKey:
    """Test core API key validation logic."""

    def test_validate_bypassed_when_auth_disabled(self) -> None:
        security = _security(required=False)

        # Should not raise even with invalid key
        validate_api_key("any-random-key", security)
        validate_api_key(None, security)

    @pytest.mark.parametrize("keys", [None, "", " , "])
    def test_validate_raises_when_no_keys_configured(self, keys) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key", _security(keys))

        assert exc_info.value.code == "api_keys_not_configured"
        assert "no valid keys are configured" in exc_info.value.message

    def test_validate_accepts_valid_key(self) -> None:
        security = _security()

        validate_api_key("valid-key-1", security)
        validate_api_key("valid-key-2", security)

    def test_validate_rejects_invalid_key(self) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("invalid-key", _security())

        assert exc_info.value.code == "invalid_api_key"
        assert "Invalid or missing API key" in exc_info.value.message

    def test_validate_rejects_missing_key(self) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("", _security())

        assert exc_info.value.code == "missing_api_key"

    def test_validate_handles_non_ascii_key(self) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("clé", _security())

        assert exc_info.value.code == "invalid_api_key"

    def test_configured_keys_are_trimmed_but_provided_key_is_not(self) -> None:
        security = _security(" key1 , key2 , key3 ")

        validate_api_key("key1", security)
        with pytest.raises(AuthenticationAppError):
            validate_api_key(" key1 ", security)


class TestAdminRoutes:
    """Admin routes are guarded by the verify_api_key dependency."""

    def test_missing_header_is_403(self, client: TestClient) -> None:
        response = client.post("/api/admin/posts", json={"title": "x"})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "missing_api_key"

    def test_wrong_key_is_403(self, client: TestClient) -> None:
        response = client.put("/api/admin/theme", json={"site_title": "x"}, headers={"X-API-Key": "nope"})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "invalid_api_key"

    def test_valid_key_is_accepted(self, client: TestClient, admin_headers: dict) -> None:
        response = client.post("/api/admin/posts", json={"title": "x"}, headers=admin_headers)

        assert response.status_code == 201
        assert response.json()["post"]["title"] == "x"

    def test_auth_can_be_disabled(self, build_app) -> None:
        client = TestClient(build_app(security=SecuritySettings(admin_api_key_required=False)))

        response = client.post("/api/admin/posts", json={"title": "open"})

        assert response.status_code == 201

    def test_public_routes_need_no_key(self, client: TestClient) -> None:
        assert client.get("/api/posts").status_code == 200
        assert client.get("/api/theme").status_code == 200

    def test_openapi_marks_only_admin_routes_as_secured(self, client: TestClient) -> None:
        paths = client.get("/openapi.json").json()["paths"]

        assert paths["/api/admin/posts"]["post"]["security"] == [{"ApiKeyAuth": []}]
        assert "security" not in paths["/api/posts"]["get"]


def test_verify_dependency_uses_context_settings() -> None:
    from types import SimpleNamespace

    from gallery.core.auth import verify_api_key

    context = SimpleNamespace(settings=SimpleNamespace(security=_security()))

    asyncio.run(verify_api_key(x_api_key="valid-key-1", context=context))
    with pytest.raises(AuthenticationAppError):
        asyncio.run(verify_api_key(x_api_key="wrong", context=context))
