"""Tests for the greeting application."""

import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from hostgreet.common.models import ResponsePayload
from hostgreet.server.application import (
    build_payload,
    create_app,
    resolve_host_identity,
)
from hostgreet.settings import PayloadSettings


@pytest.fixture
def client():
    """Client for an app whose host is named ``web-1``."""
    return TestClient(create_app(hostname_resolver=lambda: "web-1"))


class TestGreeting:
    """GET requests receive the JSON greeting."""

    def test_get_root(self, client):
        """Test GET / returns the greeting for the host."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"data": "Welcome! web-1", "version": "v3.2"}

    def test_body_is_compact_json_line(self, client):
        """Test the body is one compact JSON document followed by a newline."""
        response = client.get("/")
        assert response.text == '{"data":"Welcome! web-1","version":"v3.2"}\n'

    def test_real_hostname(self):
        """Test the default resolver produces a greeting prefix and version."""
        response = TestClient(create_app()).get("/")
        body = response.json()

        assert response.status_code == 200
        assert body["version"] == "v3.2"
        assert body["data"].startswith("Welcome! ")
        assert isinstance(body["data"], str)

    def test_any_path_is_served(self, client):
        """Test the route is rooted at / and covers every path below it."""
        response = client.get("/some/other/path")
        assert response.status_code == 200
        assert response.json()["data"] == "Welcome! web-1"

    def test_no_docs_routes(self, client):
        """Test the framework's documentation routes are disabled."""
        assert client.get("/docs").json()["data"] == "Welcome! web-1"
        assert client.get("/openapi.json").json()["version"] == "v3.2"


class TestMethodNotAllowed:
    """Every method other than GET is rejected."""

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    def test_rejected_methods(self, client, method):
        """Test non-GET methods get 405 with Allow: GET."""
        response = client.request(method, "/")

        assert response.status_code == 405
        assert response.headers["allow"] == "GET"
        assert response.text == "Method Not Allowed\n"
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        assert response.headers["x-content-type-options"] == "nosniff"

    def test_head_is_rejected(self, client):
        """Test HEAD is not treated as GET."""
        response = client.head("/")
        assert response.status_code == 405
        assert response.headers["allow"] == "GET"

    def test_rejection_does_not_resolve_hostname(self):
        """Test the resolver is not consulted for rejected methods."""
        resolver = MagicMock(return_value="web-1")
        TestClient(create_app(hostname_resolver=resolver)).post("/")
        resolver.assert_not_called()


class TestHostnameFallback:
    """Host name resolution is best effort."""

    def test_failed_resolution_uses_unknown(self, log_messages):
        """Test a failing resolver yields 'unknown' and still answers 200."""
        resolver = MagicMock(side_effect=OSError("name lookup failed"))
        response = TestClient(create_app(hostname_resolver=resolver)).get("/")

        assert response.status_code == 200
        assert response.json()["data"] == "Welcome! unknown"
        assert response.json()["data"].endswith("unknown")
        assert any("failed to read hostname" in m for m in log_messages)

    def test_resolve_host_identity(self):
        """Test the resolver result is returned when it succeeds."""
        assert resolve_host_identity(lambda: "db-2", "unknown") == "db-2"

    def test_resolve_host_identity_fallback(self):
        """Test the fallback is returned on OSError."""
        resolver = MagicMock(side_effect=OSError("boom"))
        assert resolve_host_identity(resolver, "n/a") == "n/a"

    def test_custom_payload_settings(self):
        """Test greeting constants come from the payload settings."""
        settings = PayloadSettings(greeting_prefix="Hi ", version="v9")
        app = create_app(hostname_resolver=lambda: "box", settings=settings)

        body = TestClient(app).get("/").json()
        assert body == {"data": "Hi box", "version": "v9"}


class TestSerializationFailure:
    """Encoding errors are logged, not surfaced."""

    def test_encoding_failure_is_logged(self, client, log_messages):
        """Test a payload that cannot be encoded yields an empty 200 response."""
        broken = MagicMock()
        broken.model_dump_json.side_effect = ValueError("cannot encode")

        with patch("hostgreet.server.application.build_payload", return_value=broken):
            response = client.get("/")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.content == b""
        assert any("failed to write response" in m for m in log_messages)


class TestPayload:
    """Tests for the response payload value."""

    def test_build_payload(self):
        payload = build_payload("web-1", PayloadSettings())
        assert payload == ResponsePayload(data="Welcome! web-1", version="v3.2")

    def test_payload_is_immutable(self):
        payload = build_payload("web-1", PayloadSettings())
        with pytest.raises(ValidationError):
            payload.data = "changed"

    def test_field_order(self):
        payload = build_payload("web-1", PayloadSettings())
        assert list(json.loads(payload.model_dump_json())) == ["data", "version"]
