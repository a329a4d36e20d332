"""
API Tests

Exercises the FastAPI routes with dependency overrides: services are built
against an in-memory database and the scripted upstream.
"""

import time
from unittest.mock import AsyncMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient

from api.app import app
from foundry.analysis.envelope import ResponseEnvelope
from foundry.analysis.serp import SERP_ENDPOINT
from foundry.auth.config import AuthConfig, get_auth_config
from foundry.gateway.cancellation import CancelToken
from foundry.services import GatewayServices, get_services
from foundry.utils.config import Settings

SECRET = "api-test-secret-that-is-long-enough-0123456789"


@pytest.fixture
def services(upstream):
    settings = Settings(
        DATAFORSEO_LOGIN="api@example.com",
        DATAFORSEO_PASSWORD="secret",
        DATABASE_URL="sqlite://",
    )
    return GatewayServices.build(settings, transport=upstream.transport)


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    app.dependency_overrides[get_auth_config] = lambda: AuthConfig(
        supabase_jwt_secret=SECRET,
        jwt_algorithm="HS256",
        auth_enabled=True,
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    now = int(time.time())
    token = jwt.encode(
        {"sub": "user-42", "aud": "authenticated", "exp": now + 3600, "iat": now},
        SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


class TestEnvelopeContract:
    """Every route answers 200 with an envelope."""

    @pytest.mark.parametrize("path", ["/api/competitor-analyze", "/api/serp-analysis", "/api/search-volume"])
    def test_unauthenticated(self, client, path):
        response = client.post(path, json={})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert body["error"]["stage"] == "auth"
        assert body["error"]["code"] == "UNAUTHORIZED"

    def test_bad_token(self, client):
        response = client.post(
            "/api/serp-analysis",
            json={"keyword": "shoes"},
            headers={"Authorization": "Bearer nonsense"},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.parametrize("path,payload", [
        ("/api/competitor-analyze", {"your_domain": "example.com"}),
        ("/api/serp-analysis", {"keyword": ""}),
        ("/api/search-volume", {"keywords": []}),
    ])
    def test_invalid_input(self, client, auth_headers, path, payload):
        response = client.post(path, json=payload, headers=auth_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is False
        assert body["error"]["stage"] == "validation"
        assert body["error"]["code"] == "INVALID_INPUT"

    @pytest.mark.parametrize("payload", [
        {"your_domain": 123, "competitor_domain": "rival.org"},
        {"your_domain": "example.com", "competitor_domain": ["rival.org"]},
    ])
    def test_non_string_domain(self, client, auth_headers, upstream, payload):
        response = client.post("/api/competitor-analyze", json=payload, headers=auth_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is False
        assert body["error"]["code"] == "INVALID_INPUT"
        assert upstream.requests == []

    def test_missing_body(self, client, auth_headers):
        response = client.post("/api/competitor-analyze", headers=auth_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["error"]["code"] == "INVALID_INPUT"


class TestSerpRoute:

    def test_success(self, client, auth_headers, upstream, services):
        upstream.on(SERP_ENDPOINT, upstream.ok([{"items": [
            {"type": "organic", "title": "Shoes", "url": "https://a.com", "domain": "a.com"},
        ]}]))

        response = client.post("/api/serp-analysis", json={"keyword": "shoes"}, headers=auth_headers)

        body = response.json()
        assert body["ok"] is True
        assert body["warnings"] == []
        assert body["data"]["results"][0]["domain"] == "a.com"
        assert services.usage_logger.get_stats()["written"] == 1

    def test_dev_caller_when_auth_disabled(self, client, upstream):
        app.dependency_overrides[get_auth_config] = lambda: AuthConfig(auth_enabled=False)
        upstream.on(SERP_ENDPOINT, upstream.ok([{"items": []}]))

        response = client.post("/api/serp-analysis", json={"keyword": "shoes"})

        assert response.json()["ok"] is True


class TestRequestDeadline:

    def test_handler_passes_live_token(self, client, auth_headers, services):
        analyze = AsyncMock(return_value=ResponseEnvelope.success({"keyword": "shoes"}))

        with patch.object(services.serp, "analyze", analyze):
            response = client.post("/api/serp-analysis", json={"keyword": "shoes"}, headers=auth_headers)

        assert response.json()["ok"] is True
        token = analyze.call_args.kwargs["cancel"]
        assert isinstance(token, CancelToken)
        assert not token.cancelled

    def test_deadline_cancels_retrying_call(self, upstream, auth_headers):
        settings = Settings(
            DATAFORSEO_LOGIN="api@example.com",
            DATAFORSEO_PASSWORD="secret",
            DATABASE_URL="sqlite://",
            REQUEST_DEADLINE_SECONDS=0.05,
        )
        services = GatewayServices.build(settings, transport=upstream.transport)
        app.dependency_overrides[get_services] = lambda: services
        app.dependency_overrides[get_auth_config] = lambda: AuthConfig(
            supabase_jwt_secret=SECRET,
            jwt_algorithm="HS256",
            auth_enabled=True,
        )
        upstream.on(SERP_ENDPOINT, upstream.reply(503))

        try:
            response = TestClient(app).post("/api/serp-analysis", json={"keyword": "shoes"}, headers=auth_headers)
        finally:
            app.dependency_overrides.clear()

        body = response.json()
        assert response.status_code == 200
        assert body["error"]["stage"] == "gateway"
        assert body["error"]["code"] == "CANCELLED"
        assert upstream.calls(SERP_ENDPOINT) == 1


class TestHealth:

    def test_health(self, client, services):
        with patch("api.app.get_services", return_value=services):
            response = client.get("/health")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["dataforseo_configured"] is True
        assert body["cache"]["status"] == "healthy"
