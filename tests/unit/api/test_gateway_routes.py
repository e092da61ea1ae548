"""Unit tests for the HTTP surface: health, budget and the LLM proxy."""

import gzip
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from src.gateway.api.http.app import app
from tests.fixtures.core import CREDENTIALS_URL, LLM_URL

KEY_INFO = f"{CREDENTIALS_URL}/key/info"
KEY_GENERATE = f"{CREDENTIALS_URL}/key/generate"


@pytest.fixture
def client(app_dependencies):
    app.state.app_dependencies = app_dependencies
    yield TestClient(app)
    del app.state.app_dependencies


@pytest.fixture
def existing_credential(fake_upstream):
    fake_upstream.route(
        "GET",
        KEY_INFO,
        json={
            "key": "sk-user",
            "info": {
                "key_alias": "jack@org.com",
                "spend": 0.42,
                "max_budget": 1.0,
                "budget_duration": "1mo",
                "budget_reset_at": "2025-02-01T00:00:00Z",
            },
        },
    )
    return fake_upstream


@pytest.fixture
def auth_headers(token_factory):
    return {"Authorization": f"Bearer {token_factory(email='jack@org.com')}"}


class TestHealth:
    def test_liveness(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_when_configured(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["checks"]["azure_ad"]["status"] == "configured"

    def test_not_ready_in_production_without_credential_service(self, client, gateway_config):
        gateway_config.app.environment = "production"
        gateway_config.credentials.base_url = ""

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["credential_service"]["status"] == "missing"


class TestBudget:
    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_returns_budget_of_callers_credential(
        self, client, existing_credential, auth_headers, method
    ):
        response = client.request(method, "/api/budget", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "key_alias": "jack@org.com",
            "spend": 0.42,
            "max_budget": 1.0,
            "budget_duration": "1mo",
            "budget_reset_at": "2025-02-01T00:00:00Z",
        }

    def test_rejection_is_structured_401(self, client):
        response = client.get("/api/budget")

        assert response.status_code == 401
        assert response.json() == {"error": True, "msg": "missing authorization header"}


class TestOpenAIProxy:
    def test_forwards_with_provisioned_key(
        self, client, fake_upstream, existing_credential, auth_headers
    ):
        def completions(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer sk-user"
            assert request.headers["OpenAI-Organization"] == "org-test"
            assert request.headers["Cache-Control"] == "no-store"
            assert "x-custom" not in request.headers
            assert json.loads(request.content) == {"model": "gpt-4o", "messages": []}
            return httpx.Response(
                200,
                json={"id": "chatcmpl-1"},
                headers={"www-authenticate": "Bearer realm=openai"},
            )

        fake_upstream.route("POST", f"{LLM_URL}/v1/chat/completions", handler=completions)

        response = client.post(
            "/api/openai/v1/chat/completions",
            headers={**auth_headers, "x-custom": "dropped"},
            json={"model": "gpt-4o", "messages": []},
        )

        assert response.status_code == 200
        assert response.json() == {"id": "chatcmpl-1"}
        assert "www-authenticate" not in response.headers
        assert response.headers["X-Accel-Buffering"] == "no"
        assert response.headers["spend"] == "0.42"
        assert response.headers["budget"] == "1.0"

    def test_preserves_query_and_upstream_status(
        self, client, fake_upstream, existing_credential, auth_headers
    ):
        fake_upstream.route(
            "GET", f"{LLM_URL}/v1/models", status_code=429, json={"error": "rate limited"}
        )

        response = client.get("/api/openai/v1/models?limit=2", headers=auth_headers)

        assert response.status_code == 429
        (call,) = fake_upstream.calls("GET", f"{LLM_URL}/v1/models")
        assert call.url.params["limit"] == "2"

    def test_decodes_and_drops_content_encoding(
        self, client, fake_upstream, existing_credential, auth_headers
    ):
        body = b'{"object": "list"}'
        fake_upstream.route(
            "GET",
            f"{LLM_URL}/v1/models",
            handler=lambda request: httpx.Response(
                200, content=gzip.compress(body), headers={"content-encoding": "gzip"}
            ),
        )

        response = client.get("/api/openai/v1/models", headers=auth_headers)

        assert response.content == body
        assert "content-encoding" not in response.headers

    def test_unauthorized_request_never_reaches_upstream(
        self, client, fake_upstream, token_factory
    ):
        token = token_factory(email="jack@org.com", aud="api://other-app")

        response = client.post(
            "/api/openai/v1/chat/completions",
            headers={"Authorization": f"Bearer {token}"},
            json={},
        )

        assert response.status_code == 401
        assert response.json() == {"error": True, "msg": "Invalid token"}
        assert fake_upstream.calls("POST", f"{LLM_URL}/v1/chat/completions") == []

    def test_upstream_unreachable_is_502(
        self, client, fake_upstream, existing_credential, auth_headers
    ):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake_upstream.route("POST", f"{LLM_URL}/v1/chat/completions", handler=refuse)

        response = client.post(
            "/api/openai/v1/chat/completions", headers=auth_headers, json={}
        )

        assert response.status_code == 502
        assert response.json()["error"] is True
