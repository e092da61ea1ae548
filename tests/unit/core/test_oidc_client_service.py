"""Unit tests for the on-behalf-of exchange and profile lookup client."""

from urllib.parse import parse_qs

import httpx
import pytest

from src.gateway.core.exceptions import IdentityProviderError
from src.gateway.core.services import OidcClientService
from src.gateway.core.services.oidc_client_service import OBO_GRANT_TYPE
from tests.fixtures.core import SERVER_APP_ID
from tests.utils import sign_token

GRAPH_ME = "https://graph.microsoft.com/v1.0/me"


class TestExchangeOnBehalfOf:
    async def test_posts_obo_assertion(self, oidc_client, fake_upstream, gateway_config):
        token_endpoint = gateway_config.azure_ad.token_endpoint
        fake_upstream.route(
            "POST", token_endpoint, json={"access_token": "delegated", "expires_in": 3600}
        )

        result = await oidc_client.exchange_on_behalf_of("user-token")

        assert result.access_token == "delegated"
        assert result.id_token_claims == {}

        (call,) = fake_upstream.calls("POST", token_endpoint)
        form = parse_qs(call.content.decode())
        assert form["grant_type"] == [OBO_GRANT_TYPE]
        assert form["assertion"] == ["user-token"]
        assert form["client_id"] == [SERVER_APP_ID]
        assert form["client_secret"] == ["server-app-secret"]
        assert form["requested_token_use"] == ["on_behalf_of"]
        scopes = form["scope"][0].split()
        assert "https://graph.microsoft.com/User.Read" in scopes
        assert "openid" in scopes

    async def test_reads_id_token_claims(
        self, oidc_client, fake_upstream, gateway_config, rsa_key_pair
    ):
        id_token = sign_token({"email": "test@org.com"}, rsa_key_pair[0], kid="any")
        fake_upstream.route(
            "POST",
            gateway_config.azure_ad.token_endpoint,
            json={"access_token": "delegated", "id_token": id_token},
        )

        result = await oidc_client.exchange_on_behalf_of("user-token")

        assert result.id_token_claims["email"] == "test@org.com"

    async def test_unreadable_id_token_is_ignored(self, oidc_client, fake_upstream, gateway_config):
        fake_upstream.route(
            "POST",
            gateway_config.azure_ad.token_endpoint,
            json={"access_token": "delegated", "id_token": "garbage"},
        )

        result = await oidc_client.exchange_on_behalf_of("user-token")

        assert result.id_token_claims == {}
        assert result.access_token == "delegated"

    async def test_rejection_raises(self, oidc_client, fake_upstream, gateway_config):
        fake_upstream.route(
            "POST",
            gateway_config.azure_ad.token_endpoint,
            status_code=400,
            json={"error": "invalid_grant"},
        )

        with pytest.raises(IdentityProviderError, match="HTTP 400"):
            await oidc_client.exchange_on_behalf_of("user-token")

    async def test_missing_access_token_raises(self, oidc_client, fake_upstream, gateway_config):
        fake_upstream.route("POST", gateway_config.azure_ad.token_endpoint, json={})

        with pytest.raises(IdentityProviderError):
            await oidc_client.exchange_on_behalf_of("user-token")

    @pytest.mark.parametrize(
        "body", [["x"], "token", 5], ids=["array", "string", "number"]
    )
    async def test_non_object_response_raises(
        self, oidc_client, fake_upstream, gateway_config, body
    ):
        fake_upstream.route("POST", gateway_config.azure_ad.token_endpoint, json=body)

        with pytest.raises(IdentityProviderError):
            await oidc_client.exchange_on_behalf_of("user-token")

    async def test_requires_configuration(self, oidc_client, gateway_config, fake_upstream):
        gateway_config.azure_ad.server_app_secret = ""

        with pytest.raises(IdentityProviderError):
            await oidc_client.exchange_on_behalf_of("user-token")
        assert fake_upstream.requests == []


class TestGetUserProfile:
    async def test_sends_delegated_bearer(self, oidc_client, fake_upstream):
        fake_upstream.route("GET", GRAPH_ME, json={"mail": "m@org.com"})

        profile = await oidc_client.get_user_profile("delegated")

        assert profile == {"mail": "m@org.com"}
        (call,) = fake_upstream.calls("GET", GRAPH_ME)
        assert call.headers["Authorization"] == "Bearer delegated"

    async def test_error_status_raises(self, oidc_client, fake_upstream):
        fake_upstream.route("GET", GRAPH_ME, status_code=401, json={"error": {}})

        with pytest.raises(IdentityProviderError, match="HTTP 401"):
            await oidc_client.get_user_profile("delegated")

    async def test_network_error_raises(self, gateway_config):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = OidcClientService(config=gateway_config, transport=httpx.MockTransport(refuse))

        with pytest.raises(IdentityProviderError):
            await client.get_user_profile("delegated")
