"""Identity provider client for the delegated (on-behalf-of) flow and profile lookup."""

from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from src.gateway.core.exceptions import IdentityProviderError, TokenInvalidError
from src.gateway.core.services.jwt.jwt_utils import preview_jwt
from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config

OBO_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
# Requested alongside the resource scopes so the response carries an ID token
OIDC_SCOPES = ("openid", "profile", "offline_access")


class TokenResponse(BaseModel):
    """OAuth2 token endpoint response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 0
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None


class DelegatedTokenResult(BaseModel):
    """Outcome of an on-behalf-of exchange."""

    id_token_claims: dict[str, Any] = Field(default_factory=dict)
    access_token: str | None = None


class OidcClientService:
    def __init__(
        self,
        config: ConfigData | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def config(self) -> ConfigData:
        return self._config or get_config()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.azure_ad.http_timeout_seconds,
            transport=self._transport,
        )

    async def exchange_on_behalf_of(self, user_token: str) -> DelegatedTokenResult:
        """Trade the caller's token for a delegated token scoped to the profile API.

        Args:
            user_token: The bearer token presented to the gateway

        Returns:
            Claims of the returned ID token (empty when none was issued) and the
            delegated access token

        Raises:
            IdentityProviderError: If the token endpoint rejects the exchange or
                cannot be reached
        """
        ad = self.config.azure_ad
        if not ad.is_configured:
            raise IdentityProviderError("Delegated exchange is not configured")

        scopes = [*ad.obo_scopes, *(s for s in OIDC_SCOPES if s not in ad.obo_scopes)]
        token_data = {
            "grant_type": OBO_GRANT_TYPE,
            "client_id": ad.server_app_id,
            "client_secret": ad.server_app_secret,
            "assertion": user_token,
            "scope": " ".join(scopes),
            "requested_token_use": "on_behalf_of",
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            async with self._client() as client:
                response = await client.post(
                    ad.token_endpoint, data=token_data, headers=headers
                )
                response.raise_for_status()
                tokens = TokenResponse.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise IdentityProviderError(
                f"On-behalf-of exchange rejected with HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise IdentityProviderError(f"On-behalf-of exchange failed: {exc}") from exc

        id_token_claims: dict[str, Any] = {}
        if tokens.id_token:
            # Received directly from the token endpoint over TLS; read, not re-verified
            try:
                id_token_claims = preview_jwt(tokens.id_token).claims
            except TokenInvalidError as exc:
                logger.warning(f"Ignoring unreadable ID token from exchange: {exc}")

        return DelegatedTokenResult(
            id_token_claims=id_token_claims, access_token=tokens.access_token
        )

    async def get_user_profile(self, access_token: str) -> dict[str, Any]:
        """Fetch the signed-in user's profile with a delegated access token.

        Raises:
            IdentityProviderError: On a non-success status or transport failure
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with self._client() as client:
                response = await client.get(self.config.azure_ad.graph_me_url, headers=headers)
                response.raise_for_status()
                profile = response.json()
        except httpx.HTTPStatusError as exc:
            raise IdentityProviderError(
                f"Profile lookup failed with HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise IdentityProviderError(f"Profile lookup failed: {exc}") from exc

        if not isinstance(profile, dict):
            raise IdentityProviderError("Profile response is not a JSON object")
        return profile
