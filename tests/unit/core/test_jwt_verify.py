"""Unit tests for local access token verification."""

import time

import pytest

from src.gateway.core.exceptions import (
    SigningKeyUnavailableError,
    TokenExpiredError,
    TokenInvalidError,
)
from src.gateway.core.services import TokenVerificationService
from tests.fixtures.core import SERVER_APP_ID, SIGNING_KID, TENANT_ID
from tests.utils import rsa_signing_key, sign_token, unsigned_token


class TestTokenVerificationService:
    async def test_accepts_sts_issuer_and_uri_audience(self, token_verifier, token_factory):
        token = token_factory(preferred_username="jack@org.com")

        claims = await token_verifier.verify_access_token(token)

        assert claims is not None
        assert claims["preferred_username"] == "jack@org.com"

    async def test_accepts_v2_issuer_and_bare_audience(self, token_verifier, token_factory):
        token = token_factory(
            iss=f"https://login.microsoftonline.com/{TENANT_ID}/v2.0", aud=SERVER_APP_ID
        )

        claims = await token_verifier.verify_access_token(token)

        assert claims is not None
        assert claims["aud"] == SERVER_APP_ID

    async def test_expired_token_raises_expired_kind(self, token_verifier, token_factory):
        now = int(time.time())
        token = token_factory(iat=now - 7200, nbf=now - 7200, exp=now - 3600)

        with pytest.raises(TokenExpiredError):
            await token_verifier.verify_access_token(token)

    async def test_expiry_within_clock_skew_is_accepted(self, token_verifier, token_factory):
        now = int(time.time())
        token = token_factory(iat=now - 600, nbf=now - 600, exp=now - 10)

        assert await token_verifier.verify_access_token(token) is not None

    async def test_rejects_symmetric_algorithm(self, token_verifier, fake_upstream, gateway_config):
        secret = b"shared-secret-long-enough-for-an-hs256-signature"
        now = int(time.time())
        token = sign_token(
            {
                "iss": gateway_config.azure_ad.accepted_issuers[0],
                "aud": SERVER_APP_ID,
                "exp": now + 3600,
                "preferred_username": "mallory@org.com",
            },
            secret,
            kid=SIGNING_KID,
            alg="HS256",
        )

        with pytest.raises(TokenInvalidError) as exc_info:
            await token_verifier.verify_access_token(token)

        assert not isinstance(exc_info.value, TokenExpiredError)
        # rejected before any key material was fetched
        assert fake_upstream.requests == []

    @pytest.mark.parametrize(
        "overrides",
        [
            {"iss": "https://sts.windows.net/another-tenant/"},
            {"aud": "api://some-other-app"},
            {"exp": None},
        ],
        ids=["wrong-issuer", "wrong-audience", "missing-exp"],
    )
    async def test_rejects_bad_claims(self, token_verifier, token_factory, overrides):
        with pytest.raises(TokenInvalidError):
            await token_verifier.verify_access_token(token_factory(**overrides))

    async def test_rejects_signature_from_foreign_key(self, token_verifier, token_factory):
        foreign_pem, _ = rsa_signing_key(SIGNING_KID)
        now = int(time.time())
        forged = sign_token(
            {
                "iss": f"https://sts.windows.net/{TENANT_ID}/",
                "aud": SERVER_APP_ID,
                "exp": now + 3600,
            },
            foreign_pem,
            kid=SIGNING_KID,
        )

        with pytest.raises(TokenInvalidError):
            await token_verifier.verify_access_token(forged)

    async def test_unknown_kid_is_invalid(self, token_verifier, token_factory):
        with pytest.raises(SigningKeyUnavailableError):
            await token_verifier.verify_access_token(token_factory(kid="rotated-away"))

    async def test_garbage_token_is_invalid(self, token_verifier):
        with pytest.raises(TokenInvalidError):
            await token_verifier.verify_access_token("not-a-jwt")

    @pytest.mark.parametrize(
        "header",
        [
            {"alg": "RS256", "kid": {"a": 1}},
            {"alg": "RS256", "kid": 7},
            {"alg": "RS256"},
            {"alg": ["RS256"], "kid": SIGNING_KID},
        ],
        ids=["object-kid", "numeric-kid", "missing-kid", "list-alg"],
    )
    async def test_malformed_header_is_invalid(
        self, token_verifier, gateway_config, fake_upstream, header
    ):
        token = unsigned_token(
            header,
            {"iss": gateway_config.azure_ad.accepted_issuers[0], "aud": SERVER_APP_ID},
        )

        with pytest.raises(TokenInvalidError):
            await token_verifier.verify_access_token(token)

        assert fake_upstream.requests == []

    @pytest.mark.parametrize("missing", ["tenant_id", "server_app_id"])
    async def test_unconfigured_returns_none(
        self, jwks_service, gateway_config, token_factory, fake_upstream, missing
    ):
        token = token_factory()
        setattr(gateway_config.azure_ad, missing, "")
        verifier = TokenVerificationService(jwks_service, config=gateway_config)

        assert await verifier.verify_access_token(token) is None
        assert fake_upstream.requests == []
