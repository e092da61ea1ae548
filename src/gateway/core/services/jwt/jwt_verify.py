"""Verification of Azure AD access tokens presented to the gateway."""

from typing import Any

from authlib.jose import JoseError, JsonWebKey, JsonWebToken
from authlib.jose.errors import ExpiredTokenError
from loguru import logger

from src.gateway.core.exceptions import (
    AuthError,
    TokenExpiredError,
    TokenInvalidError,
)
from src.gateway.core.services.jwt.jwks import SigningKeySource
from src.gateway.core.services.jwt.jwt_utils import JwtPreview, preview_jwt
from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config


class TokenVerificationService:
    def __init__(self, key_source: SigningKeySource, config: ConfigData | None = None):
        self._key_source = key_source
        self._config = config

    @property
    def config(self) -> ConfigData:
        return self._config or get_config()

    async def verify_access_token(
        self, token: str, *, preview: JwtPreview | None = None
    ) -> dict[str, Any] | None:
        """Verify signature, issuer, audience and expiry of a tenant-issued token.

        Returns:
            The decoded claims, or None when the tenant or backend app id is not
            configured (distinct from a bad token).

        Raises:
            TokenExpiredError: ``exp`` is in the past, beyond the allowed skew.
            TokenInvalidError: any other verification failure.
        """
        cfg = self.config
        ad = cfg.azure_ad
        if not ad.tenant_id or not ad.server_app_id:
            logger.warning("Token verification skipped: tenant or backend app id missing")
            return None

        pv = preview or preview_jwt(token)

        # alg allowlist, checked before any key material is touched
        if not isinstance(pv.alg, str) or pv.alg not in cfg.jwt.allowed_algorithms:
            raise TokenInvalidError("Disallowed JWT algorithm")
        if not isinstance(pv.kid, str) or not pv.kid:
            raise TokenInvalidError("Missing or malformed kid header")

        jwk = await self._key_source.get_key(pv.kid)
        try:
            verification_key = JsonWebKey.import_key_set({"keys": [jwk]})
        except (JoseError, ValueError) as exc:
            raise TokenInvalidError("Unusable signing key") from exc

        claims_options = {
            "iss": {"essential": True, "values": ad.accepted_issuers},
            "aud": {"essential": True, "values": ad.accepted_audiences},
            "exp": {"essential": True},
        }
        logger.debug(
            f"Verifying JWT from issuers {ad.accepted_issuers} with audiences {ad.accepted_audiences}"
        )

        decoder = JsonWebToken(cfg.jwt.allowed_algorithms)
        try:
            claims = decoder.decode(token, verification_key, claims_options=claims_options)
            claims.validate(leeway=cfg.jwt.clock_skew)
        except ExpiredTokenError as exc:
            raise TokenExpiredError("Token expired") from exc
        except AuthError:
            raise
        except (JoseError, ValueError) as exc:
            raise TokenInvalidError(f"JWT error: {exc}") from exc

        return dict(claims)
