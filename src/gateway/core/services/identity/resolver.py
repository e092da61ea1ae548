"""Resolution of a bearer token to a single user identity.

Strategies run strictly in order and the first one that yields an identity
wins. Only the first strategy is a security check; the later ones enrich a
token that is already verified and never abort the chain on failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from src.gateway.core.exceptions import (
    IdentityProviderError,
    TokenExpiredError,
    TokenInvalidError,
    VerifierNotConfiguredError,
)
from src.gateway.core.services.jwt.jwt_utils import first_identity_claim
from src.gateway.core.services.jwt.jwt_verify import TokenVerificationService
from src.gateway.core.services.oidc_client_service import (
    DelegatedTokenResult,
    OidcClientService,
)
from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config

# Profile fields, mailbox address first
PROFILE_IDENTITY_FIELDS = ("mail", "userPrincipalName")


class IdentityStatus(str, Enum):
    OK = "ok"
    NO_IDENTITY = "no_identity"
    EXPIRED = "expired"
    INVALID = "invalid"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class IdentityResolution:
    status: IdentityStatus
    identity: str | None = None
    source: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is IdentityStatus.OK


@dataclass
class ResolutionContext:
    """Per-request state handed from one strategy to the next."""

    token: str
    claims: dict[str, Any] | None = None
    delegated: DelegatedTokenResult | None = None
    identity_claims: list[str] = field(default_factory=list)


class IdentityStrategy(ABC):
    name: str = "strategy"

    @abstractmethod
    async def resolve(self, ctx: ResolutionContext) -> str | None:
        """Return an identity, or None when this stage found nothing."""
        raise NotImplementedError


class VerifiedClaimsStrategy(IdentityStrategy):
    """Verify the token locally and read the identity from its claims."""

    name = "verified_claims"

    def __init__(self, verifier: TokenVerificationService) -> None:
        self._verifier = verifier

    async def resolve(self, ctx: ResolutionContext) -> str | None:
        claims = await self._verifier.verify_access_token(ctx.token)
        if claims is None:
            raise VerifierNotConfiguredError("Token verifier is not configured")
        ctx.claims = claims
        return first_identity_claim(claims, ctx.identity_claims)


class DelegatedClaimsStrategy(IdentityStrategy):
    """Exchange the token on behalf of the user and read the ID token claims."""

    name = "delegated_claims"

    def __init__(self, oidc_client: OidcClientService) -> None:
        self._oidc_client = oidc_client

    async def resolve(self, ctx: ResolutionContext) -> str | None:
        try:
            ctx.delegated = await self._oidc_client.exchange_on_behalf_of(ctx.token)
        except IdentityProviderError as exc:
            logger.warning(f"Delegated token exchange found nothing: {exc}")
            return None
        return first_identity_claim(ctx.delegated.id_token_claims, ctx.identity_claims)


class ProfileLookupStrategy(IdentityStrategy):
    """Query the user profile endpoint with the delegated access token."""

    name = "profile_lookup"

    def __init__(self, oidc_client: OidcClientService) -> None:
        self._oidc_client = oidc_client

    async def resolve(self, ctx: ResolutionContext) -> str | None:
        if ctx.delegated is None or not ctx.delegated.access_token:
            return None
        try:
            profile = await self._oidc_client.get_user_profile(ctx.delegated.access_token)
        except IdentityProviderError as exc:
            logger.warning(f"Profile lookup found nothing: {exc}")
            return None
        return first_identity_claim(profile, PROFILE_IDENTITY_FIELDS)


class ClaimsResolverService:
    def __init__(
        self,
        strategies: list[IdentityStrategy],
        config: ConfigData | None = None,
    ) -> None:
        self._strategies = strategies
        self._config = config

    @classmethod
    def default(
        cls,
        verifier: TokenVerificationService,
        oidc_client: OidcClientService,
        config: ConfigData | None = None,
    ) -> "ClaimsResolverService":
        """Local verification, then delegated exchange, then profile lookup."""
        return cls(
            [
                VerifiedClaimsStrategy(verifier),
                DelegatedClaimsStrategy(oidc_client),
                ProfileLookupStrategy(oidc_client),
            ],
            config=config,
        )

    @property
    def config(self) -> ConfigData:
        return self._config or get_config()

    async def resolve(self, token: str) -> IdentityResolution:
        ctx = ResolutionContext(
            token=token, identity_claims=list(self.config.azure_ad.identity_claims)
        )
        for strategy in self._strategies:
            try:
                identity = await strategy.resolve(ctx)
            except TokenExpiredError:
                logger.info("Rejecting expired token")
                return IdentityResolution(IdentityStatus.EXPIRED)
            except VerifierNotConfiguredError:
                return IdentityResolution(IdentityStatus.NOT_CONFIGURED)
            except TokenInvalidError as exc:
                logger.info(f"Rejecting invalid token: {exc}")
                return IdentityResolution(IdentityStatus.INVALID)

            if identity:
                logger.bind(source=strategy.name).debug(f"Resolved identity {identity}")
                return IdentityResolution(
                    IdentityStatus.OK, identity=identity, source=strategy.name
                )

        logger.info("No identity found in token, delegated claims or profile")
        return IdentityResolution(IdentityStatus.NO_IDENTITY)

    async def get_username_by_token(self, token: str) -> str | None:
        """Resolve ``token`` to an identity, or None for any non-success outcome."""
        resolution = await self.resolve(token)
        return resolution.identity if resolution.ok else None
