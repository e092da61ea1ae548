from dataclasses import dataclass

import httpx

from src.gateway.core.services import (
    AuthGateService,
    ClaimsResolverService,
    CredentialService,
    JwksService,
    LLMProxyService,
    OidcClientService,
    SigningKeyCacheInMemory,
    TokenVerificationService,
)
from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config


@dataclass
class ApplicationDependencies:
    config: ConfigData
    signing_key_cache: SigningKeyCacheInMemory
    jwks_service: JwksService
    token_verify_service: TokenVerificationService
    oidc_client_service: OidcClientService
    claims_resolver: ClaimsResolverService
    credential_service: CredentialService
    auth_gate_service: AuthGateService
    proxy_service: LLMProxyService


def build_dependencies(
    config: ConfigData | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ApplicationDependencies:
    """Wire the process-wide services once, sharing a single signing key cache."""
    config = config or get_config()

    signing_key_cache = SigningKeyCacheInMemory(
        maxsize=config.jwt.signing_key_cache_size,
        ttl=config.jwt.signing_key_cache_ttl,
    )
    jwks_service = JwksService(signing_key_cache, config=config, transport=transport)
    token_verify_service = TokenVerificationService(jwks_service, config=config)
    oidc_client_service = OidcClientService(config=config, transport=transport)
    claims_resolver = ClaimsResolverService.default(
        token_verify_service, oidc_client_service, config=config
    )
    credential_service = CredentialService(config=config, transport=transport)
    auth_gate_service = AuthGateService(
        claims_resolver, credential_service, config=config
    )
    proxy_service = LLMProxyService(config=config, transport=transport)

    return ApplicationDependencies(
        config=config,
        signing_key_cache=signing_key_cache,
        jwks_service=jwks_service,
        token_verify_service=token_verify_service,
        oidc_client_service=oidc_client_service,
        claims_resolver=claims_resolver,
        credential_service=credential_service,
        auth_gate_service=auth_gate_service,
        proxy_service=proxy_service,
    )
