"""Core services exports."""

from .auth_gate import AuthGateService
from .credentials import CredentialService, KeyDeriver
from .identity import ClaimsResolverService
from .jwt import JwksService, SigningKeyCacheInMemory, TokenVerificationService
from .oidc_client_service import OidcClientService
from .proxy_service import LLMProxyService

__all__ = [
    # Authorization
    "AuthGateService",
    "ClaimsResolverService",
    # Token verification
    "JwksService",
    "SigningKeyCacheInMemory",
    "TokenVerificationService",
    # Identity provider
    "OidcClientService",
    # Credentials
    "CredentialService",
    "KeyDeriver",
    # Proxy
    "LLMProxyService",
]
