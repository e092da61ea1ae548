"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator

# Algorithms that verify with a shared secret. Accepting any of these for
# provider-issued tokens would let a caller sign with the public key material.
SYMMETRIC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(default=["*"])


class AzureADConfig(BaseModel):
    """Azure AD (Entra ID) tenant and backend application registration."""

    tenant_id: str = Field(default="", description="Directory (tenant) ID")
    server_app_id: str = Field(
        default="", description="Application (client) ID of the backend API"
    )
    server_app_secret: str = Field(
        default="", description="Client secret of the backend API registration"
    )
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="Login host used for discovery and token endpoints",
    )
    sts_host: str = Field(
        default="https://sts.windows.net",
        description="Host of the v1.0 style token issuer",
    )
    graph_me_url: str = Field(
        default="https://graph.microsoft.com/v1.0/me",
        description="User profile endpoint queried with the delegated token",
    )
    obo_scopes: list[str] = Field(
        default_factory=lambda: ["https://graph.microsoft.com/User.Read"],
        description="Scopes requested by the on-behalf-of exchange",
    )
    identity_claims: list[str] = Field(
        default_factory=lambda: ["email", "preferred_username", "upn", "userPrincipalName"],
        description="Claims inspected for the user identity, in priority order",
    )
    http_timeout_seconds: float = Field(
        default=10.0, description="Timeout for identity provider calls"
    )

    @computed_field
    @property
    def is_configured(self) -> bool:
        """True only when tenant, backend app id and backend secret are all present."""
        return bool(self.tenant_id and self.server_app_id and self.server_app_secret)

    @computed_field
    @property
    def authority(self) -> str:
        return f"{self.authority_host.rstrip('/')}/{self.tenant_id}"

    @computed_field
    @property
    def jwks_uri(self) -> str:
        return f"{self.authority}/discovery/v2.0/keys"

    @computed_field
    @property
    def token_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"

    @computed_field
    @property
    def accepted_issuers(self) -> list[str]:
        """Issuers emitted for v1.0 and v2.0 access tokens respectively."""
        return [
            f"{self.sts_host.rstrip('/')}/{self.tenant_id}/",
            f"{self.authority}/v2.0",
        ]

    @computed_field
    @property
    def accepted_audiences(self) -> list[str]:
        return [f"api://{self.server_app_id}", self.server_app_id]


class JWTConfig(BaseModel):
    """JWT validation configuration."""

    allowed_algorithms: list[str] = Field(
        default_factory=lambda: ["RS256"],
        description="JWT algorithms allowed for token validation",
    )
    clock_skew: int = Field(default=60, description="Clock skew tolerance in seconds")
    signing_key_cache_size: int = Field(
        default=5, description="Maximum number of cached signing keys"
    )
    signing_key_cache_ttl: int = Field(
        default=600, description="Signing key cache time-to-live in seconds"
    )

    @field_validator("allowed_algorithms")
    @classmethod
    def _reject_symmetric(cls, value: list[str]) -> list[str]:
        symmetric = SYMMETRIC_ALGORITHMS.intersection(value)
        if symmetric:
            raise ValueError(
                f"Symmetric algorithms are not accepted for provider tokens: {sorted(symmetric)}"
            )
        if not value:
            raise ValueError("At least one JWT algorithm must be allowed")
        return value


class ProvisioningPolicyConfig(BaseModel):
    """Limits applied to every newly created per-user credential."""

    max_budget: float = Field(default=1.0, description="Spend cap per budget period")
    budget_duration: str = Field(default="1mo", description="Budget renewal period")
    max_parallel_requests: int = Field(
        default=2, description="Concurrent requests allowed per credential"
    )
    rpm_limit: int = Field(default=10, description="Requests per minute per credential")


class CredentialServiceConfig(BaseModel):
    """Upstream credential-management service (LiteLLM key API)."""

    base_url: str = Field(default="", description="Credential service base URL")
    master_key: str = Field(
        default="", description="Service-level bearer used for key management calls"
    )
    team_id: str | None = Field(
        default=None, description="Team that newly created credentials belong to"
    )
    key_prefix: str = Field(default="sk-", description="Literal tag of derived key ids")
    key_salt: str = Field(default="", description="Salt mixed into derived key ids")
    identity_normalization: Literal["exact", "lowercase"] = Field(
        default="exact",
        description="How identities are normalized before deriving key ids",
    )
    http_timeout_seconds: float = Field(
        default=10.0, description="Timeout for credential service calls"
    )
    policy: ProvisioningPolicyConfig = Field(
        default_factory=ProvisioningPolicyConfig,
        description="Provisioning policy for created credentials",
    )

    @computed_field
    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)


class ProxyConfig(BaseModel):
    """Upstream LLM API the proxy forwards to."""

    base_url: str = Field(
        default="https://api.openai.com", description="Upstream LLM API base URL"
    )
    openai_org_id: str | None = Field(
        default=None, description="Optional OpenAI-Organization header value"
    )
    timeout_seconds: float = Field(
        default=600.0, description="Timeout for forwarded LLM calls"
    )

    @computed_field
    @property
    def normalized_base_url(self) -> str:
        """Base URL with a scheme and without a trailing slash."""
        url = self.base_url
        if not url.startswith("http"):
            url = f"https://{url}"
        return url.rstrip("/")


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str | None = Field(default=None, description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )


class ConfigData(BaseModel):
    """Root configuration model."""

    app: AppConfig = Field(default_factory=AppConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    azure_ad: AzureADConfig = Field(default_factory=AzureADConfig)
    jwt: JWTConfig = Field(default_factory=JWTConfig)
    credentials: CredentialServiceConfig = Field(
        default_factory=CredentialServiceConfig
    )
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
