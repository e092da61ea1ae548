"""FastAPI dependency implementations."""

from __future__ import annotations

from fastapi import Depends, Request

from src.gateway.api.http.app_data import ApplicationDependencies
from src.gateway.core.models import AuthResult, Credential
from src.gateway.core.services import (
    AuthGateService,
    CredentialService,
    JwksService,
    LLMProxyService,
)


class AuthRejected(Exception):
    """Raised by route dependencies when the auth gate turns a request away."""

    def __init__(self, result: AuthResult):
        super().__init__(result.msg)
        self.result = result


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_jwks_service(request: Request) -> JwksService:
    """Get the signing key service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.jwks_service


def get_credential_service(request: Request) -> CredentialService:
    """Get the credential provisioning service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.credential_service


def get_auth_gate_service(request: Request) -> AuthGateService:
    """Get the auth gate service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.auth_gate_service


def get_proxy_service(request: Request) -> LLMProxyService:
    """Get the LLM proxy service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.proxy_service


async def require_llm_credential(
    request: Request,
    auth_gate: AuthGateService = Depends(get_auth_gate_service),
) -> Credential:
    """Run the auth gate and return the caller's provisioned credential.

    Raises:
        AuthRejected: When the gate rejects the request
    """
    result = await auth_gate.authorize(request)
    if result.error:
        raise AuthRejected(result)
    return request.state.credential
