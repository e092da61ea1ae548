"""Per-request authorization and credential substitution."""

from loguru import logger
from starlette.datastructures import MutableHeaders
from starlette.requests import Request

from src.gateway.core.exceptions import ProvisionError
from src.gateway.core.models import AuthResult, Credential
from src.gateway.core.services.credentials import CredentialService, KeyDeriver
from src.gateway.core.services.identity import ClaimsResolverService, IdentityStatus
from src.gateway.core.services.jwt.jwt_utils import parse_bearer
from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config

MSG_MISSING_HEADER = "missing authorization header"
MSG_MISSING_CONFIG = "missing backend AD configuration"
MSG_TOKEN_EXPIRED = "Token expired"
MSG_TOKEN_INVALID = "Invalid token"
MSG_NO_IDENTITY = "unable to retrieve user information"
MSG_PROVISION_FAILED = "unable to provision LLM credential"

_STATUS_MESSAGES = {
    IdentityStatus.EXPIRED: MSG_TOKEN_EXPIRED,
    IdentityStatus.INVALID: MSG_TOKEN_INVALID,
    IdentityStatus.NOT_CONFIGURED: MSG_MISSING_CONFIG,
    IdentityStatus.NO_IDENTITY: MSG_NO_IDENTITY,
}


def rewrite_authorization(request: Request, credential: Credential) -> None:
    """Replace the caller's token with the provisioned key, in place.

    The edit goes to the header list of the ASGI scope itself, which the
    request's cached ``headers`` view shares, so every later reader sees the
    substituted values.
    """
    raw = request.scope["headers"]
    if not isinstance(raw, list):
        raw = request.scope["headers"] = list(raw)
    headers = MutableHeaders(raw=raw)
    headers["Authorization"] = f"Bearer {credential.key}"
    for name, value in credential.informational_headers().items():
        headers[name] = value


class AuthGateService:
    """Decide whether a request may reach the LLM proxy.

    On success the request's Authorization header carries the caller's own
    provisioned credential and ``request.state.credential`` holds the record.
    Rejections are returned, never raised.
    """

    def __init__(
        self,
        resolver: ClaimsResolverService,
        credential_service: CredentialService,
        config: ConfigData | None = None,
    ) -> None:
        self._resolver = resolver
        self._credential_service = credential_service
        self._config = config

    @property
    def config(self) -> ConfigData:
        return self._config or get_config()

    def key_deriver(self) -> KeyDeriver:
        creds = self.config.credentials
        return KeyDeriver(
            salt=creds.key_salt,
            prefix=creds.key_prefix,
            normalization=creds.identity_normalization,
        )

    async def authorize(self, request: Request) -> AuthResult:
        token = parse_bearer(request.headers.get("Authorization"))
        if not token:
            return AuthResult.reject(MSG_MISSING_HEADER)

        if not self.config.azure_ad.is_configured:
            logger.error("Rejecting request: Azure AD tenant, app id or secret is not set")
            return AuthResult.reject(MSG_MISSING_CONFIG)

        resolution = await self._resolver.resolve(token)
        if not resolution.ok or not resolution.identity:
            return AuthResult.reject(_STATUS_MESSAGES.get(resolution.status, MSG_NO_IDENTITY))

        deriver = self.key_deriver()
        identity = deriver.normalize(resolution.identity)
        if not identity:
            return AuthResult.reject(MSG_NO_IDENTITY)

        try:
            credential = await self._credential_service.get_or_create(
                deriver.derive(identity), identity
            )
        except ProvisionError as exc:
            logger.error(f"Rejecting request: {exc}")
            return AuthResult.reject(MSG_PROVISION_FAILED)

        rewrite_authorization(request, credential)
        request.state.credential = credential
        logger.bind(source=resolution.source).info("Request authorized")
        return AuthResult.accept()
