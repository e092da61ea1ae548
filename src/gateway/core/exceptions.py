"""Exception hierarchy for the authentication and provisioning flow."""


class GatewayError(Exception):
    """Base class for errors raised by the gateway core."""


class AuthError(GatewayError):
    """A bearer token could not be turned into a trusted set of claims."""


class TokenExpiredError(AuthError):
    """The token's ``exp`` claim is in the past."""


class TokenInvalidError(AuthError):
    """Signature, issuer, audience, algorithm or format check failed."""


class SigningKeyUnavailableError(TokenInvalidError):
    """No signing key could be resolved for the token's key identifier."""


class VerifierNotConfiguredError(AuthError):
    """Tenant or backend application settings are missing."""


class IdentityProviderError(GatewayError):
    """A delegated token exchange or profile lookup failed."""


class ProvisionError(GatewayError):
    """A credential could be neither found nor created for a derived key."""

    def __init__(self, identity: str, message: str = "unable to provision LLM credential"):
        super().__init__(message)
        self.identity = identity


class UpstreamUnavailableError(GatewayError):
    """The upstream LLM API could not be reached or did not answer in time."""
