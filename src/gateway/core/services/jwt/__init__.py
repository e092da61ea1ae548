"""JWT service package."""

from .jwks import JwksService, SigningKeyCache, SigningKeyCacheInMemory, SigningKeySource
from .jwt_utils import parse_bearer, preview_jwt
from .jwt_verify import TokenVerificationService
