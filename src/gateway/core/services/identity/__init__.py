"""Identity resolution package."""

from .resolver import (
    ClaimsResolverService,
    DelegatedClaimsStrategy,
    IdentityResolution,
    IdentityStatus,
    IdentityStrategy,
    ProfileLookupStrategy,
    ResolutionContext,
    VerifiedClaimsStrategy,
)

__all__ = [
    "ClaimsResolverService",
    "DelegatedClaimsStrategy",
    "IdentityResolution",
    "IdentityStatus",
    "IdentityStrategy",
    "ProfileLookupStrategy",
    "ResolutionContext",
    "VerifiedClaimsStrategy",
]
