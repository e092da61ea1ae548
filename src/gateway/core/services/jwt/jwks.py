from abc import ABC, abstractmethod
from typing import Any

import httpx
from cachetools import TTLCache
from loguru import logger

from src.gateway.core.exceptions import (
    SigningKeyUnavailableError,
    VerifierNotConfiguredError,
)
from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config


class SigningKeyCache(ABC):
    @abstractmethod
    def get_key(self, kid: str) -> dict[str, Any] | None:
        """
        Get a cached public JWK by key identifier.

        Args:
            kid: Key identifier from the token header

        Returns:
            The JWK dictionary, or None on a miss
        """
        raise NotImplementedError

    @abstractmethod
    def set_key(self, kid: str, jwk: dict[str, Any]) -> None:
        """
        Cache a public JWK under its key identifier.

        Args:
            kid: Key identifier
            jwk: The JWK dictionary to cache
        """
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Drop every cached key."""
        raise NotImplementedError


class SigningKeyCacheInMemory(SigningKeyCache):
    """Bounded, TTL-evicting key cache shared by every request in the process."""

    def __init__(self, maxsize: int = 5, ttl: float = 600) -> None:
        self._cache: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=maxsize, ttl=ttl)

    def get_key(self, kid: str) -> dict[str, Any] | None:
        return self._cache.get(kid)

    def set_key(self, kid: str, jwk: dict[str, Any]) -> None:
        self._cache[kid] = jwk

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


class SigningKeySource(ABC):
    """Resolves the public key that verifies a token signed under ``kid``."""

    @abstractmethod
    async def get_key(self, kid: str) -> dict[str, Any]:
        raise NotImplementedError


class JwksService(SigningKeySource):
    """Fetches the tenant's published key set and caches keys by identifier.

    Two concurrent misses for the same ``kid`` both fetch; the second write
    simply replaces the first with an identical key.
    """

    def __init__(
        self,
        cache: SigningKeyCache,
        config: ConfigData | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cache = cache
        self._config = config
        self._transport = transport

    @property
    def config(self) -> ConfigData:
        return self._config or get_config()

    async def fetch_jwks(self) -> dict[str, Any]:
        """Download the full key set from the tenant discovery endpoint."""
        ad = self.config.azure_ad
        if not ad.tenant_id:
            raise VerifierNotConfiguredError("Tenant id is not configured")

        async with httpx.AsyncClient(
            timeout=ad.http_timeout_seconds, transport=self._transport
        ) as client:
            resp = await client.get(ad.jwks_uri)
            resp.raise_for_status()
            jwks = resp.json()

        keys = jwks.get("keys") if isinstance(jwks, dict) else None
        if not isinstance(keys, list) or not all(isinstance(k, dict) for k in keys):
            raise ValueError("Key set response is not a JSON object with a keys list")
        return jwks

    async def get_key(self, kid: str) -> dict[str, Any]:
        jwk = self._cache.get_key(kid)
        if jwk:
            return jwk

        logger.debug(f"Signing key cache miss for kid={kid}; fetching key set")
        try:
            jwks = await self.fetch_jwks()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"Failed to fetch signing keys: {exc}")
            raise SigningKeyUnavailableError("Failed to fetch signing keys") from exc

        for candidate in jwks.get("keys", []):
            if candidate.get("kid") == kid:
                self._cache.set_key(kid, candidate)
                return candidate

        raise SigningKeyUnavailableError(f"No signing key matches kid={kid}")

    async def warm_cache(self) -> int:
        """Fetch the key set once and cache every key that carries a kid."""
        jwks = await self.fetch_jwks()
        count = 0
        for candidate in jwks.get("keys", []):
            kid = candidate.get("kid")
            if isinstance(kid, str) and kid:
                self._cache.set_key(kid, candidate)
                count += 1
        return count
