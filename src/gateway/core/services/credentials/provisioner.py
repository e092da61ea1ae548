"""Lookup and creation of per-user credentials against the key-management API."""

from typing import Any

import httpx
from loguru import logger

from src.gateway.core.exceptions import ProvisionError
from src.gateway.core.models import Credential
from src.gateway.core.services.credentials.key_deriver import current_year
from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config


class CredentialService:
    def __init__(
        self,
        config: ConfigData | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def config(self) -> ConfigData:
        return self._config or get_config()

    def _client(self) -> httpx.AsyncClient:
        creds = self.config.credentials
        return httpx.AsyncClient(
            base_url=creds.base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {creds.master_key}"},
            timeout=creds.http_timeout_seconds,
            transport=self._transport,
        )

    async def lookup(self, key_id: str) -> Credential | None:
        """Fetch the credential stored under ``key_id``.

        Returns None for any non-success status, including an unknown key, and for
        transport failures. Absence is the normal outcome for a first request.
        """
        try:
            async with self._client() as client:
                response = await client.get("/key/info", params={"key": key_id})
                if response.status_code != 200:
                    logger.info(f"Credential lookup returned HTTP {response.status_code}")
                    return None
                payload = response.json()
            return Credential.from_key_info(payload, key_id)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Credential lookup failed: {exc}")
            return None

    def _generate_body(self, key_id: str, identity: str, year: int) -> dict[str, Any]:
        creds = self.config.credentials
        policy = creds.policy
        return {
            "key": key_id,
            "team_id": creds.team_id or None,
            "metadata": {"year": year, "username": identity},
            "max_budget": policy.max_budget,
            "budget_duration": policy.budget_duration,
            "max_parallel_requests": policy.max_parallel_requests,
            "rpm_limit": policy.rpm_limit,
            "key_alias": identity,
        }

    async def create(
        self, key_id: str, identity: str, year: int | None = None
    ) -> Credential | None:
        """Create a credential for ``key_id`` under the configured provisioning policy.

        Returns None on any failure so the caller decides whether that is fatal.
        """
        body = self._generate_body(key_id, identity, year or current_year())
        try:
            async with self._client() as client:
                response = await client.post("/key/generate", json=body)
                if response.status_code != 200:
                    logger.error(f"Credential creation returned HTTP {response.status_code}")
                    return None
                payload = response.json()
            credential = Credential.from_key_info(payload, key_id)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"Credential creation failed: {exc}")
            return None

        logger.bind(key_alias=identity).info("Provisioned new LLM credential")
        return credential

    async def get_or_create(
        self, key_id: str, identity: str, year: int | None = None
    ) -> Credential:
        """Look the credential up and create it only when the lookup finds nothing.

        There is no lock around the two calls. Concurrent first requests from one
        new user can both reach ``create``; deduplication is left to the upstream
        service.

        Raises:
            ProvisionError: If the credential can be neither found nor created
        """
        credential = await self.lookup(key_id)
        if credential is not None:
            return credential

        credential = await self.create(key_id, identity, year=year)
        if credential is None:
            raise ProvisionError(identity)
        return credential
