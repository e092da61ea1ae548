"""Forwarding of authorized requests to the upstream LLM API."""

from collections.abc import AsyncIterator

import httpx
from fastapi.responses import StreamingResponse
from loguru import logger
from starlette.requests import Request

from src.gateway.core.exceptions import UpstreamUnavailableError
from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config

# Dropped from upstream responses. www-authenticate would make browsers prompt for
# credentials; the body is re-sent decoded, so encoding and length no longer apply.
STRIPPED_RESPONSE_HEADERS = frozenset(
    {
        "www-authenticate",
        "content-encoding",
        "content-length",
        "transfer-encoding",
        "connection",
        "keep-alive",
    }
)


class LLMProxyService:
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

    def upstream_url(self, path: str) -> str:
        return f"{self.config.proxy.normalized_base_url}/{path.lstrip('/')}"

    def upstream_headers(self, request: Request) -> dict[str, str]:
        """Headers sent upstream: the substituted credential and fixed JSON headers only."""
        headers = {
            "Content-Type": "application/json",
            "Cache-Control": "no-store",
            "Authorization": request.headers.get("Authorization", ""),
        }
        if self.config.proxy.openai_org_id:
            headers["OpenAI-Organization"] = self.config.proxy.openai_org_id
        return headers

    async def forward(self, request: Request, path: str) -> StreamingResponse:
        """Send ``request`` to ``path`` on the upstream API and stream the answer back.

        Must only be called after the auth gate accepted the request.

        Raises:
            UpstreamUnavailableError: On connection failure or timeout
        """
        url = self.upstream_url(path)
        logger.bind(path=path).info(f"Proxying to {self.config.proxy.normalized_base_url}")

        client = httpx.AsyncClient(
            timeout=self.config.proxy.timeout_seconds,
            transport=self._transport,
            follow_redirects=False,
        )
        upstream_request = client.build_request(
            request.method,
            url,
            params=request.query_params.multi_items(),
            headers=self.upstream_headers(request),
            content=await request.body() or None,
        )
        try:
            upstream = await client.send(upstream_request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            logger.error(f"Upstream LLM request failed: {exc!r}")
            raise UpstreamUnavailableError("upstream LLM service unavailable") from exc

        response_headers = {
            name: value
            for name, value in upstream.headers.items()
            if name.lower() not in STRIPPED_RESPONSE_HEADERS
        }
        # Disable nginx buffering so streamed completions reach the client promptly
        response_headers["X-Accel-Buffering"] = "no"
        response_headers["spend"] = request.headers.get("spend", "")
        response_headers["budget"] = request.headers.get("budget", "")

        async def body() -> AsyncIterator[bytes]:
            try:
                async for chunk in upstream.aiter_bytes():
                    yield chunk
            finally:
                await upstream.aclose()
                await client.aclose()

        return StreamingResponse(
            content=body(),
            status_code=upstream.status_code,
            headers=response_headers,
        )
