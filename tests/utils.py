import base64
import json
from collections.abc import Callable
from typing import Any

import httpx
from authlib.jose import JsonWebKey, jwt


def rsa_signing_key(kid: str) -> tuple[bytes, dict[str, Any]]:
    """Generate an RSA key pair; returns the private PEM and the public JWK."""
    key = JsonWebKey.generate_key("RSA", 2048, is_private=True)
    public = key.as_dict(is_private=False)
    public.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return key.as_pem(is_private=True), public


def sign_token(claims: dict[str, Any], key: Any, *, kid: str, alg: str = "RS256") -> str:
    token = jwt.encode({"alg": alg, "kid": kid, "typ": "JWT"}, claims, key)
    return token.decode("ascii") if isinstance(token, bytes) else token


def unsigned_token(header: dict[str, Any], claims: dict[str, Any]) -> str:
    """Compact JWT with arbitrary header values and a placeholder signature."""

    def segment(obj: dict[str, Any]) -> str:
        raw = json.dumps(obj, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    return f"{segment(header)}.{segment(claims)}.c2lnbmF0dXJl"


def _route_key(request: httpx.Request) -> tuple[str, str]:
    url = request.url
    return request.method, f"{url.scheme}://{url.host}{url.path}"


class FakeUpstream:
    """Routes outbound httpx calls to canned handlers and records every request.

    URLs are matched without their query string.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def route(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        status_code: int = 200,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        if handler is None:

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status_code, json=json)

        self._routes[(method.upper(), url)] = handler

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if _route_key(r) == (method.upper(), url)]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self._routes.get(_route_key(request))
        if handler is None:
            return httpx.Response(404, json={"error": "no route"})
        return handler(request)
