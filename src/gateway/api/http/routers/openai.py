"""Authenticated pass-through to the upstream LLM API."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from src.gateway.api.http.deps import get_proxy_service, require_llm_credential
from src.gateway.core.models import Credential
from src.gateway.core.services import LLMProxyService

router = APIRouter(tags=["openai"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


@router.api_route("/openai/{path:path}", methods=PROXY_METHODS)
async def proxy_openai(
    path: str,
    request: Request,
    _credential: Credential = Depends(require_llm_credential),
    proxy: LLMProxyService = Depends(get_proxy_service),
) -> StreamingResponse:
    return await proxy.forward(request, path)
