"""Budget information for the caller's own LLM credential."""

from typing import Any

from fastapi import APIRouter, Depends

from src.gateway.api.http.deps import require_llm_credential
from src.gateway.core.models import Credential

router = APIRouter(tags=["budget"])


@router.api_route("/budget", methods=["GET", "POST"])
async def budget(credential: Credential = Depends(require_llm_credential)) -> dict[str, Any]:
    return {
        "key_alias": credential.key_alias,
        "spend": credential.spend,
        "max_budget": credential.max_budget,
        "budget_duration": credential.budget_duration,
        "budget_reset_at": credential.budget_reset_at,
    }
