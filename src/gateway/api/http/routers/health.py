"""Health check endpoints router for monitoring service availability."""

from typing import Any

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from src.gateway.api.http.app_data import ApplicationDependencies

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Liveness probe: 200 as long as the process is serving requests."""
    return {"status": "healthy", "service": "gateway"}


@router.get("/ready", response_model=None)
async def readiness(request: Request) -> dict[str, Any] | JSONResponse:
    """Readiness check for the identity provider and credential service settings.

    Missing settings only make the service unready in production; elsewhere they
    are reported but the status stays 200.
    """
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    config = app_deps.config

    checks = {
        "azure_ad": {
            "status": "configured" if config.azure_ad.is_configured else "missing",
            "signing_keys_cached": len(app_deps.signing_key_cache),
        },
        "credential_service": {
            "status": "configured" if config.credentials.is_configured else "missing",
        },
    }
    all_configured = config.azure_ad.is_configured and config.credentials.is_configured
    all_healthy = all_configured or config.app.environment != "production"

    response = {
        "status": "ready" if all_healthy else "not_ready",
        "environment": config.app.environment,
        "checks": checks,
    }
    if not all_healthy:
        return JSONResponse(status_code=503, content=response)
    return response
