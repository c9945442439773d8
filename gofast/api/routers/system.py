"""System-level API endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...core import Settings
from ..deps import get_settings

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> Dict[str, bool]:
    """Simple readiness probe."""

    return {"ok": True}


@router.get("/healthz")
def healthz() -> JSONResponse:
    """Kubernetes-style readiness endpoint."""

    return JSONResponse({"ok": True})


@router.get("/config")
def get_config(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """Expose the non-secret Garmin configuration for troubleshooting."""

    return {
        "garmin_client_id": settings.garmin_client_id,
        "garmin_redirect_uri": settings.garmin_redirect_uri,
        "garmin_authorize_url": settings.garmin_authorize_url,
        "frontend_url": settings.frontend_url,
        "verifier_store": "redis" if settings.redis_url else "memory",
    }


__all__ = ["router"]
