"""API assembly helpers."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import IntegrationError
from .routers import ALL_ROUTERS

logger = logging.getLogger(__name__)


async def _integration_error_handler(request: Request, exc: IntegrationError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse({"success": False, "error": exc.code}, status_code=500)


def register_routes(app: FastAPI) -> None:
    """Attach all application routers and the domain error handler."""

    for router in ALL_ROUTERS:
        app.include_router(router)
    app.add_exception_handler(IntegrationError, _integration_error_handler)


__all__ = ["register_routes"]
