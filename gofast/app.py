"""FastAPI application factory and configuration."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from . import models  # noqa: F401 - ensure models are registered with SQLModel
from .api import register_routes
from .core import Settings, configure_logging, create_db_engine, load_settings
from .services import VerifierStore, build_verifier_store

_access_log = logging.getLogger("gofast.access")
_QUIET_PATHS = {"/health", "/healthz"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = app.state
    if state.settings.db_reset:
        SQLModel.metadata.drop_all(state.engine)
    SQLModel.metadata.create_all(state.engine)

    owns_http_client = state.http_client is None
    if owns_http_client:
        state.http_client = httpx.AsyncClient(timeout=state.settings.http_timeout)
    yield
    if owns_http_client:
        await state.http_client.aclose()
        state.http_client = None
    await state.verifier_store.close()


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    verifier_store: Optional[VerifierStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build the API.

    Collaborators default to the ones described by ``settings``; tests pass
    their own engine, verifier store and stubbed HTTP client.
    """

    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="GoFast Garmin API", version="0.3.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine or create_db_engine(settings.database_url)
    if verifier_store is None:
        verifier_store = build_verifier_store(settings)
    app.state.verifier_store = verifier_store
    app.state.http_client = http_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        if request.url.path not in _QUIET_PATHS:
            _access_log.info(
                "%s %s %s", request.method, request.url.path, response.status_code
            )
        return response

    register_routes(app)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("gofast.app:create_app", factory=True, host="127.0.0.1", port=3000, reload=True)
