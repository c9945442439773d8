"""FastAPI dependencies resolving the collaborators held on ``app.state``."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlmodel import Session

from ..core import Settings, get_session
from ..services import GarminClient, GarminTokenService, VerifierStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_verifier_store(request: Request) -> VerifierStore:
    return request.app.state.verifier_store


def get_garmin_client(request: Request) -> GarminClient:
    return GarminClient(request.app.state.settings, request.app.state.http_client)


def get_token_service(
    session: Session = Depends(get_session),
    client: GarminClient = Depends(get_garmin_client),
) -> GarminTokenService:
    return GarminTokenService(session, client)


__all__ = [
    "get_garmin_client",
    "get_settings",
    "get_token_service",
    "get_verifier_store",
]
