"""Garmin OAuth2 + PKCE connection routes."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse

from ...core import Settings
from ...core.errors import (
    AthleteNotFound,
    ExchangeFailed,
    IntegrationError,
    MissingParameters,
    PersistenceFailed,
    TokenRefreshFailed,
    VerifierExpiredOrMissing,
)
from ...services import (
    GarminTokenService,
    SaveResult,
    VerifierStore,
    build_authorization_url,
    generate_pkce,
)
from ..deps import get_settings, get_token_service, get_verifier_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/garmin", tags=["garmin"])


def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "error": error}
    if details:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def _settings_redirect(settings: Settings, **params: str) -> RedirectResponse:
    url = f"{settings.frontend_origin}/settings/garmin?{urlencode(params)}"
    return RedirectResponse(url, status_code=302)


async def _exchange_and_save(
    athlete_id: str, code: str, store: VerifierStore, service: GarminTokenService
) -> SaveResult:
    code_verifier = await store.retrieve(athlete_id)
    if not code_verifier:
        raise VerifierExpiredOrMissing(athlete_id)

    tokens = await service.client.exchange(code, code_verifier)
    result = await service.save(athlete_id, tokens)
    await store.delete(athlete_id)
    return result


@router.get("/auth-url")
async def garmin_auth_url(
    athleteId: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    store: VerifierStore = Depends(get_verifier_store),
):
    """Start a connection attempt and return the Garmin authorize URL."""

    if not athleteId:
        return _error(400, "athleteId is required")

    pkce = generate_pkce()
    try:
        # A newer attempt replaces any verifier still waiting for this athlete.
        await store.store(athleteId, pkce.code_verifier, settings.verifier_ttl_seconds)
        await store.bind_state(pkce.state, athleteId, settings.verifier_ttl_seconds)
        auth_url = build_authorization_url(
            settings.garmin_authorize_url,
            settings.garmin_client_id,
            pkce.code_challenge,
            pkce.state,
        )
    except Exception:
        logger.exception("Auth URL generation failed for athlete %s", athleteId)
        return _error(500, "Failed to generate auth URL")

    logger.info("Auth URL generated for athlete %s", athleteId)
    return {"success": True, "authUrl": auth_url}


@router.get("/callback")
async def garmin_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    store: VerifierStore = Depends(get_verifier_store),
    service: GarminTokenService = Depends(get_token_service),
):
    """Browser redirect target registered with Garmin."""

    logger.info(
        "Garmin callback received: code=%s state=%s error=%s",
        "present" if code else "missing",
        state,
        error,
    )
    if error:
        return _settings_redirect(settings, status="error", message=error)
    if not code or not state:
        return _settings_redirect(
            settings, status="error", message=MissingParameters.code
        )

    # Older links carry the athlete id itself as state.
    athlete_id = await store.resolve_state(state) or state

    try:
        await _exchange_and_save(athlete_id, code, store, service)
    except IntegrationError as exc:
        logger.error("Garmin callback failed for athlete %s: %s", athlete_id, exc)
        return _settings_redirect(settings, status="error", message=exc.code)
    except Exception:
        logger.exception("Garmin callback crashed for athlete %s", athlete_id)
        return _settings_redirect(settings, status="error", message="callback_error")

    await store.release_state(state)
    logger.info("Garmin connected for athlete %s", athlete_id)
    return _settings_redirect(settings, status="success", athleteId=athlete_id)


@router.get("/exchange")
async def garmin_exchange(
    code: Optional[str] = None,
    athleteId: Optional[str] = None,
    store: VerifierStore = Depends(get_verifier_store),
    service: GarminTokenService = Depends(get_token_service),
):
    """API variant of the callback for clients that forward the code themselves."""

    if not code or not athleteId:
        return _error(400, MissingParameters.code, "code and athleteId are required")

    try:
        result = await _exchange_and_save(athleteId, code, store, service)
    except VerifierExpiredOrMissing as exc:
        logger.error("Exchange for athlete %s: %s", athleteId, exc)
        return _error(400, exc.code)
    except (ExchangeFailed, PersistenceFailed) as exc:
        logger.error("Exchange for athlete %s failed: %s", athleteId, exc)
        return _error(500, exc.code, str(exc))
    except Exception as exc:
        logger.exception("Exchange crashed for athlete %s", athleteId)
        return _error(500, "exchange_error", str(exc))

    return {
        "success": True,
        "message": "Garmin connected successfully",
        "athleteId": athleteId,
        "garminUserId": result.provider_user_id,
    }


@router.get("/status")
def garmin_status(
    athleteId: Optional[str] = None,
    service: GarminTokenService = Depends(get_token_service),
):
    if not athleteId:
        return _error(400, "athleteId is required")
    try:
        return service.status(athleteId)
    except AthleteNotFound:
        return _error(404, "Athlete not found")


@router.post("/refresh")
async def garmin_refresh(
    athleteId: Optional[str] = None,
    service: GarminTokenService = Depends(get_token_service),
):
    if not athleteId:
        return _error(400, "athleteId is required")
    try:
        tokens = await service.refresh(athleteId)
    except AthleteNotFound:
        return _error(404, "Athlete not found")
    except TokenRefreshFailed as exc:
        logger.error("Token refresh failed for athlete %s: %s", athleteId, exc)
        return _error(502, exc.code, str(exc))
    except PersistenceFailed as exc:
        logger.error("Saving refreshed tokens failed for athlete %s: %s", athleteId, exc)
        return _error(500, exc.code, str(exc))
    return {"success": True, "expiresIn": tokens.expires_in, "scope": tokens.scope}


@router.post("/disconnect")
def garmin_disconnect(
    athleteId: Optional[str] = None,
    service: GarminTokenService = Depends(get_token_service),
):
    if not athleteId:
        return _error(400, "athleteId is required")
    try:
        service.disconnect(athleteId)
    except AthleteNotFound:
        return _error(404, "Athlete not found")
    except PersistenceFailed as exc:
        logger.error("Disconnect failed for athlete %s: %s", athleteId, exc)
        return _error(500, exc.code, str(exc))
    return {"success": True}


__all__ = ["router"]
