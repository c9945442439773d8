"""Garmin push webhooks.

Garmin treats a timely 200 as successful delivery and retries aggressively
otherwise, so every webhook is acknowledged before its body is processed.
Processing runs as a background task with its own database session.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.engine import Engine
from sqlmodel import Session

from ...services import ActivityIngestionService, GarminTokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/garmin", tags=["garmin-webhooks"])

WebhookHandler = Callable[[Session, Dict[str, Any]], None]


def process_webhook(
    engine: Engine, handler: WebhookHandler, body: bytes, name: str
) -> None:
    """Decode ``body`` and run ``handler`` on it; errors are logged only."""

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        logger.error("Garmin %s webhook: body is not JSON (%d bytes)", name, len(body))
        return
    if not isinstance(payload, dict):
        logger.error("Garmin %s webhook: expected a JSON object", name)
        return

    with Session(engine) as session:
        try:
            handler(session, payload)
        except Exception:
            session.rollback()
            logger.exception("Garmin %s webhook processing failed", name)


def handle_activities(session: Session, payload: Dict[str, Any]) -> None:
    report = ActivityIngestionService(session).ingest_summaries(payload)
    logger.info(
        "Activity webhook: created=%d updated=%d unmatched=%d skipped=%d failed=%d",
        len(report.created),
        len(report.updated),
        len(report.unmatched),
        report.skipped,
        report.failed,
    )


def handle_activity_details(session: Session, payload: Dict[str, Any]) -> None:
    hydrated = ActivityIngestionService(session).apply_details_batch(payload)
    logger.info("Activity details webhook hydrated %d activit(ies)", len(hydrated))


def handle_deregistration(session: Session, payload: Dict[str, Any]) -> None:
    entries = payload.get("deregistrations")
    if not isinstance(entries, list):
        entries = [payload]
    service = GarminTokenService(session)
    for entry in entries:
        user_id = entry.get("userId") if isinstance(entry, dict) else None
        if not user_id:
            logger.warning("Deregistration entry without userId")
            continue
        logger.info("Garmin deregistration for user %s", user_id)
        service.deregister(str(user_id))


def _acknowledge(
    request: Request,
    background_tasks: BackgroundTasks,
    handler: WebhookHandler,
    body: bytes,
    name: str,
) -> PlainTextResponse:
    logger.info("Garmin webhook incoming: %s %s", request.method, request.url.path)
    background_tasks.add_task(process_webhook, request.app.state.engine, handler, body, name)
    return PlainTextResponse("OK", status_code=200)


@router.get("/ping")
def garmin_ping() -> PlainTextResponse:
    """Garmin health check."""

    return PlainTextResponse("pong")


@router.post("/activity")
async def activity_webhook(request: Request, background_tasks: BackgroundTasks):
    body = await request.body()
    return _acknowledge(request, background_tasks, handle_activities, body, "activity")


@router.post("/activity-details")
async def activity_details_webhook(request: Request, background_tasks: BackgroundTasks):
    body = await request.body()
    return _acknowledge(
        request, background_tasks, handle_activity_details, body, "activity-details"
    )


@router.api_route("/deregistration", methods=["PUT", "POST"])
async def deregistration_webhook(request: Request, background_tasks: BackgroundTasks):
    body = await request.body()
    return _acknowledge(
        request, background_tasks, handle_deregistration, body, "deregistration"
    )


__all__ = [
    "handle_activities",
    "handle_activity_details",
    "handle_deregistration",
    "process_webhook",
    "router",
]
