"""Aggregate API routers."""

from fastapi import APIRouter

from .garmin_auth import router as garmin_auth_router
from .garmin_webhooks import router as garmin_webhooks_router
from .system import router as system_router

ALL_ROUTERS: tuple[APIRouter, ...] = (
    system_router,
    garmin_auth_router,
    garmin_webhooks_router,
)

__all__ = ["ALL_ROUTERS"]
