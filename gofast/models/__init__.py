"""Database model exports."""

from .activity import AthleteActivity
from .athlete import Athlete
from .webhook import UnmatchedWebhook, WebhookKind

__all__ = [
    "Athlete",
    "AthleteActivity",
    "UnmatchedWebhook",
    "WebhookKind",
]
