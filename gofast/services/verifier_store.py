"""Short-lived storage for PKCE verifiers between auth-url and callback.

Each athlete has a single slot: storing again replaces the previous verifier,
so only the most recent connection attempt can complete.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from ..core.config import Settings

logger = logging.getLogger(__name__)

VERIFIER_PREFIX = "garmin_code_verifier:"
STATE_PREFIX = "garmin_oauth_state:"


class VerifierStore(ABC):
    """Async key/value store with per-key expiry."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        ...

    async def close(self) -> None:
        return None

    async def store(self, athlete_id: str, verifier: str, ttl_seconds: int) -> None:
        await self.set(VERIFIER_PREFIX + athlete_id, verifier, ttl_seconds)
        logger.info("Code verifier stored for athlete %s", athlete_id)

    async def retrieve(self, athlete_id: str) -> Optional[str]:
        return await self.get(VERIFIER_PREFIX + athlete_id)

    async def delete(self, athlete_id: str) -> None:
        await self.remove(VERIFIER_PREFIX + athlete_id)
        logger.info("Code verifier deleted for athlete %s", athlete_id)

    async def bind_state(self, state: str, athlete_id: str, ttl_seconds: int) -> None:
        await self.set(STATE_PREFIX + state, athlete_id, ttl_seconds)

    async def resolve_state(self, state: str) -> Optional[str]:
        return await self.get(STATE_PREFIX + state)

    async def release_state(self, state: str) -> None:
        await self.remove(STATE_PREFIX + state)


class MemoryVerifierStore(VerifierStore):
    """In-process store for development and tests.

    Entries expire on ``clock`` (monotonic by default). Expired entries are
    dropped when read and swept on every write. Not shared between worker
    processes.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _purge(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        self._purge(now)
        self._entries[key] = (value, now + ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisVerifierStore(VerifierStore):
    """Redis-backed store; expiry is delegated to ``SET ... EX``."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisVerifierStore":
        return cls(redis.from_url(url, decode_responses=True))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def remove(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()


def build_verifier_store(settings: Settings) -> VerifierStore:
    if settings.redis_url:
        logger.info("Using Redis verifier store")
        return RedisVerifierStore.from_url(settings.redis_url)
    logger.warning("REDIS_URL not set; using in-memory verifier store")
    return MemoryVerifierStore()


__all__ = [
    "MemoryVerifierStore",
    "RedisVerifierStore",
    "STATE_PREFIX",
    "VERIFIER_PREFIX",
    "VerifierStore",
    "build_verifier_store",
]
