"""Service layer helpers."""

from .garmin_client import GarminClient, TokenSet
from .ingestion import ActivityIngestionService, IngestReport
from .pkce import PKCEPair, build_authorization_url, generate_pkce
from .tokens import GarminTokenService, SaveResult
from .verifier_store import (
    MemoryVerifierStore,
    RedisVerifierStore,
    VerifierStore,
    build_verifier_store,
)

__all__ = [
    "ActivityIngestionService",
    "GarminClient",
    "GarminTokenService",
    "IngestReport",
    "MemoryVerifierStore",
    "PKCEPair",
    "RedisVerifierStore",
    "SaveResult",
    "TokenSet",
    "VerifierStore",
    "build_authorization_url",
    "build_verifier_store",
    "generate_pkce",
]
