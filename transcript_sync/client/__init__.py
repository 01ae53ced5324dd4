"""Backend client: JSON transport, error classification and sync API."""

from transcript_sync.client.errors import (
    ConflictError,
    RateLimitedError,
    SessionNotFoundError,
    TransientTransportError,
    TransportError,
    UnauthorizedError,
)
from transcript_sync.client.http_client import BackendHTTPClient, classify_response
from transcript_sync.client.sync_client import SyncClient

__all__ = [
    "BackendHTTPClient",
    "ConflictError",
    "RateLimitedError",
    "SessionNotFoundError",
    "SyncClient",
    "TransientTransportError",
    "TransportError",
    "UnauthorizedError",
    "classify_response",
]
