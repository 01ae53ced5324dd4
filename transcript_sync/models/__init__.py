"""Data models for the transcript shipper."""

from transcript_sync.models.config import (
    AppConfig,
    BackendConfig,
    LoggingConfig,
    RedactionConfig,
    RedactionPatternConfig,
    SyncConfig,
)
from transcript_sync.models.session import (
    Chunk,
    ChunkMetadata,
    ChunkResponse,
    FileKind,
    FileState,
    GitInfo,
    InitMetadata,
    InitResponse,
    TrackedFile,
    compact_dump,
)

__all__ = [
    "AppConfig",
    "BackendConfig",
    "LoggingConfig",
    "RedactionConfig",
    "RedactionPatternConfig",
    "SyncConfig",
    "Chunk",
    "ChunkMetadata",
    "ChunkResponse",
    "FileKind",
    "FileState",
    "GitInfo",
    "InitMetadata",
    "InitResponse",
    "TrackedFile",
    "compact_dump",
]
