"""Session sync: file tracking, chunked upload and summary linking."""

from transcript_sync.sync.file_tracker import ChunkTooLargeError, FileTracker, FileTrackerError
from transcript_sync.sync.models import EngineConfig, SyncReport
from transcript_sync.sync.summary_linker import find_session_by_leaf_uuid
from transcript_sync.sync.sync_engine import EngineNotInitializedError, SyncEngine

__all__ = [
    "ChunkTooLargeError",
    "EngineConfig",
    "EngineNotInitializedError",
    "FileTracker",
    "FileTrackerError",
    "SyncEngine",
    "SyncReport",
    "find_session_by_leaf_uuid",
]
