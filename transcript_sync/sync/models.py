"""Data models for synchronization operations."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class EngineConfig(BaseModel):
    """Identity of the session an engine syncs."""

    external_id: str = Field(default=..., min_length=1, description="Caller's stable session id")
    transcript_path: str = Field(default=..., min_length=1, description="Root transcript path")
    cwd: str = Field(default="", description="Working directory of the session")


class SyncReport(BaseModel):
    """Report of one sync_all call.

    ``first_error`` holds the first exception hit during the pass; chunks
    uploaded before and after it still count in ``chunks_uploaded``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str = Field(default=..., description="Backend session id")
    chunks_uploaded: int = Field(default=0, ge=0, description="Chunks accepted by the backend")
    files_discovered: list[str] = Field(
        default_factory=list, description="Agent files that started being tracked"
    )
    iterations: int = Field(default=0, ge=0, description="BFS passes performed")
    start_time: datetime = Field(..., description="Sync start timestamp")
    end_time: datetime = Field(..., description="Sync end timestamp")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Sync duration in seconds")
    errors: list[str] = Field(
        default_factory=list, description="List of errors encountered during sync"
    )
    first_error: Exception | None = Field(
        default=None, exclude=True, description="First exception encountered"
    )

    @property
    def success(self) -> bool:
        """Check if sync completed without errors."""
        return self.first_error is None and len(self.errors) == 0

    def raise_for_error(self) -> None:
        """Re-raise the first error, if any."""
        if self.first_error is not None:
            raise self.first_error
