"""Pydantic models for tracked transcript files, chunks and backend payloads."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class FileKind(str, Enum):
    """Role of a tracked file. Values are the backend's wire names."""

    ROOT = "transcript"
    TRANSITIVE = "agent"


class GitInfo(BaseModel):
    """Best-effort version-control context for a session."""

    repo_url: str | None = Field(default=None, description="Remote URL of origin")
    branch: str | None = Field(default=None, description="Current branch")
    commit_sha: str | None = Field(default=None, description="HEAD commit SHA")
    commit_message: str | None = Field(default=None, description="HEAD commit subject")
    author: str | None = Field(default=None, description="HEAD commit author (name <email>)")
    is_dirty: bool | None = Field(default=None, description="Uncommitted changes present")


class TrackedFile(BaseModel):
    """A file being synced and its cursor.

    ``last_synced_line`` and ``byte_offset`` only change together, through
    ``FileTracker.update_after_sync``.
    """

    path: str = Field(default=..., description="Full path to the file")
    name: str = Field(default=..., description="Base name of the file")
    kind: FileKind = Field(default=..., description="Root transcript or transitive agent file")
    last_synced_line: int = Field(default=0, ge=0, description="Last line synced (1-based)")
    byte_offset: int = Field(default=0, ge=0, description="Byte position after last_synced_line")
    last_mtime_ns: int | None = Field(default=None, description="Cached mtime for change detection")
    last_size: int | None = Field(default=None, description="Cached size for change detection")

    model_config = {
        "json_schema_extra": {
            "example": {
                "path": "/home/dev/.claude/projects/app/5f1c.jsonl",
                "name": "5f1c.jsonl",
                "kind": "transcript",
                "last_synced_line": 120,
                "byte_offset": 482133,
            }
        }
    }


class ChunkMetadata(BaseModel):
    """Metadata sent to the backend alongside a root-file chunk."""

    git_info: GitInfo | None = Field(default=None, description="VCS context")
    summary: str | None = Field(default=None, description="Session summary")
    first_user_message: str | None = Field(default=None, description="First user prompt")


class Chunk(BaseModel):
    """A byte-budgeted, line-exact range of a file ready for upload."""

    file_name: str = Field(default=..., description="Base name of the source file")
    file_kind: FileKind = Field(default=..., description="Kind of the source file")
    first_line: int = Field(default=..., ge=1, description="1-based number of the first line")
    lines: list[str] = Field(default_factory=list, description="Lines, redacted if enabled")
    new_offset: int = Field(default=..., ge=0, description="Byte offset after the last line")
    metadata: ChunkMetadata | None = Field(default=None, description="Metadata for the backend")
    agent_ids: list[str] = Field(
        default_factory=list,
        exclude=True,
        description="Newly seen agent ids (local use only, never uploaded)",
    )

    @property
    def last_line(self) -> int:
        """1-based number of the last line in the chunk."""
        return self.first_line + len(self.lines) - 1


class FileState(BaseModel):
    """Backend view of one file's cursor."""

    last_synced_line: int = Field(default=0, ge=0)


class InitMetadata(BaseModel):
    """Context reported to the backend when a session is initialized."""

    cwd: str | None = None
    git_info: GitInfo | None = None
    hostname: str | None = None
    username: str | None = None


class InitResponse(BaseModel):
    """Response to the init operation."""

    session_id: str = Field(default=..., description="Backend-assigned session id")
    files: dict[str, FileState] = Field(default_factory=dict)


class ChunkResponse(BaseModel):
    """Response to a chunk upload."""

    last_synced_line: int = Field(default=..., ge=0)


def compact_dump(model: BaseModel | None) -> dict[str, Any] | None:
    """Serialize a model for the wire, dropping unset optional fields."""
    if model is None:
        return None
    return model.model_dump(mode="json", exclude_none=True)
