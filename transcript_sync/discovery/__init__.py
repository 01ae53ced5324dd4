"""Discovery of agent references, session metadata and git context."""

from transcript_sync.discovery.extract import (
    ExtractionResult,
    SummaryLink,
    agent_file_name,
    extract_agent_ids_from_message,
    extract_metadata_from_lines,
    is_valid_agent_id,
    sanitize_text,
    truncate_utf8,
)
from transcript_sync.discovery.git_info import (
    GitDetector,
    detect_git_info,
    extract_git_info_from_transcript,
    get_repo_url,
    git_info_from_entry,
)

__all__ = [
    "ExtractionResult",
    "SummaryLink",
    "agent_file_name",
    "extract_agent_ids_from_message",
    "extract_metadata_from_lines",
    "is_valid_agent_id",
    "sanitize_text",
    "truncate_utf8",
    "GitDetector",
    "detect_git_info",
    "extract_git_info_from_transcript",
    "get_repo_url",
    "git_info_from_entry",
]
