"""Best-effort git metadata detection.

Every function here swallows git failures and returns an empty result: a
missing git binary or a directory outside a repository must never block a
sync.
"""

import json
import subprocess
from typing import Callable

import structlog

from transcript_sync.models.session import GitInfo

log = structlog.stdlib.get_logger()

GIT_TIMEOUT_SECONDS = 5

# Lines scanned for a gitBranch field before giving up
MAX_TRANSCRIPT_LINES = 50


def _run_git(cwd: str, *args: str) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError) as e:
        log.debug("git_command_failed", args=args, cwd=cwd, error=str(e))
        return None

    if result.returncode != 0:
        return None
    return result.stdout.strip()


def is_git_repo(cwd: str) -> bool:
    """True if cwd is inside a git work tree."""
    return _run_git(cwd, "rev-parse", "--is-inside-work-tree") == "true"


def get_repo_url(cwd: str) -> str:
    """URL of the origin remote, or "" if unavailable."""
    if not cwd:
        return ""
    return _run_git(cwd, "config", "--get", "remote.origin.url") or ""


def get_head_sha(cwd: str) -> str:
    """HEAD commit SHA, or "" if unavailable."""
    return _run_git(cwd, "rev-parse", "HEAD") or ""


def detect_git_info(cwd: str) -> GitInfo | None:
    """
    Collect git metadata for a working directory.

    Args:
        cwd: Directory to inspect

    Returns:
        GitInfo, or None if cwd is not inside a git repository
    """
    if not cwd or not is_git_repo(cwd):
        return None

    status = _run_git(cwd, "status", "--porcelain")

    return GitInfo(
        repo_url=get_repo_url(cwd) or None,
        branch=_run_git(cwd, "rev-parse", "--abbrev-ref", "HEAD") or None,
        commit_sha=get_head_sha(cwd) or None,
        commit_message=_run_git(cwd, "log", "-1", "--format=%s") or None,
        author=_run_git(cwd, "log", "-1", "--format=%an <%ae>") or None,
        is_dirty=bool(status) if status is not None else None,
    )


def git_info_from_entry(
    entry: dict, repo_url_lookup: Callable[[str], str] | None = get_repo_url
) -> GitInfo | None:
    """Git info carried by a transcript entry (its gitBranch and cwd fields).

    The entry only records the branch; the repository URL is looked up from
    the entry's cwd when a lookup function is given.
    """
    branch = entry.get("gitBranch")
    if not isinstance(branch, str) or not branch:
        return None

    info = GitInfo(branch=branch)
    cwd = entry.get("cwd")
    if repo_url_lookup is not None and isinstance(cwd, str) and cwd:
        info.repo_url = repo_url_lookup(cwd) or None
    return info


def extract_git_info_from_transcript(transcript_path: str) -> GitInfo | None:
    """First git info recorded in a transcript's leading lines, if any."""
    try:
        with open(transcript_path, "r", encoding="utf-8", errors="replace") as f:
            for count, line in enumerate(f):
                if count >= MAX_TRANSCRIPT_LINES:
                    break
                try:
                    entry = json.loads(line)
                except ValueError:
                    continue
                if isinstance(entry, dict):
                    info = git_info_from_entry(entry)
                    if info is not None:
                        return info
    except OSError as e:
        log.debug("transcript_unreadable_for_git_info", path=transcript_path, error=str(e))
    return None


class GitDetector:
    """VCS collaborator consumed by the sync engine."""

    def detect(self, cwd: str) -> GitInfo | None:
        return detect_git_info(cwd)

    def repo_url(self, cwd: str) -> str:
        return get_repo_url(cwd)

    def from_transcript(self, transcript_path: str) -> GitInfo | None:
        return extract_git_info_from_transcript(transcript_path)
