"""Locating the previous session a summary belongs to."""

import json
import os

import structlog

log = structlog.stdlib.get_logger()

# Number of lines searched from the end of each candidate transcript
MAX_LINES_TO_SEARCH = 10

_BLOCK_SIZE = 64 * 1024


def tail_lines(path: str, count: int) -> list[bytes]:
    """
    Read the last ``count`` non-empty lines of a file without reading all of it.

    Returns:
        Lines, last line first
    """
    lines: list[bytes] = []
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        position = f.tell()
        remainder = b""

        while position > 0 and len(lines) < count:
            read_size = min(_BLOCK_SIZE, position)
            position -= read_size
            f.seek(position)
            block = f.read(read_size) + remainder

            parts = block.split(b"\n")
            # The first part may be cut mid-line unless we reached the start
            remainder = parts.pop(0) if position > 0 else b""
            for part in reversed(parts):
                if part.strip():
                    lines.append(part)
                    if len(lines) >= count:
                        break

        if remainder.strip() and len(lines) < count:
            lines.append(remainder)

    return lines


def has_uuid_in_last_lines(path: str, target_uuid: str) -> bool:
    """True if one of the file's last lines is an entry with ``uuid == target_uuid``."""
    try:
        candidates = tail_lines(path, MAX_LINES_TO_SEARCH)
    except OSError:
        return False

    for line in candidates:
        try:
            entry = json.loads(line)
        except ValueError:
            continue
        if isinstance(entry, dict) and entry.get("uuid") == target_uuid:
            return True
    return False


def find_session_by_leaf_uuid(transcript_dir: str, leaf_uuid: str, exclude_file: str) -> str:
    """
    Find the transcript whose tail contains the message a summary points to.

    Agent files and the current transcript are skipped.

    Args:
        transcript_dir: Directory holding transcripts
        leaf_uuid: uuid of the last message of the summarized session
        exclude_file: Base name of the current transcript

    Returns:
        The matching session id (file name without .jsonl), or "" if none
    """
    try:
        names = sorted(os.listdir(transcript_dir))
    except OSError as e:
        log.debug("transcript_dir_unreadable", transcript_dir=transcript_dir, error=str(e))
        return ""

    for name in names:
        if not name.endswith(".jsonl") or name.startswith("agent-") or name == exclude_file:
            continue

        path = os.path.join(transcript_dir, name)
        if not os.path.isfile(path):
            continue

        if has_uuid_in_last_lines(path, leaf_uuid):
            return name[: -len(".jsonl")]

    return ""
