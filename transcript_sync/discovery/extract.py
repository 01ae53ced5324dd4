"""Extraction of agent references and session metadata from transcript entries."""

import json
import re
from typing import Any

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

AGENT_ID_LENGTH = 8

# Backend limit for metadata fields; messages are cut to half of it so the
# chunk upload keeps some headroom.
MAX_METADATA_FIELD_SIZE = 8 * 1024

_HEX_RE = re.compile(r"[0-9a-fA-F]+")


class SummaryLink(BaseModel):
    """A summary that belongs to a previous session, identified by leafUuid."""

    summary: str
    leaf_uuid: str


class ExtractionResult(BaseModel):
    """Metadata pulled out of transcript lines."""

    summary: str = Field(default="", description="Local summary (last one wins)")
    first_user_message: str = Field(default="", description="First user message, sanitized")
    summary_links: list[SummaryLink] = Field(default_factory=list)


def is_valid_agent_id(value: str) -> bool:
    """Check that a string is an 8-character hex agent id."""
    return len(value) == AGENT_ID_LENGTH and _HEX_RE.fullmatch(value) is not None


def agent_file_name(agent_id: str) -> str:
    """File name of the transcript written for an agent."""
    return f"agent-{agent_id}.jsonl"


def _agent_id_from_result(container: Any) -> str | None:
    if not isinstance(container, dict):
        return None
    tool_use_result = container.get("toolUseResult")
    if not isinstance(tool_use_result, dict):
        return None
    agent_id = tool_use_result.get("agentId")
    if isinstance(agent_id, str) and is_valid_agent_id(agent_id):
        return agent_id
    return None


def extract_agent_ids_from_message(message: dict[str, Any]) -> list[str]:
    """
    Extract agent ids referenced by a parsed transcript entry.

    Only user entries carry tool results. Ids are read from the top-level
    ``toolUseResult.agentId`` and from ``tool_result`` content blocks whose
    content object carries its own ``toolUseResult``.

    Args:
        message: One parsed JSON Lines entry

    Returns:
        Agent ids in the order they appear (may contain duplicates)
    """
    if message.get("type") != "user":
        return []

    agent_ids: list[str] = []

    top_level = _agent_id_from_result(message)
    if top_level:
        agent_ids.append(top_level)

    nested = message.get("message")
    if isinstance(nested, dict) and isinstance(nested.get("content"), list):
        for block in nested["content"]:
            if isinstance(block, dict) and block.get("type") == "tool_result":
                agent_id = _agent_id_from_result(block.get("content"))
                if agent_id:
                    agent_ids.append(agent_id)

    return agent_ids


def sanitize_text(text: str) -> str:
    """Strip HTML markup, decode entities and collapse whitespace."""
    soup = BeautifulSoup(text, "html.parser")

    for element in soup(["script", "style"]):
        element.decompose()

    return " ".join(soup.get_text().split())


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Truncate to at most max_bytes of UTF-8, appending "..." when cut."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    max_bytes -= 3
    if max_bytes <= 0:
        return "..."
    return encoded[:max_bytes].decode("utf-8", errors="ignore") + "..."


def _text_from_message(entry: dict[str, Any]) -> str:
    message = entry.get("message")
    if not isinstance(message, dict):
        return ""

    content = message.get("content")
    if isinstance(content, str):
        return content

    # Multimodal content: first non-empty text block
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str) and text:
                    return text

    return ""


def extract_metadata_from_lines(lines: list[str]) -> ExtractionResult:
    """
    Extract session summary and first user message from transcript lines.

    Summaries carrying a ``leafUuid`` belong to a previous session and are
    collected as links; other summaries are local and the last one wins.

    Args:
        lines: Raw transcript lines

    Returns:
        ExtractionResult with sanitized values
    """
    result = ExtractionResult()

    for line in lines:
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except ValueError:
            continue
        if not isinstance(entry, dict):
            continue

        entry_type = entry.get("type")

        if not result.first_user_message and entry_type == "user":
            text = _text_from_message(entry)
            if text:
                result.first_user_message = truncate_utf8(
                    sanitize_text(text), MAX_METADATA_FIELD_SIZE // 2
                )

        if entry_type == "summary":
            summary = entry.get("summary")
            leaf_uuid = entry.get("leafUuid")
            if isinstance(summary, str) and summary:
                if isinstance(leaf_uuid, str) and leaf_uuid:
                    result.summary_links.append(
                        SummaryLink(summary=sanitize_text(summary), leaf_uuid=leaf_uuid)
                    )
                else:
                    result.summary = sanitize_text(summary)

    return result

