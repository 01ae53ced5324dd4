"""Sync API client for session init, chunk upload, events and summaries."""

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import structlog

from transcript_sync.client.errors import TransportError
from transcript_sync.client.http_client import BackendHTTPClient
from transcript_sync.models.session import (
    ChunkMetadata,
    ChunkResponse,
    FileKind,
    InitMetadata,
    InitResponse,
    compact_dump,
)

log = structlog.stdlib.get_logger()

INIT_PATH = "/api/v1/sync/init"
CHUNK_PATH = "/api/v1/sync/chunk"
EVENT_PATH = "/api/v1/sync/event"
SUMMARY_PATH = "/api/v1/sessions/{session}/summary"


class SyncClient:
    """Client for the backend's sync endpoints.

    Errors raised by the transport propagate unchanged so callers can tell
    authoritative rejections from ambiguous failures.
    """

    def __init__(self, http_client: BackendHTTPClient):
        """
        Initialize sync client.

        Args:
            http_client: Authenticated JSON transport
        """
        self._http = http_client

    def init(
        self,
        external_id: str,
        transcript_path: str,
        metadata: InitMetadata | None = None,
    ) -> InitResponse:
        """
        Create or resume a sync session.

        Args:
            external_id: Caller's stable session identifier
            transcript_path: Path of the root transcript
            metadata: Optional environment context

        Returns:
            InitResponse with the backend session id and per-file cursors

        Raises:
            TransportError: If the request fails
        """
        body: dict[str, Any] = {
            "external_id": external_id,
            "transcript_path": transcript_path,
        }
        if metadata is not None:
            body["metadata"] = compact_dump(metadata)

        data = self._http.post(INIT_PATH, body)
        response = self._parse(InitResponse, data, "sync init")

        log.debug(
            "sync_init_response",
            session_id=response.session_id,
            file_count=len(response.files),
        )
        return response

    def upload_chunk(
        self,
        session_id: str,
        file_name: str,
        file_kind: FileKind,
        first_line: int,
        lines: list[str],
        metadata: ChunkMetadata | None = None,
    ) -> int:
        """
        Upload a contiguous range of lines for one file.

        Returns:
            The backend's new last synced line for the file

        Raises:
            TransportError: If the request fails
        """
        body: dict[str, Any] = {
            "session_id": session_id,
            "file_name": file_name,
            "file_type": FileKind(file_kind).value,
            "first_line": first_line,
            "lines": lines,
        }
        if metadata is not None:
            dumped = compact_dump(metadata)
            if dumped:
                body["metadata"] = dumped

        data = self._http.post(CHUNK_PATH, body)
        return self._parse(ChunkResponse, data, "chunk upload").last_synced_line

    def send_event(
        self,
        session_id: str,
        event_type: str,
        timestamp: datetime,
        payload: Any,
    ) -> None:
        """
        Send a session lifecycle event.

        Raises:
            TransportError: If the request fails
        """
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        body = {
            "session_id": session_id,
            "event_type": event_type,
            "timestamp": timestamp.isoformat(),
            "payload": payload,
        }
        self._http.post(EVENT_PATH, body)

    def update_session_summary(self, session_id: str, summary: str) -> None:
        """
        Replace the summary of a session identified by its id or external id.

        Raises:
            TransportError: If the request fails
        """
        path = SUMMARY_PATH.format(session=quote(session_id, safe=""))
        self._http.patch(path, {"summary": summary})

    @staticmethod
    def _parse(model: Any, data: dict[str, Any], operation: str) -> Any:
        try:
            return model.model_validate(data)
        except ValueError as e:
            raise TransportError(f"{operation} failed: invalid response: {e}") from e
