"""Sync engine: session lifecycle, breadth-first file sync and cursor reconciliation."""

import getpass
import os
import socket
from datetime import datetime, timezone
from typing import Any

import requests
import structlog

from transcript_sync.client.errors import SessionNotFoundError, TransportError, UnauthorizedError
from transcript_sync.client.http_client import BackendHTTPClient
from transcript_sync.client.sync_client import SyncClient
from transcript_sync.discovery.extract import extract_metadata_from_lines
from transcript_sync.discovery.git_info import GitDetector
from transcript_sync.models.config import DEFAULT_MAX_CHUNK_BYTES, AppConfig
from transcript_sync.models.session import (
    Chunk,
    ChunkMetadata,
    FileKind,
    GitInfo,
    InitMetadata,
    TrackedFile,
)
from transcript_sync.redaction.redactor import Redactor
from transcript_sync.sync.file_tracker import FileTracker, FileTrackerError
from transcript_sync.sync.models import EngineConfig, SyncReport
from transcript_sync.sync.summary_linker import find_session_by_leaf_uuid

log = structlog.stdlib.get_logger()

# Upper bound on BFS passes per sync call; agent chains rarely go past 3-4 levels
MAX_SYNC_ITERATIONS = 10


class EngineNotInitializedError(Exception):
    """Raised when syncing before init() has succeeded."""

    pass


class _PassState:
    """Accumulates the outcome of one sync_all call."""

    def __init__(self) -> None:
        self.chunks = 0
        self.first_error: Exception | None = None
        self.errors: list[str] = []

    def record(self, error: Exception) -> None:
        self.errors.append(str(error))
        if self.first_error is None:
            self.first_error = error


class SyncEngine:
    """Ships a session's transcript and agent files to the backend.

    Execution is single-threaded and blocking. Local cursors are a cache of
    the backend's: whenever an upload fails in a way that leaves its outcome
    unknown, the engine pulls the backend's cursors again and replaces its
    own before uploading anything else.
    """

    def __init__(
        self,
        client: SyncClient,
        config: EngineConfig,
        redactor: Redactor | None = None,
        vcs: GitDetector | None = None,
        max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES,
        max_iterations: int = MAX_SYNC_ITERATIONS,
    ):
        """
        Initialize sync engine.

        The engine does not talk to the backend until init() is called.

        Args:
            client: Sync API client
            config: Session identity (external id, transcript path, cwd)
            redactor: Optional redactor applied to every uploaded line
            vcs: Git metadata provider (defaults to the git CLI)
            max_chunk_bytes: Byte budget per uploaded chunk
            max_iterations: Maximum BFS passes per sync_all call
        """
        self._client = client
        self._config = config
        self._redactor = redactor
        self._vcs = vcs or GitDetector()
        self._max_chunk_bytes = max_chunk_bytes
        self._max_iterations = max_iterations
        self._tracker = FileTracker(config.transcript_path, repo_url_lookup=self._vcs.repo_url)

        self._session_id = ""
        self._initialized = False
        self._needs_reconcile = False

        log.info(
            "sync_engine_created",
            external_id=config.external_id,
            transcript_path=config.transcript_path,
            redaction=redactor is not None,
        )

    @classmethod
    def from_config(
        cls,
        app_config: AppConfig,
        engine_config: EngineConfig,
        session: requests.Session | None = None,
    ) -> "SyncEngine":
        """
        Build an engine with its transport, client and redactor from configuration.

        Raises:
            RedactionConfigError: If redaction is enabled and a pattern is invalid
        """
        http_client = BackendHTTPClient(app_config.backend, session=session)
        redactor = None
        if app_config.redaction.enabled:
            redactor = Redactor.from_config(app_config.redaction)

        return cls(
            SyncClient(http_client),
            engine_config,
            redactor=redactor,
            max_chunk_bytes=app_config.sync.max_chunk_bytes,
            max_iterations=app_config.sync.max_sync_iterations,
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def session_id(self) -> str:
        """Backend session id ("" until init() succeeds)."""
        return self._session_id

    @property
    def tracker(self) -> FileTracker:
        return self._tracker

    def init(self) -> None:
        """
        Create or resume the backend session and seed cursors from it.

        The backend's cursor table replaces the local one, even where the
        backend is behind what this process believed it had sent.

        Raises:
            TransportError: If the backend call fails
        """
        metadata = InitMetadata(
            cwd=self._config.cwd or None,
            git_info=self._detect_git_info(),
            hostname=_hostname(),
            username=_username(),
        )

        response = self._client.init(
            self._config.external_id, self._config.transcript_path, metadata
        )

        self._session_id = response.session_id
        self._tracker.init_from_backend_state(response.files)
        self._initialized = True
        self._needs_reconcile = False

        log.info(
            "sync_session_initialized",
            session_id=self._session_id,
            existing_files=len(response.files),
        )

    def reset(self) -> None:
        """
        Forget the backend session so init() can run again.

        Tracked files and their cursors are kept.
        """
        self._initialized = False
        self._session_id = ""

    def get_sync_stats(self) -> dict[str, int]:
        """Last synced line per tracked file name."""
        return {f.name: f.last_synced_line for f in self._tracker.get_tracked_files()}

    def sync_all(self) -> SyncReport:
        """
        Sync every tracked file, following agent references breadth-first.

        Each pass drains the changed files of the current frontier; agent
        files that become trackable during a pass form the next frontier.
        A file enters the frontier at most once per call, so reference
        cycles terminate. Failures are isolated per file.

        Returns:
            SyncReport with the number of chunks uploaded and the first error

        Raises:
            EngineNotInitializedError: If init() has not succeeded
        """
        if not self._initialized:
            raise EngineNotInitializedError("engine not initialized: call init() first")

        start_time = datetime.now(timezone.utc)
        state = _PassState()
        discovered: list[str] = []
        iterations = 0

        log.info("sync_all_started", session_id=self._session_id)

        frontier = [f.name for f in self._tracker.get_tracked_files()]
        # Names that already had their turn in this call
        visited = set(frontier)

        while frontier and iterations < self._max_iterations:
            iterations += 1
            new_agent_ids: list[str] = []

            for name in frontier:
                if self._needs_reconcile and not self._reconcile(state):
                    return self._report(state, discovered, iterations, start_time)

                file = self._tracker.get_file(name)
                if file is None:
                    # Dropped by reconciliation
                    continue
                if not self._tracker.has_file_changed(file):
                    continue

                self._drain_file(file, new_agent_ids, state)

            # Files re-registered after reconciliation wait for the next call
            new_files = [
                f
                for f in self._tracker.discover_new_files(new_agent_ids)
                if f.name not in visited
            ]
            for f in new_files:
                visited.add(f.name)
                log.info("discovered_new_file", path=f.path, kind=f.kind.value)
                discovered.append(f.name)

            frontier = [f.name for f in new_files]

        return self._report(state, discovered, iterations, start_time)

    def send_session_end(
        self, hook_payload: dict[str, Any] | None, timestamp: datetime | None = None
    ) -> None:
        """
        Notify the backend that the session ended.

        Does nothing before init() or without a payload.

        Raises:
            TransportError: If the backend call fails
        """
        if not self._initialized or not self._session_id or hook_payload is None:
            return

        self._client.send_event(
            self._session_id,
            "session_end",
            timestamp or datetime.now(timezone.utc),
            hook_payload,
        )
        log.info("session_end_sent", session_id=self._session_id)

    def _drain_file(self, file: TrackedFile, new_agent_ids: list[str], state: _PassState) -> None:
        while True:
            try:
                chunk = self._tracker.read_chunk(file, self._redactor, self._max_chunk_bytes)
            except FileTrackerError as e:
                log.error("failed_to_read_chunk", path=file.path, error=str(e))
                state.record(e)
                return

            if chunk is None:
                return

            new_agent_ids.extend(chunk.agent_ids)

            if file.kind == FileKind.ROOT:
                self._attach_session_metadata(chunk)

            try:
                last_line = self._client.upload_chunk(
                    self._session_id,
                    chunk.file_name,
                    chunk.file_kind,
                    chunk.first_line,
                    chunk.lines,
                    chunk.metadata,
                )
            except TransportError as e:
                log.error(
                    "failed_to_upload_chunk",
                    file_name=chunk.file_name,
                    first_line=chunk.first_line,
                    lines=len(chunk.lines),
                    error=str(e),
                )
                state.record(e)
                if not isinstance(e, (UnauthorizedError, SessionNotFoundError)):
                    self._needs_reconcile = True
                    self._reconcile(state)
                return

            state.chunks += 1

            if last_line == chunk.last_line:
                self._tracker.update_after_sync(file, last_line, chunk.new_offset)
            else:
                # Backend disagrees on the cursor: keep its line, recount bytes
                log.warning(
                    "backend_cursor_mismatch",
                    file_name=chunk.file_name,
                    sent_last_line=chunk.last_line,
                    backend_last_line=last_line,
                )
                self._tracker.update_after_sync(file, last_line, 0)
                if last_line < chunk.first_line:
                    state.record(
                        TransportError(
                            f"backend did not advance {chunk.file_name} past line {last_line}"
                        )
                    )
                    return

            log.debug(
                "synced_chunk",
                file_name=chunk.file_name,
                first_line=chunk.first_line,
                last_line=last_line,
                lines=len(chunk.lines),
            )

    def _attach_session_metadata(self, chunk: Chunk) -> None:
        result = extract_metadata_from_lines(chunk.lines)

        if result.summary or result.first_user_message:
            if chunk.metadata is None:
                chunk.metadata = ChunkMetadata()
            chunk.metadata.summary = result.summary or None
            chunk.metadata.first_user_message = result.first_user_message or None

        for link in result.summary_links:
            self._link_summary_to_previous_session(link.summary, link.leaf_uuid)

    def _link_summary_to_previous_session(self, summary: str, leaf_uuid: str) -> None:
        transcript_dir = os.path.dirname(self._config.transcript_path)
        current_file = os.path.basename(self._config.transcript_path)

        previous_session = find_session_by_leaf_uuid(transcript_dir, leaf_uuid, current_file)
        if not previous_session:
            log.debug("no_session_for_leaf_uuid", leaf_uuid=leaf_uuid)
            return

        try:
            self._client.update_session_summary(previous_session, summary)
        except TransportError as e:
            log.error(
                "failed_to_update_previous_summary",
                previous_session=previous_session,
                error=str(e),
            )
            return

        log.info("linked_summary_to_previous_session", previous_session=previous_session)

    def _reconcile(self, state: _PassState) -> bool:
        """Replace local cursors with the backend's. False if that failed."""
        try:
            response = self._client.init(self._config.external_id, self._config.transcript_path)
        except TransportError as e:
            log.error("failed_to_refresh_state_from_backend", error=str(e))
            if isinstance(e, UnauthorizedError):
                # The caller must re-authenticate before anything else
                state.first_error = e
            state.errors.append(str(e))
            return False

        if response.session_id:
            self._session_id = response.session_id
        self._tracker.init_from_backend_state(response.files)
        self._needs_reconcile = False

        log.info("refreshed_sync_state_from_backend", files=len(response.files))
        return True

    def _detect_git_info(self) -> GitInfo | None:
        try:
            info = self._vcs.from_transcript(self._config.transcript_path)
            if info is None and self._config.cwd:
                info = self._vcs.detect(self._config.cwd)
        except Exception as e:
            log.debug("git_info_detection_failed", error=str(e))
            return None
        return info

    def _report(
        self,
        state: _PassState,
        discovered: list[str],
        iterations: int,
        start_time: datetime,
    ) -> SyncReport:
        end_time = datetime.now(timezone.utc)
        report = SyncReport(
            session_id=self._session_id,
            chunks_uploaded=state.chunks,
            files_discovered=discovered,
            iterations=iterations,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=(end_time - start_time).total_seconds(),
            errors=state.errors,
            first_error=state.first_error,
        )

        log.info(
            "sync_all_completed",
            session_id=self._session_id,
            chunks_uploaded=report.chunks_uploaded,
            files_discovered=len(discovered),
            iterations=iterations,
            success=report.success,
        )
        return report


def _hostname() -> str | None:
    try:
        return socket.gethostname() or None
    except OSError:
        return None


def _username() -> str | None:
    try:
        return getpass.getuser() or None
    except (OSError, KeyError):
        return None
