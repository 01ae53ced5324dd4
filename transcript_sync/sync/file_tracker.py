"""Per-file sync cursors, change detection and byte-budgeted chunk reading."""

import json
import os
from typing import Callable

import structlog

from transcript_sync.discovery.extract import agent_file_name, extract_agent_ids_from_message
from transcript_sync.discovery.git_info import get_repo_url, git_info_from_entry
from transcript_sync.models.config import DEFAULT_MAX_CHUNK_BYTES
from transcript_sync.models.session import (
    Chunk,
    ChunkMetadata,
    FileKind,
    FileState,
    GitInfo,
    TrackedFile,
)
from transcript_sync.redaction.redactor import Redactor

log = structlog.stdlib.get_logger()

# Each line is sent as a JSON string inside an array: quotes, comma and
# escaping cost roughly this much on top of the raw bytes.
LINE_OVERHEAD_BYTES = 4


class FileTrackerError(Exception):
    """Raised when a tracked file cannot be read."""

    pass


class ChunkTooLargeError(FileTrackerError):
    """A single line does not fit in the chunk byte budget."""

    def __init__(self, line_number: int, line_bytes: int, max_bytes: int) -> None:
        super().__init__(
            f"line {line_number} exceeds max chunk size ({line_bytes} bytes > {max_bytes} bytes)"
        )
        self.line_number = line_number
        self.line_bytes = line_bytes
        self.max_bytes = max_bytes


class FileTracker:
    """Tracks the root transcript and the agent files it references.

    The tracker owns the cursor table and the set of known agent ids. Files
    are only ever appended to; truncating or rewriting a tracked file while
    a session is active is not supported.
    """

    def __init__(
        self,
        root_path: str,
        repo_url_lookup: Callable[[str], str] | None = get_repo_url,
    ):
        """
        Initialize file tracker.

        Args:
            root_path: Path of the root transcript
            repo_url_lookup: Resolves a working directory to its repository
                URL when git info is found in a transcript (None disables it)
        """
        self._root_path = root_path
        self._root_dir = os.path.dirname(root_path)
        self._root_name = os.path.basename(root_path)
        self._repo_url_lookup = repo_url_lookup
        self._files: dict[str, TrackedFile] = {}
        self._known_agent_ids: set[str] = set()

    @property
    def root_path(self) -> str:
        return self._root_path

    @property
    def known_agent_ids(self) -> frozenset[str]:
        return frozenset(self._known_agent_ids)

    def init_from_backend_state(self, backend_files: dict[str, FileState]) -> None:
        """
        Replace the cursor table with the backend's view.

        The root transcript is always tracked. Every other file the backend
        knows about is tracked as an agent file beside it. Byte offsets are
        reset, so the next read re-counts lines from the start of each file.

        Args:
            backend_files: Backend cursors keyed by file name
        """
        files: dict[str, TrackedFile] = {}

        root_state = backend_files.get(self._root_name, FileState())
        files[self._root_name] = TrackedFile(
            path=self._root_path,
            name=self._root_name,
            kind=FileKind.ROOT,
            last_synced_line=root_state.last_synced_line,
        )

        for file_name, state in backend_files.items():
            if file_name == self._root_name:
                continue
            files[file_name] = TrackedFile(
                path=os.path.join(self._root_dir, file_name),
                name=file_name,
                kind=FileKind.TRANSITIVE,
                last_synced_line=state.last_synced_line,
            )

        self._files = files

        log.debug(
            "tracker_initialized_from_backend",
            root=self._root_name,
            file_count=len(files),
        )

    def get_tracked_files(self) -> list[TrackedFile]:
        """All tracked files, root first."""
        return sorted(self._files.values(), key=lambda f: (f.kind != FileKind.ROOT, f.name))

    def is_tracked(self, file_name: str) -> bool:
        return file_name in self._files

    def get_file(self, file_name: str) -> TrackedFile | None:
        return self._files.get(file_name)

    def get_root_file(self) -> TrackedFile | None:
        return self._files.get(self._root_name)

    def has_file_changed(self, file: TrackedFile) -> bool:
        """
        Check whether a file may have unsynced data.

        True if the file cannot be stat'ed, if it has grown past the synced
        byte offset, or if its mtime/size differ from the cached snapshot
        (which is all a freshly discovered file has to go on).
        """
        try:
            st = os.stat(file.path)
        except OSError:
            return True

        if file.byte_offset > 0 and st.st_size > file.byte_offset:
            return True

        return st.st_mtime_ns != file.last_mtime_ns or st.st_size != file.last_size

    def read_chunk(
        self,
        file: TrackedFile,
        redactor: Redactor | None = None,
        max_bytes: int = DEFAULT_MAX_CHUNK_BYTES,
    ) -> Chunk | None:
        """
        Read the next lines after the file's cursor, up to a byte budget.

        Agent ids and git info are extracted from the raw lines; redaction is
        applied afterwards, so only scrubbed text leaves the tracker. The
        tracker's state is not modified.

        Args:
            file: File to read
            redactor: Optional redactor applied to every returned line
            max_bytes: Byte budget for the chunk

        Returns:
            Chunk, or None if there are no new lines

        Raises:
            ChunkTooLargeError: If the first pending line alone exceeds max_bytes
            FileTrackerError: If the file cannot be opened or read
        """
        try:
            f = open(file.path, "rb")
        except OSError as e:
            raise FileTrackerError(f"failed to open file {file.path}: {e}") from e

        with f:
            reading_from_start = True
            current_offset = 0

            if file.byte_offset > 0 and file.last_synced_line > 0:
                try:
                    f.seek(file.byte_offset)
                    current_offset = file.byte_offset
                    reading_from_start = False
                except (OSError, ValueError) as e:
                    log.debug(
                        "seek_failed_reading_from_start",
                        path=file.path,
                        byte_offset=file.byte_offset,
                        error=str(e),
                    )
                    f.seek(0)

            line_num = 0 if reading_from_start else file.last_synced_line
            extract = file.kind in (FileKind.ROOT, FileKind.TRANSITIVE)
            seen_agents = set(self._known_agent_ids)

            lines: list[str] = []
            agent_ids: list[str] = []
            git_info: GitInfo | None = None
            total_bytes = 0
            stopped_early = False

            try:
                for raw in f:
                    line_num += 1
                    # Offsets assume every line ends with a terminator
                    consumed = len(raw) if raw.endswith(b"\n") else len(raw) + 1

                    if reading_from_start and line_num <= file.last_synced_line:
                        current_offset += consumed
                        continue

                    content = raw.rstrip(b"\n")
                    if content.endswith(b"\r"):
                        content = content[:-1]

                    line_bytes = len(content) + LINE_OVERHEAD_BYTES
                    if total_bytes + line_bytes > max_bytes:
                        if total_bytes == 0:
                            raise ChunkTooLargeError(line_num, line_bytes, max_bytes)
                        # This line is read again on the next call
                        stopped_early = True
                        break

                    total_bytes += line_bytes
                    current_offset += consumed
                    line = content.decode("utf-8", errors="replace")

                    if extract:
                        git_info = self._extract(file, line, seen_agents, agent_ids, git_info)

                    if redactor is not None:
                        line = redactor.redact_json_line(line)

                    lines.append(line)
            except OSError as e:
                raise FileTrackerError(f"failed to read file {file.path}: {e}") from e

            if not lines:
                return None

            if not stopped_early:
                position = f.tell()
                if position != current_offset:
                    log.debug(
                        "offset_discrepancy",
                        path=file.path,
                        tracked=current_offset,
                        position=position,
                        hint="possible missing trailing newline",
                    )

        metadata = ChunkMetadata(git_info=git_info) if git_info is not None else None

        return Chunk(
            file_name=file.name,
            file_kind=file.kind,
            first_line=file.last_synced_line + 1,
            lines=lines,
            new_offset=current_offset,
            metadata=metadata,
            agent_ids=agent_ids,
        )

    def _extract(
        self,
        file: TrackedFile,
        line: str,
        seen_agents: set[str],
        agent_ids: list[str],
        git_info: GitInfo | None,
    ) -> GitInfo | None:
        try:
            entry = json.loads(line)
        except ValueError:
            return git_info
        if not isinstance(entry, dict):
            return git_info

        for agent_id in extract_agent_ids_from_message(entry):
            if agent_id not in seen_agents:
                seen_agents.add(agent_id)
                agent_ids.append(agent_id)

        if file.kind == FileKind.ROOT and git_info is None:
            git_info = git_info_from_entry(entry, self._repo_url_lookup)

        return git_info

    def update_after_sync(self, file: TrackedFile, last_line: int, new_offset: int) -> None:
        """
        Advance a file's cursor after a successful upload.

        The cached mtime/size snapshot is refreshed too, so has_file_changed
        stays False until the file is written again.
        """
        file.last_synced_line = last_line
        file.byte_offset = new_offset

        try:
            st = os.stat(file.path)
        except OSError:
            return
        file.last_mtime_ns = st.st_mtime_ns
        file.last_size = st.st_size

    def discover_new_files(self, new_agent_ids: list[str]) -> list[TrackedFile]:
        """
        Register agent files that now exist on disk.

        Every known agent id is re-checked, not just the new ones: an agent
        file may not have existed yet when its id was first seen.

        Args:
            new_agent_ids: Agent ids collected since the last call

        Returns:
            Newly tracked files, ordered by agent id
        """
        self._known_agent_ids.update(new_agent_ids)

        new_files: list[TrackedFile] = []
        for agent_id in sorted(self._known_agent_ids):
            file_name = agent_file_name(agent_id)
            if self.is_tracked(file_name):
                continue

            path = os.path.join(self._root_dir, file_name)
            if not os.path.exists(path):
                continue

            tracked = TrackedFile(path=path, name=file_name, kind=FileKind.TRANSITIVE)
            self._files[file_name] = tracked
            new_files.append(tracked)

        return new_files
