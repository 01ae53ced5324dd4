"""Tests for the sync API client."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from transcript_sync.client.errors import TransportError
from transcript_sync.client.sync_client import SyncClient
from transcript_sync.models.session import ChunkMetadata, FileKind, GitInfo, InitMetadata


@pytest.fixture
def http_client() -> MagicMock:
    return MagicMock()


def test_init_sends_metadata_and_parses_cursors(http_client: MagicMock):
    http_client.post.return_value = {
        "session_id": "sess-1",
        "files": {"s.jsonl": {"last_synced_line": 3}},
    }
    client = SyncClient(http_client)

    response = client.init(
        "ext-1", "/p/s.jsonl", InitMetadata(cwd="/p", git_info=GitInfo(branch="main"))
    )

    assert response.session_id == "sess-1"
    assert response.files["s.jsonl"].last_synced_line == 3
    path, body = http_client.post.call_args.args
    assert path == "/api/v1/sync/init"
    assert body == {
        "external_id": "ext-1",
        "transcript_path": "/p/s.jsonl",
        "metadata": {"cwd": "/p", "git_info": {"branch": "main"}},
    }


def test_init_without_metadata_omits_it(http_client: MagicMock):
    http_client.post.return_value = {"session_id": "sess-1"}

    response = SyncClient(http_client).init("ext-1", "/p/s.jsonl")

    assert response.files == {}
    assert "metadata" not in http_client.post.call_args.args[1]


def test_upload_chunk_body(http_client: MagicMock):
    http_client.post.return_value = {"last_synced_line": 12}
    client = SyncClient(http_client)

    last_line = client.upload_chunk(
        "sess-1",
        "agent-deadbeef.jsonl",
        FileKind.TRANSITIVE,
        10,
        ["a", "b", "c"],
        ChunkMetadata(summary="Work"),
    )

    assert last_line == 12
    path, body = http_client.post.call_args.args
    assert path == "/api/v1/sync/chunk"
    assert body == {
        "session_id": "sess-1",
        "file_name": "agent-deadbeef.jsonl",
        "file_type": "agent",
        "first_line": 10,
        "lines": ["a", "b", "c"],
        "metadata": {"summary": "Work"},
    }


def test_upload_chunk_drops_empty_metadata(http_client: MagicMock):
    http_client.post.return_value = {"last_synced_line": 1}

    SyncClient(http_client).upload_chunk(
        "sess-1", "s.jsonl", FileKind.ROOT, 1, ["a"], ChunkMetadata()
    )

    body = http_client.post.call_args.args[1]
    assert body["file_type"] == "transcript"
    assert "metadata" not in body


def test_invalid_response_raises_transport_error(http_client: MagicMock):
    http_client.post.return_value = {"unexpected": True}

    with pytest.raises(TransportError, match="chunk upload failed: invalid response"):
        SyncClient(http_client).upload_chunk("sess-1", "s.jsonl", FileKind.ROOT, 1, ["a"])


def test_send_event_normalizes_timestamp(http_client: MagicMock):
    http_client.post.return_value = {}

    SyncClient(http_client).send_event(
        "sess-1", "session_end", datetime(2024, 5, 1, 12, 0), {"reason": "exit"}
    )

    path, body = http_client.post.call_args.args
    assert path == "/api/v1/sync/event"
    assert body == {
        "session_id": "sess-1",
        "event_type": "session_end",
        "timestamp": "2024-05-01T12:00:00+00:00",
        "payload": {"reason": "exit"},
    }


def test_update_session_summary_quotes_id(http_client: MagicMock):
    http_client.patch.return_value = {}

    SyncClient(http_client).update_session_summary("a/b c", "Summary")

    http_client.patch.assert_called_once_with(
        "/api/v1/sessions/a%2Fb%20c/summary", {"summary": "Summary"}
    )
