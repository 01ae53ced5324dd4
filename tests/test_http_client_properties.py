"""Property-based tests for the backend HTTP transport.

Feature: transcript-sync
"""

import json
from unittest.mock import MagicMock

import pytest
import requests
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from transcript_sync.client.errors import (
    ConflictError,
    RateLimitedError,
    SessionNotFoundError,
    TransientTransportError,
    TransportError,
    UnauthorizedError,
)
from transcript_sync.client.http_client import BackendHTTPClient, classify_response
from transcript_sync.models.config import BackendConfig

log = structlog.stdlib.get_logger()

API_KEY = "test-api-key-0123456789abcdef"


def make_response(status: int, body=None, headers: dict | None = None, raw: bytes | None = None):
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}
    content = raw if raw is not None else (json.dumps(body).encode() if body is not None else b"")
    response.content = content
    response.text = content.decode("utf-8", errors="replace")
    response.json.side_effect = lambda: json.loads(content)
    return response


def make_client(responses, max_retries: int = 3):
    session = MagicMock()
    session.request.side_effect = responses
    sleeps: list[float] = []
    config = BackendConfig(
        backend_url="https://sync.example.com/",
        api_key=API_KEY,
        max_retries=max_retries,
        base_delay=0.5,
        max_delay=10.0,
        user_agent="transcript-sync/test",
    )
    return BackendHTTPClient(config, session=session, sleep=sleeps.append), session, sleeps


@given(status=st.integers(min_value=200, max_value=299))
@settings(max_examples=20)
def test_property_10_2xx_never_raises(status: int):
    """Property 10: Status classification.

    For any 2xx status, classification accepts the response.

    **Feature: transcript-sync, Property 10: Status classification**
    """
    classify_response(make_response(status, {}))


@given(status=st.integers(min_value=500, max_value=599))
@settings(max_examples=20)
def test_property_10_5xx_is_transient(status: int):
    with pytest.raises(TransientTransportError):
        classify_response(make_response(status, raw=b"oops"))


@pytest.mark.parametrize(
    "status,error_type",
    [
        (401, UnauthorizedError),
        (403, UnauthorizedError),
        (404, SessionNotFoundError),
        (409, ConflictError),
        (429, RateLimitedError),
    ],
)
def test_classified_statuses(status: int, error_type: type):
    with pytest.raises(error_type) as exc_info:
        classify_response(make_response(status, raw=b"nope"))

    assert exc_info.value.status_code == status


def test_other_client_errors_are_not_transient():
    with pytest.raises(TransportError) as exc_info:
        classify_response(make_response(400, raw=b"bad request"))

    assert not isinstance(exc_info.value, TransientTransportError)
    assert "bad request" in str(exc_info.value)


def test_post_sends_authenticated_json():
    client, session, _ = make_client([make_response(200, {"ok": True})])

    data = client.post("/api/v1/sync/init", {"external_id": "é"})

    assert data == {"ok": True}
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert method == "POST"
    assert url == "https://sync.example.com/api/v1/sync/init"
    assert json.loads(kwargs["data"].decode("utf-8")) == {"external_id": "é"}
    assert kwargs["headers"]["Authorization"] == f"Bearer {API_KEY}"
    assert kwargs["headers"]["User-Agent"] == "transcript-sync/test"
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["timeout"] == 30.0


def test_empty_body_yields_empty_dict():
    client, _, _ = make_client([make_response(204)])

    assert client.patch("/api/v1/sessions/x/summary", {"summary": "s"}) == {}


def test_rate_limit_honors_retry_after():
    client, session, sleeps = make_client(
        [make_response(429, raw=b"slow down", headers={"Retry-After": "2"}), make_response(200, {})]
    )

    assert client.post("/p", {}) == {}
    assert session.request.call_count == 2
    assert sleeps == [2.0]


def test_server_errors_retried_then_raised():
    client, session, sleeps = make_client(
        [make_response(503, raw=b"down") for _ in range(3)], max_retries=2
    )

    with pytest.raises(TransientTransportError):
        client.post("/p", {})

    assert session.request.call_count == 3
    assert sleeps == [0.5, 1.0]


def test_unauthorized_not_retried():
    client, session, sleeps = make_client([make_response(401, raw=b"bad key")])

    with pytest.raises(UnauthorizedError):
        client.post("/p", {})

    assert session.request.call_count == 1
    assert sleeps == []


def test_timeout_is_transient_and_retried():
    client, session, _ = make_client(
        [requests.exceptions.Timeout("read timed out"), make_response(200, {"a": 1})]
    )

    assert client.post("/p", {}) == {"a": 1}
    assert session.request.call_count == 2


def test_connection_error_exhausts_retries():
    client, _, _ = make_client(
        [requests.exceptions.ConnectionError("refused") for _ in range(2)], max_retries=1
    )

    with pytest.raises(TransientTransportError, match="failed to send request"):
        client.get("/p")


def test_unparseable_response_is_ambiguous():
    client, session, _ = make_client([make_response(200, raw=b"<html>")])

    with pytest.raises(TransportError, match="failed to parse response") as exc_info:
        client.post("/p", {})

    assert not isinstance(exc_info.value, TransientTransportError)
    assert session.request.call_count == 1


def test_non_object_response_rejected():
    client, _, _ = make_client([make_response(200, [1, 2])])

    with pytest.raises(TransportError, match="unexpected response shape"):
        client.post("/p", {})
