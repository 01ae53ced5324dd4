"""Authenticated JSON transport for the sync backend."""

import json
import time
from typing import Any, Callable

import requests
import structlog
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout

from transcript_sync.client.errors import (
    ConflictError,
    RateLimitedError,
    SessionNotFoundError,
    TransientTransportError,
    TransportError,
    UnauthorizedError,
)
from transcript_sync.models.config import BackendConfig
from transcript_sync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()


def _retry_after_seconds(response: requests.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(int(value))
    except ValueError:
        return None


def classify_response(response: requests.Response) -> None:
    """
    Raise the classified error for a non-2xx response.

    Raises:
        RateLimitedError: 429
        UnauthorizedError: 401 or 403
        SessionNotFoundError: 404
        ConflictError: 409
        TransientTransportError: 5xx
        TransportError: any other non-2xx status
    """
    status = response.status_code
    if 200 <= status < 300:
        return

    body = response.text
    message = f"status {status}: {body}"

    if status == 429:
        raise RateLimitedError(
            f"rate limited: {message}", status, retry_after=_retry_after_seconds(response)
        )
    if status in (401, 403):
        raise UnauthorizedError(f"unauthorized: {message}", status)
    if status == 404:
        raise SessionNotFoundError(f"session not found: {message}", status)
    if status == 409:
        raise ConflictError(f"conflict: {message}", status)
    if status >= 500:
        raise TransientTransportError(f"server error: {message}", status)
    raise TransportError(f"http request failed with {message}", status)


class BackendHTTPClient:
    """Wrapper around a requests session that speaks JSON to the backend.

    Transient failures (429, 5xx, timeouts, connection errors) are retried
    with exponential backoff. Whatever is left after retries reaches the
    caller as a TransportError subclass.
    """

    def __init__(
        self,
        config: BackendConfig,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the transport.

        Args:
            config: Backend connection settings
            session: Optional requests session (a new one is created if None)
            sleep: Function used to wait between retries
        """
        self._config = config
        self._session = session or requests.Session()
        self._sleep = sleep

        if config.backend_url.startswith("http://") and config.is_localhost:
            log.debug("using_localhost_backend", backend_url=config.backend_url)

        log.info(
            "backend_http_client_initialized",
            backend_url=config.backend_url,
            timeout_seconds=config.timeout_seconds,
        )

    def post(self, path: str, body: Any) -> dict[str, Any]:
        """POST a JSON body and return the parsed JSON response."""
        return self.request_json("POST", path, body)

    def patch(self, path: str, body: Any) -> dict[str, Any]:
        """PATCH a JSON body and return the parsed JSON response."""
        return self.request_json("PATCH", path, body)

    def get(self, path: str) -> dict[str, Any]:
        """GET a path and return the parsed JSON response."""
        return self.request_json("GET", path)

    def request_json(self, method: str, path: str, body: Any = None) -> dict[str, Any]:
        """
        Perform a request with retries.

        The body is serialized once and reused for every attempt.

        Raises:
            TransportError: Classified failure after retries
        """
        payload = None
        if body is not None:
            payload = json.dumps(body, ensure_ascii=False).encode("utf-8")
            log.debug(
                "http_request_payload",
                method=method,
                path=path,
                payload_bytes=len(payload),
            )

        send = exponential_backoff_retry(
            max_retries=self._config.max_retries,
            base_delay=self._config.base_delay,
            max_delay=self._config.max_delay,
            exceptions=(TransientTransportError,),
            sleep=self._sleep,
        )(self._send)

        return send(method, path, payload)

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "User-Agent": self._config.user_agent,
            "Accept": "application/json",
        }
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _send(self, method: str, path: str, payload: bytes | None) -> dict[str, Any]:
        url = self._config.backend_url + path

        try:
            response = self._session.request(
                method,
                url,
                data=payload,
                headers=self._headers(payload is not None),
                timeout=self._config.timeout_seconds,
            )
        except Timeout as e:
            raise TransientTransportError(f"request timed out: {method} {path}: {e}") from e
        except RequestsConnectionError as e:
            raise TransientTransportError(f"failed to send request: {method} {path}: {e}") from e
        except RequestException as e:
            raise TransportError(f"failed to send request: {method} {path}: {e}") from e

        classify_response(response)

        if not response.content:
            return {}

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                f"failed to parse response: {e}", response.status_code
            ) from e

        if not isinstance(data, dict):
            raise TransportError(
                f"unexpected response shape: {type(data).__name__}", response.status_code
            )
        return data
