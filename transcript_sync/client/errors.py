"""Classified outcomes of backend requests."""


class TransportError(Exception):
    """A backend request failed.

    Raised as-is for failures whose outcome on the server is unknown
    (timeouts, dropped connections, unexpected status codes, unreadable
    responses). The subclasses below are authoritative rejections.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientTransportError(TransportError):
    """A failure worth retrying inside the transport (5xx, timeout, connection)."""

    pass


class RateLimitedError(TransientTransportError):
    """The server answered 429."""

    def __init__(
        self, message: str, status_code: int | None = 429, retry_after: float | None = None
    ) -> None:
        super().__init__(message, status_code)
        self.retry_after = retry_after


class UnauthorizedError(TransportError):
    """The server answered 401 or 403: the API key is invalid or expired."""

    pass


class SessionNotFoundError(TransportError):
    """The server answered 404: the session or file is gone."""

    pass


class ConflictError(TransportError):
    """The server answered 409."""

    pass
