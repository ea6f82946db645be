"""Transport-level exceptions.

These exception types let the session layer turn failures into conversation
records consistently without scraping strings.
"""

from __future__ import annotations


class SahayakError(RuntimeError):
    """Base class for session/transport errors."""


class ConnectFailure(SahayakError):
    """The duplex channel could not be opened (or dropped with an error)."""

    def __init__(self, url: str, *, cause: BaseException | None = None):
        self.url = url
        self.cause = cause
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.cause is not None:
            return f"Connect to {self.url} failed: {type(self.cause).__name__}: {self.cause}"
        return f"Connect to {self.url} failed"


class ChannelNotOpen(SahayakError):
    """send() was called on a channel that is not open."""


class SendFailure(SahayakError):
    """A fallback request could not deliver the message."""


class NetworkError(SendFailure):
    """Connection-level failure talking to the fallback endpoint."""

    def __init__(self, url: str, *, cause: BaseException | None = None):
        self.url = url
        self.cause = cause
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.cause is not None:
            return f"POST {self.url} failed: {type(self.cause).__name__}: {self.cause}"
        return f"POST {self.url} failed"


class ServerError(SendFailure):
    """The fallback endpoint answered, but not with a usable reply."""

    def __init__(
        self,
        status: int,
        *,
        url: str,
        detail: str | None = None,
    ):
        self.status = int(status)
        self.url = url
        self.detail = detail
        super().__init__(self.__str__())

    def __str__(self) -> str:
        detail = (self.detail or "").strip()
        if detail:
            return f"HTTP {self.status} POST {self.url}: {detail}"
        return f"HTTP {self.status} POST {self.url}"


class ProtocolError(SahayakError):
    """Malformed/invalid frame from the agent."""

    def __init__(self, message: str, *, payload_preview: str | None = None):
        self.message = message
        self.payload_preview = payload_preview
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.payload_preview:
            return f"Protocol error: {self.message} (payload={self.payload_preview!r})"
        return f"Protocol error: {self.message}"
