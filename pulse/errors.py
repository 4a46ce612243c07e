"""Exceptions raised while asking Pulse AI a question."""

from __future__ import annotations

from typing import Optional

_QUOTA_MARKERS = (
    "quota",
    "rate limit",
    "rate_limit",
    "resource exhausted",
    "resource_exhausted",
    "429",
    "high demand",
)


class PulseError(Exception):
    """Base class for every Ask Pulse AI failure."""

    retryable = False


class ProxyError(PulseError):
    """The ``/ask`` endpoint answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code >= 500


class TransportError(PulseError):
    """The endpoint could not be reached, or the connection timed out."""

    retryable = True


class StreamError(PulseError):
    """The stream reported a failure through an ``error`` event."""


class StreamTruncatedError(PulseError):
    """The stream ended before any answer text or terminal event arrived."""


class StreamTimeoutError(PulseError):
    """The answer took longer than the stream deadline."""


class RequestCancelled(PulseError):
    """The caller abandoned the request."""


def is_quota_error(message: Optional[str]) -> bool:
    """Return True if *message* looks like a quota / rate-limit failure.

    Examples:
        >>> is_quota_error("429 RESOURCE_EXHAUSTED: quota exceeded")
        True
        >>> is_quota_error("Proxy error: 502 Bad Gateway")
        False
    """
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in _QUOTA_MARKERS)
