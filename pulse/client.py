"""HTTP client for the Ask Pulse AI ``/ask`` endpoint."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Generator
from typing import TYPE_CHECKING, Optional

import httpx
from pydantic import ValidationError

from pulse.errors import PulseError, ProxyError, TransportError
from pulse.models import AskRequest, AskResult
from pulse.streaming import CancelToken, StreamConsumer

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)


def error_message(response: httpx.Response) -> str:
    """Best-effort human message from an error response body."""
    fallback = f"Proxy error: {response.status_code} {response.reason_phrase}".strip()
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        for key in ("message", "error"):
            if isinstance(body.get(key), str) and body[key]:
                return body[key]
    return fallback


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    response.read()
    raise ProxyError(response.status_code, error_message(response))


class PulseClient:
    """Talks to the ``/ask`` proxy.

    Connection failures, timeouts and 5xx responses are retried with
    exponential backoff, but only until the first answer chunk has been
    delivered; 4xx responses are never retried.

    The ``httpx.Client`` may be injected (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(settings.request_timeout, connect=10.0),
        )

    def close(self) -> None:
        self._http.close()

    # ── Retry ──────────────────────────────────────────────────────────────

    def _backoff(self, attempt: int) -> None:
        delay = self.settings.retry_backoff * (2 ** attempt) + random.random() * 0.1
        logger.info("Retrying /ask in %.2fs (attempt %d)", delay, attempt + 1)
        time.sleep(delay)

    def _should_retry(self, exc: PulseError, attempt: int) -> bool:
        return exc.retryable and attempt < self.settings.max_retries

    # ── Streaming ──────────────────────────────────────────────────────────

    def stream_answer(
        self,
        request: AskRequest,
        cancel: Optional[CancelToken] = None,
    ) -> Generator[tuple[str, object], None, None]:
        """Ask a question and stream the answer.

        Yields ``("token", str)`` chunks followed by one ``("done", AskResult)``.

        Raises:
            ProxyError: Non-success HTTP status.
            TransportError: Network failure or timeout.
            StreamError, StreamTruncatedError, StreamTimeoutError,
            RequestCancelled: See ``StreamConsumer``.
        """
        body = request.model_copy(update={"stream": True}).model_dump(
            mode="json", by_alias=True
        )
        attempt = 0
        while True:
            consumer = StreamConsumer(cancel=cancel, deadline=self.settings.stream_deadline)
            try:
                try:
                    with self._http.stream(
                        "POST", self.settings.proxy_url, json=body,
                        headers={"Accept": "text/event-stream"},
                    ) as response:
                        _raise_for_status(response)
                        yield from consumer.consume(response.iter_text())
                        return
                except httpx.TimeoutException as exc:
                    raise TransportError(f"Timed out contacting the newsroom: {exc}") from exc
                except httpx.TransportError as exc:
                    raise TransportError(f"Could not reach the newsroom: {exc}") from exc
            except PulseError as exc:
                if consumer.started or not self._should_retry(exc, attempt):
                    raise
                logger.warning("/ask attempt %d failed: %s", attempt + 1, exc)
                self._backoff(attempt)
                attempt += 1

    # ── Non-streaming ──────────────────────────────────────────────────────

    def answer(self, request: AskRequest) -> AskResult:
        """Ask a question and wait for the complete JSON answer."""
        body = request.model_copy(update={"stream": False}).model_dump(
            mode="json", by_alias=True
        )
        attempt = 0
        while True:
            try:
                try:
                    response = self._http.post(self.settings.proxy_url, json=body)
                except httpx.TimeoutException as exc:
                    raise TransportError(f"Timed out contacting the newsroom: {exc}") from exc
                except httpx.TransportError as exc:
                    raise TransportError(f"Could not reach the newsroom: {exc}") from exc
                _raise_for_status(response)
                try:
                    return AskResult.model_validate(response.json())
                except (ValueError, ValidationError) as exc:
                    raise ProxyError(
                        response.status_code, f"Malformed answer body: {exc}"
                    ) from exc
            except PulseError as exc:
                if not self._should_retry(exc, attempt):
                    raise
                logger.warning("/ask attempt %d failed: %s", attempt + 1, exc)
                self._backoff(attempt)
                attempt += 1
