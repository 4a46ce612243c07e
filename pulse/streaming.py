"""
Consumer for the ``/ask`` Server-Sent-Event stream.

Wire format
───────────
Each event is one line ``data: <json>`` followed by a blank line:

  {"text": "..."}                                   partial answer chunk
  {"done": true, "fullText": "...", "sources": []}  terminal: answer complete
  {"error": "..."}                                  terminal: failure

``data: [DONE]`` marks the end of the body. Lines without the ``data: ``
prefix are ignored.

Parsing
───────
``parse_line()`` returns a typed event per line. A payload that is not valid
JSON comes back as ``PartialLine``: chunk boundaries do not line up with
event boundaries, so these are logged and skipped. ``StreamConsumer`` owns
the state machine (streaming → completed | errored | cancelled) and checks
the cancel token and deadline before every chunk read.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Generator, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from pydantic import ValidationError

from pulse.errors import (
    RequestCancelled,
    StreamError,
    StreamTimeoutError,
    StreamTruncatedError,
)
from pulse.models import AskResult, SourceRef

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
END_MARKER = "[DONE]"


# ── Events ─────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextChunk:
    text: str


@dataclass(frozen=True)
class StreamDone:
    full_text: Optional[str]
    sources: list[SourceRef] = field(default_factory=list)


@dataclass(frozen=True)
class StreamFailure:
    message: str


@dataclass(frozen=True)
class PartialLine:
    """A ``data:`` payload that did not decode; safe to skip."""

    raw: str


@dataclass(frozen=True)
class EndOfStream:
    pass


StreamEvent = Union[TextChunk, StreamDone, StreamFailure, PartialLine, EndOfStream]


class StreamState(str, Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"


# ── Cancellation ───────────────────────────────────────────────────────────────


class CancelToken:
    """Thread-safe flag a caller sets to abandon an in-flight answer."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ── Parsing ────────────────────────────────────────────────────────────────────


def _parse_sources(raw: object) -> list[SourceRef]:
    sources: list[SourceRef] = []
    for item in raw if isinstance(raw, list) else []:
        try:
            sources.append(SourceRef.model_validate(item))
        except ValidationError:
            logger.warning("Dropping malformed source entry: %r", item)
    return sources


def parse_line(line: str) -> Optional[StreamEvent]:
    """Decode one stream line.

    Returns ``None`` for lines that carry no event (blank lines, comments,
    payloads without a recognised field).

    Examples:
        >>> parse_line('data: {"text": "Hi"}')
        TextChunk(text='Hi')
        >>> parse_line('data: {"tex')
        PartialLine(raw='{"tex')
        >>> parse_line("") is None
        True
    """
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if payload == END_MARKER:
        return EndOfStream()

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return PartialLine(raw=payload)
    if not isinstance(data, dict):
        return None

    if data.get("error"):
        return StreamFailure(message=str(data["error"]))
    if data.get("done"):
        return StreamDone(
            full_text=data.get("fullText"),
            sources=_parse_sources(data.get("sources")),
        )
    if isinstance(data.get("text"), str):
        return TextChunk(text=data["text"])
    return None


def iter_lines(chunks: Iterable[str]) -> Iterator[str]:
    """Reassemble newline-terminated lines from arbitrary text chunks.

    Whatever is left in the buffer at the end is yielded as a final line.
    """
    buffer = ""
    for chunk in chunks:
        buffer += chunk
        *complete, buffer = buffer.split("\n")
        yield from complete
    if buffer:
        yield buffer


# ── Consumer ───────────────────────────────────────────────────────────────────


class StreamConsumer:
    """Accumulates one streamed answer.

    ``consume()`` is a generator yielding ``(event_type, payload)`` tuples:

    * ``("token", str)``       — an answer chunk, in arrival order
    * ``("done", AskResult)``  — the final answer (always the last event)

    Raises:
        StreamError: The stream carried an ``error`` event.
        StreamTruncatedError: Input ended with no terminal event and no text.
        StreamTimeoutError: *deadline* seconds elapsed.
        RequestCancelled: *cancel* was triggered.
    """

    def __init__(
        self,
        cancel: Optional[CancelToken] = None,
        deadline: Optional[float] = None,
    ) -> None:
        self.cancel = cancel
        self.deadline = deadline
        self.state = StreamState.STREAMING
        self.result: Optional[AskResult] = None
        self._parts: list[str] = []
        self._started_at: Optional[float] = None

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def started(self) -> bool:
        """True once any chunk has been handed to the caller."""
        return bool(self._parts) or self.state != StreamState.STREAMING

    def _check(self) -> None:
        if self.cancel is not None and self.cancel.cancelled:
            self.state = StreamState.CANCELLED
            raise RequestCancelled("Request cancelled by caller.")
        if self.deadline is not None and self._started_at is not None:
            if time.monotonic() - self._started_at > self.deadline:
                self.state = StreamState.ERRORED
                raise StreamTimeoutError(
                    f"No complete answer within {self.deadline:g} seconds."
                )

    def _complete(self, full_text: Optional[str], sources: list[SourceRef]) -> AskResult:
        self.state = StreamState.COMPLETED
        self.result = AskResult(
            text=full_text if full_text is not None else self.text,
            sources=sources,
        )
        return self.result

    def consume(self, chunks: Iterable[str]) -> Generator[tuple[str, object], None, None]:
        """Read *chunks* (raw response text) until the answer completes."""
        self._started_at = time.monotonic()
        chunk_iter = iter(chunks)

        def _guarded() -> Iterator[str]:
            while True:
                self._check()
                try:
                    chunk = next(chunk_iter)
                except StopIteration:
                    return
                self._check()
                yield chunk

        for line in iter_lines(_guarded()):
            event = parse_line(line)

            if event is None:
                continue

            if isinstance(event, PartialLine):
                logger.warning("Skipping undecodable stream line: %.80r", event.raw)
                continue

            if isinstance(event, TextChunk):
                if event.text:
                    self._parts.append(event.text)
                    yield ("token", event.text)

            elif isinstance(event, StreamDone):
                yield ("done", self._complete(event.full_text, event.sources))
                return

            elif isinstance(event, StreamFailure):
                self.state = StreamState.ERRORED
                raise StreamError(event.message)

            elif isinstance(event, EndOfStream):
                break

        # Input ended without a terminal event.
        if not self._parts:
            self.state = StreamState.ERRORED
            raise StreamTruncatedError("Stream ended before any answer arrived.")
        logger.warning("Stream ended without a done event; using %d accumulated chars",
                       len(self.text))
        yield ("done", self._complete(None, []))
