"""
Ask Pulse AI query boundary.

``PulseAssistant`` is what the chat UI calls. It turns a question plus the
current feed into an ``AskRequest``, streams the answer from the proxy,
updates the caller's ``ConversationSession`` on success and formats
citations. Every failure is converted into a friendly assistant message so
the chat never shows a raw exception.
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Optional

from pulse.citations import FormattedAnswer, format_citations
from pulse.client import PulseClient
from pulse.conversation import ConversationSession
from pulse.errors import PulseError, RequestCancelled, is_quota_error
from pulse.models import AskRequest, NewsStory, Opinion, SourceRef
from pulse.streaming import CancelToken

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "I encountered an error connecting to the newsroom. Please try again."
HIGH_DEMAND_MESSAGE = (
    "Pulse AI is currently experiencing high demand. Please try again in a moment."
)


@dataclass
class Answer:
    """What the chat UI renders for one question."""

    text: str
    formatted: FormattedAnswer
    sources: list[SourceRef] = field(default_factory=list)
    error: bool = False
    cancelled: bool = False


def _failure(message: str) -> Answer:
    return Answer(text=message, formatted=FormattedAnswer(text=message), error=True)


class PulseAssistant:
    """Runs one question at a time against the ``/ask`` proxy for a session."""

    def __init__(self, client: PulseClient, session: ConversationSession) -> None:
        self.client = client
        self.session = session

    def build_request(
        self,
        question: str,
        news_data: Mapping[str, Sequence[NewsStory]],
        opinions: Sequence[Opinion] = (),
    ) -> AskRequest:
        return AskRequest(
            question=question,
            news_data={k: list(v) for k, v in news_data.items()},
            conversation_history=self.session.chat_turns(),
            opinions=list(opinions),
            previous_entities=self.session.context.entity_hints(),
            stream=True,
        )

    def ask_stream(
        self,
        question: str,
        news_data: Mapping[str, Sequence[NewsStory]],
        opinions: Sequence[Opinion] = (),
        cancel: Optional[CancelToken] = None,
    ) -> Generator[tuple[str, object], None, None]:
        """Stream an answer.

        Yields ``("token", str)`` chunks, then exactly one ``("answer", Answer)``.
        A blank question yields nothing.
        """
        question = question.strip()
        if not question:
            return

        logger.info("Ask Pulse AI question=%r", question)
        request = self.build_request(question, news_data, opinions)

        try:
            for event_type, payload in self.client.stream_answer(request, cancel=cancel):
                if event_type == "token":
                    yield ("token", payload)
                elif event_type == "done":
                    result = payload
                    self.session.record_exchange(question, result.text)
                    yield ("answer", Answer(
                        text=result.text,
                        formatted=format_citations(result.text, result.sources),
                        sources=result.sources,
                    ))
                    return
        except RequestCancelled:
            logger.info("Question abandoned: %r", question)
            yield ("answer", Answer(
                text="", formatted=FormattedAnswer(text=""), cancelled=True,
            ))
        except PulseError as exc:
            logger.exception("Ask Pulse AI failed for question=%r", question)
            if is_quota_error(str(exc)):
                yield ("answer", _failure(HIGH_DEMAND_MESSAGE))
            else:
                yield ("answer", _failure(FALLBACK_MESSAGE))

    def ask(
        self,
        question: str,
        news_data: Mapping[str, Sequence[NewsStory]],
        opinions: Sequence[Opinion] = (),
        cancel: Optional[CancelToken] = None,
    ) -> Optional[Answer]:
        """Blocking variant of ``ask_stream``; returns None for a blank question."""
        answer: Optional[Answer] = None
        for event_type, payload in self.ask_stream(question, news_data, opinions, cancel):
            if event_type == "answer":
                answer = payload
        return answer

    def reset(self) -> None:
        self.session.reset()
