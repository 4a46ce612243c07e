"""
Server-side answer generation for ``POST /ask``.

Flow
────
1. prepare(request)
     → score + diversify stories, pick published opinions, rebuild the
       conversation and assemble the prompt
2. generate_stream(request)
     → yields text tokens from Claude as they arrive, then the final
       ``AskResult`` with the numbered source list
3. generate(request)
     → blocking variant used for non-streaming requests
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from dataclasses import dataclass
from typing import TYPE_CHECKING

import anthropic

from pulse.conversation import messages_from_turns
from pulse.models import AskRequest, AskResult, SourceRef
from pulse.prompts import build_prompt, select_opinions, sources_for
from pulse.retrieval import retrieve

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

QUOTA_MESSAGE = "Rate limit or quota exceeded; the model is in high demand."


@dataclass
class PreparedPrompt:
    prompt: str
    sources: list[SourceRef]


def prepare(request: AskRequest, settings: Settings) -> PreparedPrompt:
    """Run retrieval and assemble the prompt for *request*."""
    stories = retrieve(request.question, request.news_data, top_k=settings.top_k)
    opinions = select_opinions(request.opinions, limit=settings.max_opinions)
    history = messages_from_turns(request.conversation_history)

    prompt = build_prompt(
        request.question,
        stories,
        opinions=opinions,
        history=history,
        entities=request.previous_entities,
    )
    logger.info(
        "Prepared prompt question=%r stories=%d opinions=%d history=%d",
        request.question, len(stories), len(opinions), len(history),
    )
    return PreparedPrompt(prompt=prompt, sources=sources_for(stories))


def _client(settings: Settings) -> anthropic.Anthropic:
    return anthropic.Anthropic(api_key=settings.anthropic_api_key, max_retries=3)


def describe_error(exc: Exception) -> str:
    """Message sent to the client for a failed generation."""
    if isinstance(exc, anthropic.RateLimitError):
        return QUOTA_MESSAGE
    if isinstance(exc, anthropic.APIStatusError) and exc.status_code == 529:
        return QUOTA_MESSAGE
    return str(exc) or exc.__class__.__name__


# ── Streaming ──────────────────────────────────────────────────────────────

def generate_stream(
    request: AskRequest,
    settings: Settings,
) -> Generator[tuple[str, object], None, None]:
    """Stream a grounded answer.

    Yields ``(event_type, payload)`` tuples:

    * ``("token", str)``        — a text chunk from Claude's response
    * ``("done", AskResult)``   — the complete answer and its sources (last event)

    Raises:
        ValueError: If the question is blank.
        anthropic.APIError: On API errors.
    """
    if not request.question.strip():
        raise ValueError("Question must not be empty.")

    prepared = prepare(request, settings)
    text_parts: list[str] = []

    with _client(settings).messages.stream(
        model=settings.chat_model,
        max_tokens=settings.max_tokens,
        messages=[{"role": "user", "content": prepared.prompt}],
    ) as stream:
        for event in stream:
            if getattr(event, "type", None) != "content_block_delta":
                continue
            delta = getattr(event, "delta", None)
            if delta and getattr(delta, "type", None) == "text_delta":
                text_parts.append(delta.text)
                yield ("token", delta.text)

    full_text = "".join(text_parts)
    logger.info("Answer complete: %d chars", len(full_text))
    yield ("done", AskResult(text=full_text, sources=prepared.sources))


# ── Blocking ───────────────────────────────────────────────────────────────

def generate(request: AskRequest, settings: Settings) -> AskResult:
    """Return a grounded answer in one piece."""
    if not request.question.strip():
        raise ValueError("Question must not be empty.")

    prepared = prepare(request, settings)
    response = _client(settings).messages.create(
        model=settings.chat_model,
        max_tokens=settings.max_tokens,
        messages=[{"role": "user", "content": prepared.prompt}],
    )
    text = "".join(
        getattr(block, "text", "") for block in response.content
        if getattr(block, "type", None) == "text"
    )
    return AskResult(text=text, sources=prepared.sources)
