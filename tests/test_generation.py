"""
Tests for pulse/generation.py

Run with: pytest tests/test_generation.py
"""

from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from config.settings import Settings
from pulse.generation import QUOTA_MESSAGE, describe_error, generate, generate_stream, prepare
from pulse.models import AskRequest, ChatPart, ChatTurn, NewsStory, Opinion


@pytest.fixture
def settings() -> Settings:
    return Settings(anthropic_api_key="test-key")


@pytest.fixture
def ask_request() -> AskRequest:
    return AskRequest(
        question="speed limiters",
        news_data={
            "Local (Zim)": [
                NewsStory(id="L01", headline="Speed Limiters Proposed for Buses",
                          url="https://example.com/l01"),
                NewsStory(id="L02", headline="Water restored"),
            ],
        },
        conversation_history=[
            ChatTurn(role="user", parts=[ChatPart(text="Earlier question")]),
            ChatTurn(role="model", parts=[ChatPart(text="Earlier answer")]),
        ],
        opinions=[Opinion(id="o1", headline="Limiters Are Overdue", status="published")],
        previous_entities=["Felix Mhona"],
    )


def text_event(text: str) -> MagicMock:
    event = MagicMock()
    event.type = "content_block_delta"
    delta = MagicMock()
    delta.type = "text_delta"
    delta.text = text
    event.delta = delta
    return event


class TestPrepare:
    def test_prompt_and_sources(self, ask_request, settings):
        prepared = prepare(ask_request, settings)

        assert "[1] Headline: Speed Limiters Proposed for Buses" in prepared.prompt
        assert "Water restored" not in prepared.prompt
        assert "[OPINION 1] Headline: Limiters Are Overdue" in prepared.prompt
        assert "User: Earlier question" in prepared.prompt
        assert "Pulse AI: Earlier answer" in prepared.prompt
        assert "Felix Mhona" in prepared.prompt
        assert len(prepared.sources) == 1
        assert prepared.sources[0].index == 1
        assert prepared.sources[0].url == "https://example.com/l01"


class TestGenerateStream:
    def test_empty_question_raises(self, ask_request, settings):
        blank = ask_request.model_copy(update={"question": "  "})
        with pytest.raises(ValueError, match="empty"):
            list(generate_stream(blank, settings))

    @patch("pulse.generation.anthropic.Anthropic")
    def test_yields_tokens_then_done(self, mock_cls, ask_request, settings):
        start = MagicMock()
        start.type = "message_start"

        fake_stream = MagicMock()
        fake_stream.__iter__ = MagicMock(
            return_value=iter([start, text_event("Limiters "), text_event("proposed [1].")])
        )
        fake_stream.__enter__ = MagicMock(return_value=fake_stream)
        fake_stream.__exit__ = MagicMock(return_value=False)

        mock_client = MagicMock()
        mock_client.messages.stream.return_value = fake_stream
        mock_cls.return_value = mock_client

        events = list(generate_stream(ask_request, settings))

        assert events[:2] == [("token", "Limiters "), ("token", "proposed [1].")]
        event_type, result = events[-1]
        assert event_type == "done"
        assert result.text == "Limiters proposed [1]."
        assert result.sources[0].title == "Speed Limiters Proposed for Buses"

        kwargs = mock_client.messages.stream.call_args.kwargs
        assert kwargs["model"] == settings.chat_model
        assert "USER QUESTION: speed limiters" in kwargs["messages"][0]["content"]


class TestGenerate:
    @patch("pulse.generation.anthropic.Anthropic")
    def test_returns_text_and_sources(self, mock_cls, ask_request, settings):
        block = MagicMock()
        block.type = "text"
        block.text = "Answer [1]"
        response = MagicMock()
        response.content = [block]

        mock_client = MagicMock()
        mock_client.messages.create.return_value = response
        mock_cls.return_value = mock_client

        result = generate(ask_request, settings)

        assert result.text == "Answer [1]"
        assert result.sources[0].index == 1


class TestDescribeError:
    def test_rate_limit_maps_to_quota_message(self):
        response = httpx.Response(429, request=httpx.Request("POST", "https://api.test"))
        exc = anthropic.RateLimitError("slow down", response=response, body=None)
        assert describe_error(exc) == QUOTA_MESSAGE

    def test_other_errors_use_message(self):
        assert describe_error(RuntimeError("boom")) == "boom"
