"""Tests for pulse/client.py — /ask HTTP client with retry."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from config.settings import Settings
from pulse.client import PulseClient, error_message
from pulse.errors import ProxyError, StreamError, TransportError
from pulse.models import AskRequest, NewsStory

URL = "http://pulse.test/ask"


def make_settings(**overrides) -> Settings:
    values = dict(proxy_url=URL, max_retries=2, retry_backoff=0.0, stream_deadline=30.0)
    values.update(overrides)
    return Settings(**values)


def make_request() -> AskRequest:
    return AskRequest(
        question="speed limiters",
        news_data={"Local": [NewsStory(id="L01", headline="Speed Limiters")]},
    )


def sse(*payloads: dict) -> str:
    return "".join(f"data: {json.dumps(p)}\n\n" for p in payloads) + "data: [DONE]\n\n"


def make_client(handler, **overrides) -> PulseClient:
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return PulseClient(make_settings(**overrides), http_client=http)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("pulse.client.time.sleep") as sleep:
        yield sleep


class TestErrorMessage:
    def test_prefers_message_field(self):
        resp = httpx.Response(500, json={"error": "AI service unavailable",
                                         "message": "Failed to connect"})
        assert error_message(resp) == "Failed to connect"

    def test_falls_back_to_error_field(self):
        assert error_message(httpx.Response(400, json={"error": "Bad"})) == "Bad"

    def test_non_json_body(self):
        assert error_message(httpx.Response(502, text="<html>")) == "Proxy error: 502 Bad Gateway"


class TestStreamAnswer:
    def test_posts_camel_case_body_and_streams(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text=sse(
                {"text": "Limiters "},
                {"text": "proposed [1]."},
                {"done": True, "fullText": "Limiters proposed [1].",
                 "sources": [{"title": "Speed Limiters", "index": 1}]},
            ))

        events = list(make_client(handler).stream_answer(make_request()))

        assert seen["body"]["stream"] is True
        assert "newsData" in seen["body"]
        assert seen["body"]["newsData"]["Local"][0]["headline"] == "Speed Limiters"
        assert [p for t, p in events if t == "token"] == ["Limiters ", "proposed [1]."]
        result = events[-1][1]
        assert result.text == "Limiters proposed [1]."
        assert result.sources[0].title == "Speed Limiters"

    def test_retries_5xx_then_succeeds(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) < 3:
                return httpx.Response(503, json={"error": "down"})
            return httpx.Response(200, text=sse({"text": "ok"}, {"done": True}))

        events = list(make_client(handler).stream_answer(make_request()))
        assert len(calls) == 3
        assert events[-1][1].text == "ok"
        assert no_sleep.call_count == 2

    def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(500, json={"message": "boom"})

        with pytest.raises(ProxyError, match="boom"):
            list(make_client(handler, max_retries=1).stream_answer(make_request()))
        assert len(calls) == 2

    def test_4xx_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(400, json={"error": 'Missing "question"'})

        with pytest.raises(ProxyError) as info:
            list(make_client(handler).stream_answer(make_request()))
        assert info.value.status_code == 400
        assert len(calls) == 1

    def test_connect_error_becomes_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            list(make_client(handler, max_retries=0).stream_answer(make_request()))

    def test_error_event_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, text=sse({"error": "quota exceeded"}))

        with pytest.raises(StreamError):
            list(make_client(handler).stream_answer(make_request()))
        assert len(calls) == 1

    def test_not_retried_after_first_chunk(self):
        calls = []

        class DropsMidStream(httpx.SyncByteStream):
            def __iter__(self):
                yield b'data: {"text": "A"}\n\n'
                raise httpx.ReadError("connection reset")

        def handler(request):
            calls.append(1)
            return httpx.Response(200, stream=DropsMidStream())

        tokens = []
        with pytest.raises(TransportError):
            for event_type, payload in make_client(handler).stream_answer(make_request()):
                if event_type == "token":
                    tokens.append(payload)
        assert tokens == ["A"]
        assert len(calls) == 1


class TestAnswer:
    def test_non_streaming(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"text": "Done [1]",
                                             "sources": [{"title": "T", "index": 1}]})

        result = make_client(handler).answer(make_request())
        assert seen["body"]["stream"] is False
        assert result.text == "Done [1]"
        assert result.sources[0].index == 1

    def test_timeout_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"text": "ok", "sources": []})

        assert make_client(handler).answer(make_request()).text == "ok"
        assert len(calls) == 2

    def test_malformed_body_is_proxy_error(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(ProxyError, match="Malformed answer body") as info:
            make_client(handler).answer(make_request())
        assert info.value.status_code == 200
        assert len(calls) == 1

    def test_wrong_shape_is_proxy_error(self):
        def handler(request):
            return httpx.Response(200, json=["not", "an", "answer"])

        with pytest.raises(ProxyError, match="Malformed answer body"):
            make_client(handler).answer(make_request())
