"""Tests for pulse/conversation.py — session history and entity context."""

from __future__ import annotations

import pytest

from pulse.conversation import (
    CapitalizedBigramExtractor,
    ConversationContext,
    ConversationSession,
    messages_from_turns,
)
from pulse.models import ChatPart, ChatTurn


class TestCapitalizedBigramExtractor:
    def test_finds_names(self):
        text = "According to [1], Mthuli Ncube announced the budget."
        assert CapitalizedBigramExtractor().extract(text) == ["Mthuli Ncube"]

    def test_ignores_single_capitals(self):
        assert CapitalizedBigramExtractor().extract("Harare said no.") == []


class TestConversationContext:
    def test_tracks_entities_articles_and_last_entity(self):
        ctx = ConversationContext()
        ctx.update(
            "Who proposed the speed limiters?",
            "Felix Mhona proposed them [1], backed by Tendai Biti [2].",
            CapitalizedBigramExtractor(),
        )
        assert list(ctx.entities) == ["Felix Mhona", "Tendai Biti"]
        assert list(ctx.articles) == ["1", "2"]
        assert ctx.last_entity == "Tendai Biti"
        assert "speed" in ctx.topics

    def test_entity_hints_put_last_entity_last(self):
        ctx = ConversationContext()
        extractor = CapitalizedBigramExtractor()
        ctx.update("q", "Felix Mhona spoke.", extractor)
        ctx.update("q", "Tendai Biti replied to Felix Mhona.", extractor)
        assert ctx.entity_hints() == ["Tendai Biti", "Felix Mhona"]

    def test_custom_extractor(self):
        class Upper:
            def extract(self, text):
                return [w for w in text.split() if w.isupper()]

        ctx = ConversationContext()
        ctx.update("q", "The RBZ and ZIMRA met.", Upper())
        assert ctx.last_entity == "ZIMRA"


class TestConversationSession:
    def test_record_exchange_appends_user_then_assistant(self):
        session = ConversationSession()
        session.record_exchange("What happened?", "A lot [1].")
        assert [m.role for m in session.history] == ["user", "assistant"]
        assert session.history[0].content == "What happened?"

    @pytest.mark.parametrize("exchanges", [1, 5, 6, 12])
    def test_history_never_exceeds_limit(self, exchanges):
        session = ConversationSession(history_limit=10)
        for i in range(exchanges):
            session.record_exchange(f"q{i}", f"a{i}")
        assert len(session.history) == min(2 * exchanges, 10)

    def test_oldest_dropped_first(self):
        session = ConversationSession(history_limit=10)
        for i in range(6):
            session.record_exchange(f"q{i}", f"a{i}")
        assert session.history[0].content == "q1"
        assert session.history[-1].content == "a5"

    def test_chat_turns_use_model_role(self):
        session = ConversationSession()
        session.record_exchange("q", "a")
        turns = session.chat_turns()
        assert [t.role for t in turns] == ["user", "model"]
        assert turns[1].parts[0].text == "a"

    def test_reset_clears_everything(self):
        session = ConversationSession()
        session.record_exchange("q", "Felix Mhona said so.")
        session.reset()
        assert session.history == []
        assert session.context.entity_hints() == []

    def test_sessions_are_independent(self):
        a, b = ConversationSession(), ConversationSession()
        a.record_exchange("q", "a")
        assert b.history == []


class TestMessagesFromTurns:
    def test_converts_roles_and_joins_parts(self):
        turns = [
            ChatTurn(role="user", parts=[ChatPart(text="Hi")]),
            ChatTurn(role="model", parts=[ChatPart(text="Hel"), ChatPart(text="lo")]),
        ]
        messages = messages_from_turns(turns)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Hi"), ("assistant", "Hello"),
        ]
