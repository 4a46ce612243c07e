"""
Per-session conversation state for Ask Pulse AI.

A ``ConversationSession`` is owned by whoever drives the chat (one per
browser tab, one per user) and handed to each query explicitly. It holds

* a rolling message history, capped at ``history_limit`` entries with the
  oldest dropped first, and
* a ``ConversationContext`` tracking entities, topics and article numbers
  mentioned so far, used to resolve pronouns in follow-up questions.

Entity extraction sits behind the ``EntityExtractor`` protocol; the default
``CapitalizedBigramExtractor`` treats any two adjacent capitalised words as
a name.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Literal, Optional, Protocol

from pulse.models import ChatPart, ChatTurn
from pulse.retrieval import tokenize

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationMessage:
    role: Role
    content: str


# ── Entity extraction ──────────────────────────────────────────────────────────


class EntityExtractor(Protocol):
    """Anything that can pull candidate named entities out of answer text."""

    def extract(self, text: str) -> list[str]:
        ...


_NAME_RE = re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b")
_CITATION_RE = re.compile(r"\[(\d+)\]")


class CapitalizedBigramExtractor:
    """Treat every pair of adjacent capitalised words as an entity.

    Examples:
        >>> CapitalizedBigramExtractor().extract("Finance Minister Mthuli Ncube said")
        ['Finance Minister', 'Mthuli Ncube']
    """

    def extract(self, text: str) -> list[str]:
        return _NAME_RE.findall(text)


# ── Context ────────────────────────────────────────────────────────────────────


@dataclass
class ConversationContext:
    """What has been talked about so far.

    Sets are kept as insertion-ordered dicts so the most recent mention is
    always last.
    """

    entities: dict[str, None] = field(default_factory=dict)
    topics: dict[str, None] = field(default_factory=dict)
    articles: dict[str, None] = field(default_factory=dict)
    last_entity: Optional[str] = None

    def update(
        self,
        question: str,
        answer: str,
        extractor: EntityExtractor,
    ) -> None:
        """Fold one completed exchange into the context."""
        names = extractor.extract(answer)
        for name in names:
            self.entities.pop(name, None)
            self.entities[name] = None
        if names:
            self.last_entity = names[-1]

        for ref in _CITATION_RE.findall(answer):
            self.articles[ref] = None

        for topic in tokenize(question):
            self.topics[topic] = None

    def entity_hints(self) -> list[str]:
        """Entities for the ``previousEntities`` field, most recent last."""
        hints = [e for e in self.entities if e != self.last_entity]
        if self.last_entity:
            hints.append(self.last_entity)
        return hints


# ── Session ────────────────────────────────────────────────────────────────────


class ConversationSession:
    """Rolling history plus entity context for one chat.

    Not thread-safe: callers must keep at most one query in flight per
    session.
    """

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        extractor: Optional[EntityExtractor] = None,
    ) -> None:
        self.history_limit = history_limit
        self.extractor: EntityExtractor = extractor or CapitalizedBigramExtractor()
        self._history: deque[ConversationMessage] = deque(maxlen=history_limit)
        self.context = ConversationContext()

    @property
    def history(self) -> list[ConversationMessage]:
        return list(self._history)

    def add_message(self, role: Role, content: str) -> None:
        self._history.append(ConversationMessage(role=role, content=content))

    def record_exchange(self, question: str, answer: str) -> None:
        """Append a user question and its answer, then update the context."""
        self.add_message("user", question)
        self.add_message("assistant", answer)
        self.context.update(question, answer, self.extractor)
        logger.debug(
            "Session history=%d entities=%d",
            len(self._history), len(self.context.entities),
        )

    def chat_turns(self) -> list[ChatTurn]:
        """History in the hosted-model format (``assistant`` becomes ``model``)."""
        return [
            ChatTurn(
                role="user" if m.role == "user" else "model",
                parts=[ChatPart(text=m.content)],
            )
            for m in self._history
        ]

    def reset(self) -> None:
        self._history.clear()
        self.context = ConversationContext()


def messages_from_turns(turns: list[ChatTurn]) -> list[ConversationMessage]:
    """Convert hosted-model turns back into ``ConversationMessage`` objects."""
    return [
        ConversationMessage(
            role="user" if turn.role == "user" else "assistant",
            content="".join(part.text for part in turn.parts),
        )
        for turn in turns
    ]
