"""Prompt assembly for Ask Pulse AI.

``build_prompt()`` turns the selected stories, a few published opinions, the
recent conversation and the entity hints into one instruction block for the
hosted model. Everything here is plain string construction.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Optional

from pulse.conversation import ConversationMessage
from pulse.models import NewsStory, Opinion, SourceRef

DEFAULT_MAX_OPINIONS = 3
#: Exchanges (user + assistant pairs) quoted back to the model.
PROMPT_EXCHANGES = 3

SYSTEM_PROMPT = """\
You are "Pulse AI", the news assistant for Morning Pulse. You help readers understand \
the stories Morning Pulse has published by answering questions about specific articles, \
people, events and topics.

RULES:
1. Answer the reader's intent, not just the category. A question about a person, place \
or event should draw on every supplied article that covers it.
2. Handle question types directly:
   - WHO: name the people involved, their roles and what they did or said.
   - WHAT: explain the event, decision or outcome.
   - WHERE / WHEN: give the locations, dates and timeline stated in the articles.
   - WHY / HOW: explain causes, motivations, methods and mechanisms the articles describe.
   - Comparison, explanation, reaction and "what next" questions: summarise only what \
the articles report, attributed to them.
3. Follow-up questions: use the conversation so far. Pronouns (he, she, they, it) refer \
to the most recently mentioned entity unless the reader says otherwise. If the referent \
is unclear, ask which one they mean.
4. Cite every claim with the bracketed article number, e.g. [1] or [2]. Cite opinion \
pieces as [OPINION 1] and attribute their views to the author.
5. Extract specifics: names and titles, exact quotes in quotation marks, numbers, dates, \
places, organisations and policy details.
6. If sources disagree, say so and cite both.
7. Only use the supplied articles and opinions. Do not speculate, do not add outside \
information and do not give your own opinion.
8. Be concise for simple questions and thorough for complex ones. Use short paragraphs \
and lists where they help."""

FOOTER = """\
INSTRUCTIONS:
- Answer the USER QUESTION using only the NEWS ARTICLES and OPINION PIECES above.
- Cite sources by their bracket number, e.g. [1], [2], [OPINION 1].
- If the material does not contain the answer, say: "I don't have information about \
that in Morning Pulse's recent reporting." and mention what related topics the articles \
do cover."""

NOT_SPECIFIED = "Not specified"


# ── Helpers ────────────────────────────────────────────────────────────────────


def _story_date(story: NewsStory) -> str:
    if story.date:
        return story.date
    if story.timestamp is not None:
        dt = datetime.fromtimestamp(story.timestamp / 1000, tz=timezone.utc)
        return dt.strftime("%Y-%m-%d %H:%M UTC")
    return NOT_SPECIFIED


def _opinion_sort_key(opinion: Opinion) -> float:
    stamp = opinion.published_at or opinion.submitted_at
    if stamp is None:
        return 0.0
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp.timestamp()


def select_opinions(
    opinions: Sequence[Opinion],
    limit: int = DEFAULT_MAX_OPINIONS,
) -> list[Opinion]:
    """Return up to *limit* published opinions, most recent first."""
    published = [o for o in opinions if o.published]
    published.sort(key=_opinion_sort_key, reverse=True)
    return published[:max(limit, 0)]


def sources_for(stories: Sequence[NewsStory]) -> list[SourceRef]:
    """Numbered source list matching the ``[n]`` labels in the prompt."""
    return [
        SourceRef(title=story.headline, url=story.url, index=i)
        for i, story in enumerate(stories, start=1)
    ]


# ── Sections ───────────────────────────────────────────────────────────────────


def format_stories(stories: Sequence[NewsStory]) -> str:
    if not stories:
        return "NEWS ARTICLES:\n(No matching articles were found.)"
    blocks = [
        f"[{i}] Headline: {story.headline or ''}\n"
        f"Category: {story.category or ''}\n"
        f"Source: {story.source or ''}\n"
        f"Details: {story.detail or ''}\n"
        f"Date: {_story_date(story)}"
        for i, story in enumerate(stories, start=1)
    ]
    return "NEWS ARTICLES:\n" + "\n\n".join(blocks)


def format_opinions(opinions: Sequence[Opinion]) -> str:
    blocks = []
    for i, op in enumerate(opinions, start=1):
        author = op.author_name or "Unknown author"
        if op.author_title:
            author = f"{author}, {op.author_title}"
        blocks.append(
            f"[OPINION {i}] Headline: {op.headline or ''}\n"
            f"Sub-headline: {op.sub_headline or ''}\n"
            f"Author: {author}\n"
            f"Category: {op.category or ''}\n"
            f"Body: {op.body or ''}"
        )
    return "OPINION PIECES:\n" + "\n\n".join(blocks)


def format_history(history: Sequence[ConversationMessage]) -> str:
    recent = list(history)[-PROMPT_EXCHANGES * 2:]
    lines = [
        f"{'User' if m.role == 'user' else 'Pulse AI'}: {m.content}"
        for m in recent
    ]
    return "RECENT CONVERSATION:\n" + "\n".join(lines)


def format_entities(entities: Sequence[str]) -> str:
    text = "CONVERSATION CONTEXT:\nPreviously mentioned entities: " + ", ".join(entities)
    # The last entity is the most recent mention.
    return text + f"\nPronouns most likely refer to: {entities[-1]}"


# ── Public interface ───────────────────────────────────────────────────────────


def build_prompt(
    question: str,
    stories: Sequence[NewsStory],
    opinions: Sequence[Opinion] = (),
    history: Sequence[ConversationMessage] = (),
    entities: Optional[Sequence[str]] = None,
) -> str:
    """Assemble the full instruction block for one question.

    Args:
        question: The reader's question, included verbatim.
        stories: Selected stories, numbered ``[1]``, ``[2]``… in this order.
        opinions: Opinions to include (already filtered, see ``select_opinions``).
        history: Conversation so far; only the last three exchanges are used.
        entities: Previously mentioned entities, most recent last.

    Returns:
        The prompt text.
    """
    sections = [SYSTEM_PROMPT, format_stories(stories)]
    if opinions:
        sections.append(format_opinions(opinions))
    if history:
        sections.append(format_history(history))
    if entities:
        sections.append(format_entities(entities))
    sections.append(f"USER QUESTION: {question}")
    sections.append(FOOTER)
    return "\n\n".join(sections)
