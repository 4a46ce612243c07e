"""Keyword retrieval used to ground Ask Pulse AI answers.

Two stages:

1. **Scoring** — ``score_stories()`` rates every story in the category feed
   against the reader's question using term overlap, with a small bonus for
   fresh stories.
2. **Selection** — ``select_diverse()`` keeps at most two stories per
   category and then the overall top *k*, so one busy section cannot crowd
   out the rest of the paper.

Both functions are pure: stories are never mutated and every call returns
new lists.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pulse.models import NewsStory

logger = logging.getLogger(__name__)

# ── Weights ────────────────────────────────────────────────────────────────────

EXACT_PHRASE_BONUS = 10
HEADLINE_TOKEN_WEIGHT = 3
DETAIL_TOKEN_WEIGHT = 1
CATEGORY_TOKEN_WEIGHT = 1

RECENT_DAY_BONUS = 2
RECENT_WEEK_BONUS = 1

MIN_TOKEN_LENGTH = 3
MAX_PER_CATEGORY = 2
DEFAULT_TOP_K = 10

_HOUR_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class ScoredStory:
    """A story with its relevance score for one query."""

    story: NewsStory
    score: int
    category: str


# ── Tokenising ─────────────────────────────────────────────────────────────────


def tokenize(query: str) -> list[str]:
    """Lower-case *query* and return its whitespace tokens longer than two characters.

    Examples:
        >>> tokenize("Who is the new RBZ governor?")
        ['who', 'the', 'new', 'rbz', 'governor?']
    """
    return [tok for tok in query.lower().split() if len(tok) >= MIN_TOKEN_LENGTH]


# ── Scoring ────────────────────────────────────────────────────────────────────


def _now_ms(now: Optional[datetime]) -> float:
    if now is None:
        return time.time() * 1000
    return now.timestamp() * 1000


def recency_bonus(timestamp: Optional[float], now_ms: float) -> int:
    """Return the freshness bonus for a story published at *timestamp* (epoch ms).

    Stories from the last 24 hours (including ones stamped slightly in the
    future) get +2, stories from the last week +1, everything else +0.
    """
    if timestamp is None:
        return 0
    age_hours = (now_ms - timestamp) / _HOUR_MS
    if age_hours <= 24:
        return RECENT_DAY_BONUS
    if age_hours <= 168:
        return RECENT_WEEK_BONUS
    return 0


def keyword_score(query: str, tokens: Sequence[str], story: NewsStory) -> int:
    """Score term overlap between the query and one story (recency excluded)."""
    phrase = query.strip().lower()
    headline = (story.headline or "").lower()
    detail = (story.detail or "").lower()
    category = (story.category or "").lower()

    score = 0
    if phrase and phrase in headline:
        score += EXACT_PHRASE_BONUS
    for token in tokens:
        if token in headline:
            score += HEADLINE_TOKEN_WEIGHT
        if token in detail:
            score += DETAIL_TOKEN_WEIGHT
        if token in category:
            score += CATEGORY_TOKEN_WEIGHT
    return score


def score_stories(
    query: str,
    corpus: Mapping[str, Sequence[NewsStory]],
    now: Optional[datetime] = None,
) -> list[ScoredStory]:
    """Score every story in *corpus* against *query*.

    A story qualifies only if the query overlaps its text; the recency bonus
    is added on top and never qualifies a story on its own. An empty query
    therefore yields an empty list.

    Args:
        query: The reader's free-text question.
        corpus: Category name → stories in feed order.
        now: Reference time for the recency bonus (defaults to the current time).

    Returns:
        Qualifying stories, highest score first. Ties keep corpus order.
    """
    tokens = tokenize(query)
    now_ms = _now_ms(now)

    scored: list[ScoredStory] = []
    for category, stories in corpus.items():
        for story in stories:
            base = keyword_score(query, tokens, story)
            if base <= 0:
                continue
            scored.append(ScoredStory(
                story=story,
                score=base + recency_bonus(story.timestamp, now_ms),
                category=category,
            ))

    scored.sort(key=lambda s: s.score, reverse=True)
    logger.debug("Scored query=%r: %d of %d stories matched",
                 query, len(scored), sum(len(v) for v in corpus.values()))
    return scored


# ── Selection ──────────────────────────────────────────────────────────────────


def select_diverse(
    scored: Sequence[ScoredStory],
    top_k: int = DEFAULT_TOP_K,
    per_category: int = MAX_PER_CATEGORY,
) -> list[ScoredStory]:
    """Pick the best stories while capping each category's contribution.

    Args:
        scored: Output of ``score_stories()`` (any order).
        top_k: Maximum number of stories returned.
        per_category: Maximum stories taken from any one category.

    Returns:
        At most *top_k* stories, highest score first.
    """
    by_category: dict[str, list[ScoredStory]] = {}
    for item in scored:
        by_category.setdefault(item.category, []).append(item)

    picked: list[ScoredStory] = []
    for items in by_category.values():
        ranked = sorted(items, key=lambda s: s.score, reverse=True)
        picked.extend(ranked[:per_category])

    picked.sort(key=lambda s: s.score, reverse=True)
    return picked[:max(top_k, 0)]


def retrieve(
    query: str,
    corpus: Mapping[str, Sequence[NewsStory]],
    top_k: int = DEFAULT_TOP_K,
    now: Optional[datetime] = None,
) -> list[NewsStory]:
    """Score, diversify and return the stories used to ground one answer."""
    selected = select_diverse(score_stories(query, corpus, now=now), top_k=top_k)
    logger.info("Retrieved %d stories for query=%r", len(selected), query)
    return [item.story for item in selected]
