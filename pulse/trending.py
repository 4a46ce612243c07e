"""Trending-articles ranking for the Ask Pulse AI sidebar.

Score = clicks × 1.5 + recency × 10, where recency decays linearly from 1 to
0 over seven days (0.5 when a story has no timestamp).
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Optional

from pulse.models import NewsStory

CLICK_WEIGHT = 1.5
RECENCY_WEIGHT = 10
UNKNOWN_RECENCY = 0.5
DECAY_MS = 7 * 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class TrendingArticle:
    story: NewsStory
    clicks: int
    score: float


def recency_factor(timestamp: Optional[float], now_ms: float) -> float:
    if timestamp is None:
        return UNKNOWN_RECENCY
    return max(0.0, 1 - (now_ms - timestamp) / DECAY_MS)


def rank_trending(
    stories: Sequence[NewsStory],
    clicks: Optional[Mapping[str, int]] = None,
    max_items: int = 10,
    now_ms: Optional[float] = None,
) -> list[TrendingArticle]:
    """Rank *stories* by clicks and freshness.

    Stories with a zero score are dropped unless someone clicked them.
    """
    clicks = clicks or {}
    now_ms = time.time() * 1000 if now_ms is None else now_ms

    ranked = []
    for story in stories:
        count = clicks.get(story.id, 0)
        score = count * CLICK_WEIGHT + recency_factor(story.timestamp, now_ms) * RECENCY_WEIGHT
        if score > 0 or story.id in clicks:
            ranked.append(TrendingArticle(story=story, clicks=count, score=score))

    ranked.sort(key=lambda a: a.score, reverse=True)
    return ranked[:max_items]


def time_ago(timestamp: Optional[float], now_ms: Optional[float] = None) -> str:
    """Short relative age for display.

    Examples:
        >>> time_ago(0, now_ms=90 * 60 * 1000)
        '1h ago'
        >>> time_ago(None)
        ''
    """
    if timestamp is None:
        return ""
    now_ms = time.time() * 1000 if now_ms is None else now_ms
    seconds = max(0, int((now_ms - timestamp) // 1000))
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"
