"""
SQLite-backed article bookmarks for Morning Pulse readers.

Schema
──────
table: bookmarks
  id         TEXT PRIMARY KEY   (article id)
  title      TEXT NOT NULL
  url        TEXT
  category   TEXT NOT NULL
  saved_at   TEXT NOT NULL      (ISO-8601 UTC)

Only the ``MAX_BOOKMARKS`` most recently saved articles are kept.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pulse.models import Bookmark

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "bookmarks.db"
MAX_BOOKMARKS = 100


def _db_path() -> Path:
    """Return the database file path, honouring a DB_PATH env var if set."""
    env = os.getenv("DB_PATH")
    return Path(env) if env else DEFAULT_DB_PATH


@contextmanager
def _connect():
    """Yield a connected sqlite3.Connection, creating the file/dir if needed."""
    path = _db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db() -> None:
    """Create the bookmarks table if it doesn't exist yet."""
    with _connect() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS bookmarks (
                id         TEXT PRIMARY KEY,
                title      TEXT NOT NULL,
                url        TEXT,
                category   TEXT NOT NULL,
                saved_at   TEXT NOT NULL
            )
            """
        )
    logger.info("Bookmarks DB initialised at %s", _db_path())


def _row_to_bookmark(row: sqlite3.Row) -> Bookmark:
    return Bookmark(
        id=row["id"],
        title=row["title"],
        url=row["url"],
        category=row["category"],
        saved_at=datetime.fromisoformat(row["saved_at"]),
    )


def save(article_id: str, title: str, url: Optional[str] = None, category: str = "") -> Bookmark:
    """Bookmark an article, or move an existing bookmark to the top.

    Args:
        article_id: The story id.
        title: Headline shown in the bookmarks list.
        url: Optional link to the article.
        category: Feed category.

    Returns:
        The stored Bookmark.
    """
    now = datetime.now(timezone.utc)

    with _connect() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO bookmarks (id, title, url, category, saved_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (article_id, title, url, category, now.isoformat()),
        )
        conn.execute(
            "DELETE FROM bookmarks WHERE id NOT IN ("
            "SELECT id FROM bookmarks ORDER BY saved_at DESC, rowid DESC LIMIT ?)",
            (MAX_BOOKMARKS,),
        )

    logger.info("Saved bookmark id=%r", article_id)
    return Bookmark(id=article_id, title=title, url=url, category=category, saved_at=now)


def get_all(limit: int = MAX_BOOKMARKS) -> list[Bookmark]:
    """Return up to *limit* bookmarks, newest first."""
    with _connect() as conn:
        rows = conn.execute(
            "SELECT id, title, url, category, saved_at FROM bookmarks "
            "ORDER BY saved_at DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()

    return [_row_to_bookmark(row) for row in rows]


def is_bookmarked(article_id: str) -> bool:
    with _connect() as conn:
        row = conn.execute(
            "SELECT 1 FROM bookmarks WHERE id = ?", (article_id,)
        ).fetchone()
    return row is not None


def delete(article_id: str) -> bool:
    """Remove a bookmark.

    Returns:
        True if a row was deleted, False if not found.
    """
    with _connect() as conn:
        cursor = conn.execute(
            "DELETE FROM bookmarks WHERE id = ?", (article_id,)
        )
    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("Deleted bookmark id=%r", article_id)
    return deleted
