"""
Tests for pulse/bookmarks.py

Uses a temporary SQLite file so the real bookmarks DB is never touched.

Run with: pytest tests/test_bookmarks.py
"""

import pytest

import pulse.bookmarks as bm


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point DB_PATH to a fresh temp file for each test."""
    db_file = tmp_path / "test_bookmarks.db"
    monkeypatch.setenv("DB_PATH", str(db_file))
    bm.init_db()
    yield


class TestSaveAndRetrieve:
    def test_save_returns_bookmark(self):
        saved = bm.save("L01", "Speed Limiters Proposed", url="https://example.com/l01",
                        category="Local (Zim)")
        assert saved.id == "L01"
        assert saved.category == "Local (Zim)"

    def test_is_bookmarked(self):
        bm.save("L01", "Speed Limiters Proposed")
        assert bm.is_bookmarked("L01") is True
        assert bm.is_bookmarked("B01") is False

    def test_get_all_returns_newest_first(self):
        bm.save("A", "First")
        bm.save("B", "Second")

        entries = bm.get_all()

        assert [e.id for e in entries] == ["B", "A"]

    def test_resave_moves_to_top_without_duplicating(self):
        bm.save("A", "First")
        bm.save("B", "Second")
        bm.save("A", "First again")

        entries = bm.get_all()

        assert [e.id for e in entries] == ["A", "B"]
        assert entries[0].title == "First again"

    def test_keeps_only_most_recent(self, monkeypatch):
        monkeypatch.setattr(bm, "MAX_BOOKMARKS", 3)
        for i in range(5):
            bm.save(f"s{i}", f"Story {i}")

        ids = [e.id for e in bm.get_all()]
        assert ids == ["s4", "s3", "s2"]

    def test_get_all_respects_limit(self):
        for i in range(5):
            bm.save(f"s{i}", f"Story {i}")
        assert len(bm.get_all(limit=2)) == 2


class TestDelete:
    def test_delete_existing(self):
        bm.save("L01", "Speed Limiters Proposed")
        assert bm.delete("L01") is True
        assert bm.is_bookmarked("L01") is False

    def test_delete_missing_returns_false(self):
        assert bm.delete("nope") is False
