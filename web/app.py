"""
Flask web server for Morning Pulse.

Routes
──────
POST   /ask                     Ask Pulse AI (SSE when "stream" is true, else JSON)
POST   /api/trending            Rank articles by clicks + freshness (JSON)
GET    /api/bookmarks           List bookmarks (JSON)
POST   /api/bookmarks           Save a bookmark (JSON)
DELETE /api/bookmarks/<id>      Delete a bookmark (JSON)
"""

from __future__ import annotations

import json
import logging
import os
import sys

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request, stream_with_context
from pydantic import ValidationError

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from pulse import bookmarks
from pulse.generation import QUOTA_MESSAGE, describe_error, generate, generate_stream
from pulse.models import AskRequest, NewsStory
from pulse.trending import rank_trending, time_ago

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
settings = Settings()

# Initialise the SQLite database on startup
bookmarks.init_db()


def _sse(payload: object) -> str:
    return f"data: {json.dumps(payload)}\n\n"


# ── Ask Pulse AI ───────────────────────────────────────────────────────────

@app.route("/ask", methods=["POST"])
def ask():
    """Answer a reader question grounded in the supplied news feed.

    Body: see ``AskRequest`` (``question``, ``newsData``, ``conversationHistory``,
    ``opinions``, ``previousEntities``, ``stream``).

    SSE events emitted when ``stream`` is true:
      {"text": "..."}                                 streaming text chunk
      {"done": true, "fullText": "...", "sources": []} final answer
      {"error": "..."}                                on failure
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not str(body.get("question") or "").strip():
        return jsonify({"error": 'Missing "question" in request body'}), 400
    try:
        ask_request = AskRequest.model_validate(body)
    except ValidationError as exc:
        return jsonify({"error": "Invalid request body", "message": str(exc)}), 400

    if not ask_request.stream:
        try:
            result = generate(ask_request, settings)
        except Exception as exc:
            logger.exception("Ask failed for question=%r", ask_request.question)
            message = describe_error(exc)
            status = 429 if message == QUOTA_MESSAGE else 500
            return jsonify({"error": "AI service unavailable", "message": message}), status
        return jsonify(result.model_dump(mode="json", by_alias=True))

    def generate_events():
        try:
            for event_type, payload in generate_stream(ask_request, settings):
                if event_type == "token":
                    yield _sse({"text": payload})
                elif event_type == "done":
                    yield _sse({
                        "done": True,
                        "fullText": payload.text,
                        "sources": [
                            s.model_dump(mode="json", by_alias=True, exclude_none=True)
                            for s in payload.sources
                        ],
                    })
        except Exception as exc:
            logger.exception("Ask stream error for question=%r", ask_request.question)
            yield _sse({"error": describe_error(exc)})

        yield "data: [DONE]\n\n"

    return Response(
        stream_with_context(generate_events()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ── Trending ───────────────────────────────────────────────────────────────

@app.route("/api/trending", methods=["POST"])
def trending():
    """Rank the posted articles.

    Body: ``{"articles": [...], "clicks": {"<id>": n}, "limit": 10}``
    """
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    try:
        stories = [NewsStory.model_validate(a) for a in body.get("articles") or []]
        clicks = {str(k): int(v) for k, v in (body.get("clicks") or {}).items()}
        limit = max(0, int(body.get("limit", 10)))
    except (ValidationError, ValueError, TypeError, AttributeError) as exc:
        return jsonify({"error": "Invalid trending request", "message": str(exc)}), 400

    ranked = rank_trending(stories, clicks=clicks, max_items=limit)
    return jsonify(
        [
            {
                "id": a.story.id,
                "headline": a.story.headline,
                "category": a.story.category,
                "url": a.story.url,
                "views": a.clicks,
                "trendingScore": a.score,
                "timeAgo": time_ago(a.story.timestamp),
            }
            for a in ranked
        ]
    )


# ── Bookmarks ──────────────────────────────────────────────────────────────

@app.route("/api/bookmarks")
def list_bookmarks():
    """Return saved bookmarks, newest first."""
    return jsonify([b.model_dump(mode="json") for b in bookmarks.get_all()])


@app.route("/api/bookmarks", methods=["POST"])
def save_bookmark():
    body = request.get_json(silent=True) or {}
    if not body.get("id") or not body.get("title"):
        return jsonify({"error": '"id" and "title" are required'}), 400
    saved = bookmarks.save(
        str(body["id"]),
        str(body["title"]),
        url=body.get("url"),
        category=str(body.get("category") or ""),
    )
    return jsonify(saved.model_dump(mode="json")), 201


@app.route("/api/bookmarks/<article_id>", methods=["DELETE"])
def delete_bookmark(article_id: str):
    if not bookmarks.delete(article_id):
        return jsonify({"error": "Not found"}), 404
    return jsonify({"deleted": article_id})


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings.validate()
    app.run(debug=settings.debug, host="0.0.0.0", port=settings.port)
