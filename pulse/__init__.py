"""
Morning Pulse — Ask Pulse AI package.

Modules
───────
models        — Pydantic models (NewsStory, Opinion, AskRequest, AskResult, …)
retrieval     — keyword scoring + per-category diversity selection
conversation  — per-session history and entity context
prompts       — grounded prompt assembly
streaming     — SSE stream consumer with cancellation and deadline
citations     — [n] marker → citation placeholder formatting
client        — HTTP client for POST /ask (retry with backoff)
assistant     — query boundary: fallbacks, session updates
generation    — server side of POST /ask (Claude)
trending      — trending-articles ranking
bookmarks     — SQLite-backed bookmarks
"""
