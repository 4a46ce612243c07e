"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if ANTHROPIC_API_KEY is missing
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "5001"))
    )

    # ── Client ──────────────────────────────────────────────────────────────
    #: Where the Ask Pulse AI client sends its questions.
    proxy_url: str = field(
        default_factory=lambda: os.environ.get(
            "PULSE_PROXY_URL", "http://localhost:5001/ask"
        )
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PULSE_REQUEST_TIMEOUT", "60"))
    )
    #: Wall-clock budget for reading one streamed answer, in seconds.
    stream_deadline: float = field(
        default_factory=lambda: float(os.environ.get("PULSE_STREAM_DEADLINE", "90"))
    )
    max_retries: int = field(
        default_factory=lambda: int(os.environ.get("PULSE_MAX_RETRIES", "2"))
    )
    retry_backoff: float = field(
        default_factory=lambda: float(os.environ.get("PULSE_RETRY_BACKOFF", "0.5"))
    )

    # ── Retrieval ───────────────────────────────────────────────────────────
    top_k: int = field(
        default_factory=lambda: int(os.environ.get("PULSE_TOP_K", "10"))
    )
    max_opinions: int = field(
        default_factory=lambda: int(os.environ.get("PULSE_MAX_OPINIONS", "3"))
    )
    history_limit: int = field(
        default_factory=lambda: int(os.environ.get("PULSE_HISTORY_LIMIT", "10"))
    )

    # ── AI Models ───────────────────────────────────────────────────────────
    #: Model used to answer reader questions.
    chat_model: str = "claude-haiku-4-5"
    max_tokens: int = 1024

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
