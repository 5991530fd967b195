"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if a provider key is missing
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
    perplexity_api_key: str = field(
        default_factory=lambda: os.environ.get("PERPLEXITY_API_KEY", "")
    )
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

    # ── Providers ───────────────────────────────────────────────────────────
    #: Chat-completion endpoint used for the four first-stage sections.
    chat_api_url: str = field(
        default_factory=lambda: os.environ.get(
            "CHAT_API_URL", "https://api.perplexity.ai/chat/completions"
        )
    )
    chat_model: str = field(
        default_factory=lambda: os.environ.get(
            "CHAT_MODEL", "llama-3.1-sonar-huge-128k-online"
        )
    )
    #: Single-prompt model used for the synthesis pass.
    prompt_model: str = field(
        default_factory=lambda: os.environ.get("PROMPT_MODEL", "claude-haiku-4-5")
    )
    #: Seconds before a provider call is cancelled (applies to both providers).
    provider_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PROVIDER_TIMEOUT", "100"))
    )

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        missing = [
            name
            for name, value in (
                ("PERPLEXITY_API_KEY", self.perplexity_api_key),
                ("ANTHROPIC_API_KEY", self.anthropic_api_key),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"{', '.join(missing)} environment variable(s) not set. "
                "Copy .env.example to .env and add your keys."
            )
        if self.provider_timeout <= 0:
            raise ValueError("PROVIDER_TIMEOUT must be a positive number of seconds.")
