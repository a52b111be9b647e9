"""Runtime settings read from the environment (and .env via python-dotenv).

    DATA_DIR           JSON storage directory (default ./data)
    LLM_PROVIDER_URL   Base URL of the text generation backend
    LLM_API_KEY        API key / bearer token for the backend
    LLM_FORMAT         anthropic | openai | koboldcpp (default anthropic)
    LLM_MODEL          Model identifier sent with anthropic/openai requests
    LLM_TIMEOUT        Per-call timeout in seconds (default 10)
    LLM_MAX_ATTEMPTS   Attempts per generation before the caller's fallback
    NOTIFY_BOT_TOKEN   Telegram bot token; notifications are logged only if unset
    NOTIFY_CHAT_ID     Telegram chat receiving day summaries
    TRIGGER_SECRET     Bearer secret required by POST /api/cycle
    HOST, PORT         API bind address
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from hearthwood.errors import ConfigurationError

ROOT = Path(__file__).parent.parent


class Settings(BaseModel):
    data_dir: Path = ROOT / "data"
    llm_provider_url: str = ""
    llm_api_key: str = ""
    llm_format: str = "anthropic"
    llm_model: str = "claude-3-haiku-20240307"
    llm_timeout: float = 10.0
    llm_max_attempts: int = 3
    notify_bot_token: str = ""
    notify_chat_id: str = ""
    trigger_secret: str = ""
    host: str = "0.0.0.0"
    port: int = 13013

    def require_llm(self) -> None:
        """Raise ConfigurationError if the generative backend cannot be configured."""
        missing = []
        if not self.llm_provider_url:
            missing.append("LLM_PROVIDER_URL")
        if self.llm_format == "anthropic" and not self.llm_api_key:
            missing.append("LLM_API_KEY")
        if self.llm_format not in ("anthropic", "openai", "koboldcpp"):
            raise ConfigurationError(f"Unknown LLM_FORMAT {self.llm_format!r}")
        if missing:
            raise ConfigurationError(f"Missing environment variables: {', '.join(missing)}")


def load_settings() -> Settings:
    load_dotenv(ROOT / ".env")
    values: dict[str, str] = {}
    for field in Settings.model_fields:
        raw = os.getenv(field.upper())
        if raw is not None and raw != "":
            values[field] = raw
    return Settings.model_validate(values)


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (test isolation only)."""
    global _settings
    _settings = None
