# backend/rental_search/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# --- Defaults ---
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.1
DEFAULT_LLM_TIMEOUT = 8.0  # seconds
DEFAULT_STORE_TIMEOUT = 8.0  # seconds
DEFAULT_STORE_RETRIES = 1
DEFAULT_RESULT_LIMIT = 10
DEFAULT_SESSION_TTL = 30 * 60  # seconds idle before a session is dropped
DEFAULT_MAX_SESSIONS = 1000


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from the environment (and .env if present)."""

    openai_api_key: Optional[str] = None
    llm_base_url: Optional[str] = None
    llm_model: str = DEFAULT_MODEL
    llm_temperature: float = DEFAULT_TEMPERATURE
    llm_timeout: float = DEFAULT_LLM_TIMEOUT

    store_url: Optional[str] = None
    store_api_key: Optional[str] = None
    store_timeout: float = DEFAULT_STORE_TIMEOUT
    store_retries: int = DEFAULT_STORE_RETRIES
    property_fixtures: Optional[str] = None

    result_limit: int = DEFAULT_RESULT_LIMIT
    # None keeps the whole conversation; otherwise the oldest turns are dropped first.
    max_history_turns: Optional[int] = None
    session_ttl: float = DEFAULT_SESSION_TTL
    max_sessions: int = DEFAULT_MAX_SESSIONS

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            openai_api_key=_env_str("OPENAI_API_KEY"),
            llm_base_url=_env_str("LLM_BASE_URL"),
            llm_model=_env_str("LLM_MODEL") or DEFAULT_MODEL,
            llm_temperature=_env_float("LLM_TEMPERATURE", DEFAULT_TEMPERATURE),
            llm_timeout=_env_float("LLM_TIMEOUT", DEFAULT_LLM_TIMEOUT),
            store_url=_env_str("STORE_URL"),
            store_api_key=_env_str("STORE_API_KEY"),
            store_timeout=_env_float("STORE_TIMEOUT", DEFAULT_STORE_TIMEOUT),
            store_retries=_env_int("STORE_RETRIES", DEFAULT_STORE_RETRIES),
            property_fixtures=_env_str("PROPERTY_FIXTURES"),
            result_limit=_env_int("RESULT_LIMIT", DEFAULT_RESULT_LIMIT),
            max_history_turns=_env_int("MAX_HISTORY_TURNS", None),
            session_ttl=_env_float("SESSION_TTL", DEFAULT_SESSION_TTL),
            max_sessions=_env_int("MAX_SESSIONS", DEFAULT_MAX_SESSIONS),
        )
        if settings.result_limit < 1:
            raise ValueError("RESULT_LIMIT must be at least 1")
        if settings.max_history_turns is not None and settings.max_history_turns < 0:
            raise ValueError("MAX_HISTORY_TURNS cannot be negative")
        if settings.session_ttl <= 0:
            raise ValueError("SESSION_TTL must be positive")
        if settings.max_sessions < 1:
            raise ValueError("MAX_SESSIONS must be at least 1")
        return settings
