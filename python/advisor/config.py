"""
Runtime configuration for the advisory gateway.
Everything is read from environment variables so the same image runs in dev and prod.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_BASE = "https://api.openai.com/v1"
DEFAULT_BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"
DEFAULT_SCHOLARSHIP_QUERY = (
    "scholarships for international students studying computer science OR artificial intelligence"
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class Settings:
    # Inference (OpenAI-compatible chat completions)
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    openai_base_url: str = DEFAULT_OPENAI_BASE
    openai_timeout_s: float = 480.0

    # Web search (Brave)
    brave_api_key: Optional[str] = None
    brave_api_url: str = DEFAULT_BRAVE_URL
    web_search_enabled: bool = True
    web_search_max_results: int = 5
    search_timeout_s: float = 15.0
    scholarship_search_query: str = DEFAULT_SCHOLARSHIP_QUERY

    # Chat context
    chat_scholarship_limit: int = 10

    # Persistence
    redis_url: Optional[str] = None

    # HTTP surface
    allowed_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173")
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL") or DEFAULT_MODEL,
            openai_base_url=(os.getenv("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE).rstrip("/"),
            openai_timeout_s=_env_float("OPENAI_TIMEOUT_S", 480.0),
            brave_api_key=os.getenv("BRAVE_API_KEY") or None,
            brave_api_url=os.getenv("BRAVE_API_URL") or DEFAULT_BRAVE_URL,
            web_search_enabled=_env_bool("WEB_SEARCH_ENABLED", True),
            web_search_max_results=_env_int("WEB_SEARCH_MAX_RESULTS", 5),
            search_timeout_s=_env_float("SEARCH_TIMEOUT_S", 15.0),
            scholarship_search_query=os.getenv("SCHOLARSHIP_SEARCH_QUERY") or DEFAULT_SCHOLARSHIP_QUERY,
            chat_scholarship_limit=_env_int("CHAT_SCHOLARSHIP_LIMIT", 10),
            redis_url=os.getenv("REDIS_URL") or None,
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
