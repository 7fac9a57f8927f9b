from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_HERE = Path(__file__).resolve()
_REPO_ROOT = _HERE.parents[1]

DEFAULT_CORS_ORIGINS = (
    "https://webflow.com",
    "https://*.webflow-ext.com",
    "https://*.webflow.io",
    "http://localhost:1337",
    "http://localhost:5173",
)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36 SEOCheckAgent/1.0"
)
DEFAULT_GEMINI_MODEL = "gemini-3-flash-preview"


def _env_int(name: str, default: int, lo: int | None = None, hi: int | None = None) -> int:
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        value = default
    if lo is not None:
        value = max(lo, value)
    if hi is not None:
        value = min(hi, value)
    return value


def _cors_allow_origins() -> tuple[str, ...]:
    raw = os.getenv("SEOCHECK_CORS_ORIGINS", "").strip()
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return tuple(o.strip() for o in raw.split(",") if o.strip())


@dataclass(frozen=True)
class Settings:
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    fetch_timeout_ms: int = 15000
    max_html_kb: int = 2048
    max_redirects: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    log_level: str = "INFO"
    ai_recommendations: bool = False
    gemini_model: str = DEFAULT_GEMINI_MODEL

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            # Local dev: pick up the repo root .env without clobbering real env vars.
            load_dotenv(_REPO_ROOT / ".env", override=False)
        return cls(
            cors_origins=_cors_allow_origins(),
            fetch_timeout_ms=_env_int("SEOCHECK_FETCH_TIMEOUT_MS", 15000, 1000, 60000),
            max_html_kb=_env_int("SEOCHECK_MAX_HTML_KB", 2048, 1),
            max_redirects=_env_int("SEOCHECK_MAX_REDIRECTS", 5, 0, 20),
            user_agent=os.getenv("SEOCHECK_USER_AGENT", "").strip() or DEFAULT_USER_AGENT,
            log_level=(os.getenv("SEOCHECK_LOG_LEVEL", "").strip() or "INFO").upper(),
            ai_recommendations=os.getenv("SEOCHECK_AI_RECOMMENDATIONS", "").strip().lower() == "true",
            gemini_model=os.getenv("GEMINI_MODEL", "").strip() or DEFAULT_GEMINI_MODEL,
        )
