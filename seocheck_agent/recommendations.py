"""
AI-written recommendations for failed checks, using Google Gemini.
Off unless SEOCHECK_AI_RECOMMENDATIONS=true and GEMINI_API_KEY are set; the
template recommendation from the check table is kept whenever Gemini is off,
fails or returns nothing.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from google import genai
from google.genai import types

from .config import Settings
from .models import CheckResult

logger = logging.getLogger(__name__)

MAX_RECOMMENDATION_CHARS = 600
DEFAULT_TIMEOUT_S = 10.0

_SYSTEM_INSTRUCTION = (
    "You are an SEO consultant. Reply with one or two plain sentences of concrete advice. "
    "No markdown, no lists, no preamble."
)


def build_prompt(check: CheckResult, keyphrase: str) -> str:
    return (
        f"An SEO check failed on a web page.\n"
        f"Check: {check.title}\n"
        f"What it verifies: {check.description}\n"
        f"Finding: {check.result}\n"
        f"Focus keyphrase: {keyphrase}\n\n"
        f"Tell the site owner how to fix this for the keyphrase '{keyphrase}'."
    )


def _clean(text: str | None) -> str:
    text = (text or "").strip()
    # Gemini sometimes fences plain text too.
    if text.startswith("```"):
        text = text[3:]
        first, _, rest = text.partition("\n")
        if rest and first.strip().isalpha():
            text = rest
    if text.endswith("```"):
        text = text[:-3]
    text = " ".join(text.split())
    if len(text) > MAX_RECOMMENDATION_CHARS:
        text = text[:MAX_RECOMMENDATION_CHARS].rsplit(" ", 1)[0].rstrip(",;:") + "..."
    return text


class GeminiRecommender:
    """Async callable `(check, keyphrase) -> str | None` backed by Gemini."""

    def __init__(self, client: Any, model: str, timeout_s: float = DEFAULT_TIMEOUT_S):
        self.client = client
        self.model = model
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> GeminiRecommender | None:
        if not settings.ai_recommendations:
            return None
        api_key = os.environ.get("GEMINI_API_KEY")
        if not api_key:
            logger.warning("SEOCHECK_AI_RECOMMENDATIONS is on but GEMINI_API_KEY is not set; using templates")
            return None
        logger.info("AI recommendations enabled (model=%s)", settings.gemini_model)
        return cls(genai.Client(api_key=api_key), settings.gemini_model)

    async def __call__(self, check: CheckResult, keyphrase: str) -> str | None:
        config = types.GenerateContentConfig(
            system_instruction=_SYSTEM_INSTRUCTION,
            temperature=0.4,
            max_output_tokens=256,
        )
        try:
            resp = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=build_prompt(check, keyphrase),
                    config=config,
                ),
                timeout=self.timeout_s,
            )
        except Exception as e:
            logger.warning("Gemini recommendation for %r failed: %s", check.title, e)
            return None
        return _clean(getattr(resp, "text", None)) or None
