from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

MAX_SANITIZE_PASSES = 10
MAX_KEYWORD_LENGTH = 500

SUPPORTED_LANGUAGE_CODES = frozenset({"en", "fr", "de", "es", "it", "ja", "pt", "nl", "pl"})

# Decoded in this order; `&amp;` goes last so `&amp;lt;` only loses one layer.
_ENTITY_TABLE = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&#x27;", "'"),
    ("&#x2F;", "/"),
    ("&#x3D;", "="),
    ("&#x60;", "`"),
)
_AMP_RE = re.compile(r"&amp;?", re.IGNORECASE)

_DANGEROUS_BLOCK_RE = re.compile(
    r"<(script|style|iframe|object|embed)\b[^>]*>.*?(?:</\1\s*>|$)",
    re.IGNORECASE | re.DOTALL,
)
_TAG_RE = re.compile(r"<[a-zA-Z/!?][^<>]*>")
_TRAILING_TAG_RE = re.compile(r"<[a-zA-Z/!?][^<>]*$")
_LEFTOVER_RE = re.compile(r"[<>&]")


def decode_html_entities(value: str | None) -> str:
    """Decode the handful of entities that can smuggle markup, one layer only."""
    if not value:
        return ""
    out = value
    for entity, char in _ENTITY_TABLE:
        out = re.sub(re.escape(entity), char, out, flags=re.IGNORECASE)
    return _AMP_RE.sub("&", out)


def _sanitize_pass(value: str) -> str:
    value = decode_html_entities(value)
    value = _DANGEROUS_BLOCK_RE.sub("", value)
    value = _TAG_RE.sub("", value)
    return _TRAILING_TAG_RE.sub("", value)


def sanitize_keywords(value: str | None, locale: str | None = None) -> str:
    """Strip markup from a user keyphrase until nothing changes.

    Nested and entity-encoded payloads (`<scr<script>ipt>`, `&lt;script&gt;`)
    are peeled off over repeated passes, capped at MAX_SANITIZE_PASSES.
    `locale` is validated but never alters the result.
    """
    if value is None:
        return ""
    if locale is not None and locale.split("-")[0].lower() not in SUPPORTED_LANGUAGE_CODES:
        logger.debug("Unsupported keyphrase locale %r; sanitizing as-is", locale[:16])

    current = str(value)
    for _ in range(MAX_SANITIZE_PASSES):
        cleaned = _sanitize_pass(current)
        if cleaned == current:
            break
        current = cleaned

    current = _LEFTOVER_RE.sub("", current).strip()
    return current[:MAX_KEYWORD_LENGTH]
