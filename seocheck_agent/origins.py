from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)

# One DNS label: letters/digits, inner hyphens allowed.
_LABEL_PATTERN = r"[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?"
_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)


def _strip_protocol(value: str) -> str:
    return _PROTOCOL_RE.sub("", value, count=1)


@dataclass(frozen=True)
class OriginPattern:
    entry: str
    regex: re.Pattern[str]

    @classmethod
    def compile(cls, entry: str) -> "OriginPattern":
        """Compile one allow-list entry.

        `*.example.com` matches exactly one extra label (`app.example.com`) and
        never the bare domain or deeper subdomains. Everything else is literal.
        """
        entry = entry.strip().rstrip("/")
        if not entry:
            raise ValueError("Empty origin entry")

        if "*" in entry:
            match = re.match(r"^((?:https?://)?)\*\.(.+)$", entry, re.IGNORECASE)
            if not match or "*" in match.group(2):
                raise ValueError(f"Unsupported wildcard origin: {entry!r}")
            prefix, suffix = match.groups()
            pattern = re.escape(prefix) + _LABEL_PATTERN + r"\." + re.escape(suffix)
        else:
            pattern = re.escape(entry)
        return cls(entry=entry, regex=re.compile(pattern, re.IGNORECASE))

    def matches(self, origin: str) -> bool:
        return self.regex.fullmatch(origin) is not None


@dataclass(frozen=True)
class OriginAllowList:
    patterns: tuple[OriginPattern, ...] = ()

    @classmethod
    def from_entries(cls, entries: Iterable[str]) -> "OriginAllowList":
        patterns = []
        for raw in entries:
            if raw and raw.strip():
                patterns.append(OriginPattern.compile(raw))
        logger.info("Compiled %d allowed origin pattern(s)", len(patterns))
        return cls(patterns=tuple(patterns))

    def is_allowed(self, origin_header: str | None) -> bool:
        if not origin_header:
            return False
        origin = origin_header.strip()
        if not origin:
            return False
        candidates = (origin, _strip_protocol(origin))
        return any(p.matches(c) for p in self.patterns for c in candidates)
