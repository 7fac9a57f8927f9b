from __future__ import annotations

import ipaddress
import logging
import re
from urllib.parse import unquote, urlsplit, urlunsplit

from .errors import InvalidUrl

logger = logging.getLogger(__name__)

DANGEROUS_SCHEMES = ("javascript:", "data:", "vbscript:")

_HTTP_PREFIX_RE = re.compile(r"^https?://", re.IGNORECASE)
_PLAIN_HTTP_RE = re.compile(r"^http://", re.IGNORECASE)
# Browsers drop tabs and newlines anywhere in a URL and leading C0 controls/spaces.
_IGNORED_URL_CHARS_RE = re.compile(r"[\t\r\n]")
_LEADING_JUNK_RE = re.compile(r"^[\x00-\x20]+")
_BAD_PERCENT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_FORBIDDEN_CHARS_RE = re.compile(r"[\x00-\x20\x7f\\]")
_HOST_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


def has_dangerous_scheme(value: str | None) -> bool:
    """True when `value` starts with a scheme that runs code or inlines content."""
    if not value:
        return False
    cleaned = _LEADING_JUNK_RE.sub("", _IGNORED_URL_CHARS_RE.sub("", value))
    return cleaned.lower().startswith(DANGEROUS_SCHEMES)


def _has_traversal(value: str) -> bool:
    return "../" in value or "/.." in value


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def _is_valid_hostname(host: str) -> bool:
    if not host:
        return False
    if _is_ip_literal(host):
        return True
    try:
        ascii_host = host.encode("idna").decode("ascii")
    except UnicodeError:
        return False

    labels = ascii_host.rstrip(".").split(".")
    if len(labels) < 2:
        return False
    if not all(_HOST_LABEL_RE.match(label) for label in labels):
        return False
    # A numeric last label makes the whole host read as a (malformed) IPv4 address.
    return not labels[-1].isdigit()


def is_public_host(host: str) -> bool:
    """Reject hosts that point back into the server's own network."""
    host = (host or "").lower().rstrip(".")
    if host == "localhost" or host.endswith(".localhost"):
        return False
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        # Names are resolved and re-checked by the fetcher.
        return True
    return addr.is_global and not addr.is_multicast


def _reject(raw: str, reason: str) -> InvalidUrl:
    logger.warning("Rejected URL %r: %s", raw[:200], reason)
    return InvalidUrl(reason)


def validate_url(raw: str | None) -> str:
    """Normalize `raw` into a fetchable https:// URL or raise InvalidUrl.

    Every step is a hard gate and there is no fallback: dangerous schemes are
    rejected before and after the https rewrite, traversal sequences before and
    after parsing, and anything that is not https after parsing.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidUrl("Please provide a URL.")

    value = raw.strip()
    if has_dangerous_scheme(value):
        raise _reject(raw, "URLs with executable or inline-content schemes are not allowed.")

    if not _HTTP_PREFIX_RE.match(value):
        value = "https://" + value
    elif _PLAIN_HTTP_RE.match(value):
        value = "https://" + value[len("http://"):]

    remainder = value[len("https://"):]
    if has_dangerous_scheme(value) or has_dangerous_scheme(remainder):
        raise _reject(raw, "URLs with executable or inline-content schemes are not allowed.")

    if _has_traversal(value):
        raise _reject(raw, "Path traversal sequences are not allowed in URLs.")
    if _FORBIDDEN_CHARS_RE.search(value):
        raise _reject(raw, "URLs may not contain whitespace, control characters or backslashes.")
    if _BAD_PERCENT_RE.search(value):
        raise _reject(raw, "URL contains malformed percent-encoding.")

    try:
        parts = urlsplit(value)
        # Accessing .port validates it.
        parts.port
    except ValueError:
        raise _reject(raw, "URL could not be parsed.") from None

    if parts.scheme != "https":
        raise _reject(raw, "Only https URLs can be analyzed.")

    host = parts.hostname or ""
    if not _is_valid_hostname(host):
        raise _reject(raw, "Please enter a valid website domain.")
    if not is_public_host(host):
        raise _reject(raw, "Requests to private or local addresses are not allowed.")

    if _has_traversal(parts.path) or _has_traversal(unquote(parts.path)):
        raise _reject(raw, "Path traversal sequences are not allowed in URLs.")

    return urlunsplit(parts._replace(fragment=""))
