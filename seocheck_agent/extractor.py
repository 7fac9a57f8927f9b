from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from .errors import ParseError
from .models import ExtractedDocument, Heading, ImageFormat, ImageRef, LinkRef
from .url_validator import has_dangerous_scheme

logger = logging.getLogger(__name__)

NEXT_GEN_EXTENSIONS = frozenset({"webp", "avif", "svg", "jp2", "jpx"})
LEGACY_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif"})

# Never part of the visible text.
_INVISIBLE_TAGS = ["script", "style", "noscript", "template"]
_DATA_URI_MIME_RE = re.compile(r"^data:image/([a-z0-9.+-]+)", re.IGNORECASE)
_MIME_TO_EXT = {"svg+xml": "svg", "jpeg": "jpg", "jp2": "jp2", "jpx": "jpx"}


def _clean_text(value: str | None) -> str:
    return " ".join((value or "").split())


def classify_image_format(src: str | None) -> ImageFormat:
    """Classify an image by the extension of its URL path (or its data: mime type)."""
    if not src:
        return "unknown"
    src = src.strip()

    m = _DATA_URI_MIME_RE.match(src)
    if m:
        subtype = m.group(1).lower()
        ext = _MIME_TO_EXT.get(subtype, subtype)
    else:
        try:
            path = urlsplit(src).path
        except ValueError:
            return "unknown"
        name = path.rsplit("/", 1)[-1]
        if "." not in name:
            return "unknown"
        ext = name.rsplit(".", 1)[-1].lower()

    if ext in NEXT_GEN_EXTENSIONS:
        return "next-gen"
    if ext in LEGACY_EXTENSIONS:
        return "legacy"
    return "unknown"


def _resolve(href: str | None, base: str) -> str | None:
    """Absolute form of `href`, or None when it is empty, dangerous or unparseable."""
    href = (href or "").strip()
    if not href or has_dangerous_scheme(href):
        return None
    try:
        # urlsplit rejects things like an unbalanced "[" in the host.
        urlsplit(href)
        return urljoin(base, href) if base else href
    except ValueError:
        logger.debug("Skipping unparseable URL %r", href[:200])
        return None


def _same_origin(href: str, base: str) -> bool:
    try:
        target = urlsplit(href)
        page = urlsplit(base)
    except ValueError:
        return False
    if target.scheme not in ("http", "https"):
        return False
    if not page.hostname:
        # No page URL to compare against; relative links are the only internal ones.
        return False
    return (target.hostname or "").lower() == page.hostname.lower()


def _walk_json(obj: Any):
    if isinstance(obj, dict):
        yield obj
        for v in obj.values():
            yield from _walk_json(v)
    elif isinstance(obj, list):
        for v in obj:
            yield from _walk_json(v)


def _jsonld_types(raw: str) -> list[str]:
    try:
        data = json.loads(raw)
    except ValueError:
        return []
    types: list[str] = []
    for node in _walk_json(data):
        t = node.get("@type")
        if isinstance(t, str):
            types.append(t)
        elif isinstance(t, list):
            types.extend(x for x in t if isinstance(x, str))
    return types


def _coerce_text(html: Any) -> str:
    if isinstance(html, bytes):
        try:
            html = html.decode("utf-8")
        except UnicodeDecodeError:
            raise ParseError("Page content is not valid text.") from None
    if not isinstance(html, str):
        raise ParseError("Page content is not text.")
    if "\x00" in html:
        raise ParseError("Page content contains binary data.")
    return html


def extract_document(html: str | bytes, url: str = "") -> ExtractedDocument:
    """Parse untrusted HTML into an ExtractedDocument.

    Nothing in the page is executed or fetched. Missing or malformed parts
    come back as empty fields; only non-text payloads raise ParseError.
    """
    html = _coerce_text(html)
    soup = BeautifulSoup(html, "lxml")

    title = _clean_text(soup.title.get_text()) if soup.title else ""

    meta_description = ""
    open_graph: dict[str, str] = {}
    for meta in soup.find_all("meta"):
        content = _clean_text(meta.get("content"))
        name = (meta.get("name") or "").strip().lower()
        prop = (meta.get("property") or "").strip().lower()
        if name == "description" and not meta_description:
            meta_description = content
        if prop.startswith("og:") and content and prop not in open_graph:
            open_graph[prop] = content

    canonical = ""
    for link in soup.find_all("link", href=True):
        rel = [r.lower() for r in (link.get("rel") or [])]
        if "canonical" in rel:
            resolved = _resolve(link["href"], url)
            if resolved:
                canonical = resolved
                break

    headings = []
    for tag in soup.find_all(re.compile(r"^h[1-6]$")):
        text = _clean_text(tag.get_text(" "))
        if text:
            headings.append(Heading(level=int(tag.name[1]), text=text))

    images = []
    for img in soup.find_all("img"):
        src = (img.get("src") or img.get("data-src") or "").strip()
        if has_dangerous_scheme(src) and not src.lower().startswith("data:image/"):
            src = ""
        images.append(ImageRef(src=src, alt=_clean_text(img.get("alt")), format=classify_image_format(src)))

    links = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if href.startswith("#") or href.lower().startswith(("mailto:", "tel:")):
            continue
        absolute = _resolve(href, url)
        if absolute is None:
            continue
        internal = _same_origin(absolute, url) if url else not urlsplit(href).netloc
        links.append(LinkRef(href=absolute, is_internal=internal))

    scripts = []
    scripts_external = []
    schema_types: list[str] = []
    for script in soup.find_all("script"):
        src = (script.get("src") or "").strip()
        if src:
            resolved = _resolve(src, url)
            if resolved:
                scripts_external.append(resolved)
            continue
        body = script.string or ""
        if (script.get("type") or "").strip().lower() == "application/ld+json":
            schema_types.extend(_jsonld_types(body))
        elif body.strip():
            scripts.append(body)

    stylesheets = []
    for link in soup.find_all("link", href=True):
        rel = [r.lower() for r in (link.get("rel") or [])]
        if "stylesheet" in rel:
            resolved = _resolve(link["href"], url)
            if resolved:
                stylesheets.append(resolved)

    for node in soup.find_all(attrs={"itemtype": True}):
        itemtype = (node.get("itemtype") or "").strip()
        if itemtype:
            schema_types.append(itemtype.rstrip("/").rsplit("/", 1)[-1])

    for tag in soup.find_all(_INVISIBLE_TAGS):
        tag.decompose()

    paragraphs = tuple(t for t in (_clean_text(p.get_text(" ")) for p in soup.find_all("p")) if t)
    root = soup.body or soup
    text = _clean_text(root.get_text(" "))

    doc = ExtractedDocument(
        url=url,
        title=title,
        meta_description=meta_description,
        open_graph=open_graph,
        canonical=canonical,
        headings=tuple(headings),
        images=tuple(images),
        links=tuple(links),
        text=text,
        paragraphs=paragraphs,
        scripts=tuple(scripts),
        scripts_external=tuple(scripts_external),
        stylesheets=tuple(stylesheets),
        schema_types=tuple(dict.fromkeys(schema_types)),
    )
    logger.debug(
        "Extracted %d headings, %d images, %d links from %s",
        len(doc.headings), len(doc.images), len(doc.links), url or "<inline html>",
    )
    return doc
