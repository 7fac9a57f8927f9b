from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from .config import Settings
from .errors import FetchError, InvalidUrl, ParseError
from .url_validator import validate_url

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


@dataclass(frozen=True)
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    content_type: str | None
    html: str
    redirect_chain: list[str] = field(default_factory=list)
    truncated: bool = False


async def _resolve_public(host: str, port: int) -> None:
    """Refuse hostnames whose DNS answers point into private address space."""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise FetchError(f"Could not resolve host {host}.", retryable=True) from e
    for info in infos:
        addr = ipaddress.ip_address(info[4][0].split("%", 1)[0])
        if not addr.is_global or addr.is_multicast:
            logger.warning("Refusing %s: resolves to non-public address %s", host, addr)
            raise InvalidUrl("Requests to private or local addresses are not allowed.")


class PageFetcher:
    """Fetch one HTML page with bounded time, size and redirects.

    Redirects are followed by hand so every hop goes back through validate_url.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        verify_dns: bool = True,
    ):
        settings = settings or Settings()
        self.timeout_ms = settings.fetch_timeout_ms
        self.max_html_kb = settings.max_html_kb
        self.max_redirects = settings.max_redirects
        self.user_agent = settings.user_agent
        self.transport = transport
        self.verify_dns = verify_dns

    async def _read_capped(self, res: httpx.Response) -> tuple[bytes, bool]:
        limit = self.max_html_kb * 1024
        chunks: list[bytes] = []
        size = 0
        async for chunk in res.aiter_bytes():
            remaining = limit - size
            if len(chunk) > remaining:
                chunks.append(chunk[:remaining])
                return b"".join(chunks), True
            chunks.append(chunk)
            size += len(chunk)
        return b"".join(chunks), False

    async def __call__(self, url: str) -> FetchedPage:
        start_url = validate_url(url)
        current = start_url
        redirect_chain: list[str] = []
        timeout = httpx.Timeout(self.timeout_ms / 1000)
        headers = {
            "user-agent": self.user_agent,
            "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "accept-language": "en-US,en;q=0.6",
        }

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=False,
                transport=self.transport,
                headers=headers,
            ) as client:
                for _ in range(self.max_redirects + 1):
                    if self.verify_dns:
                        parts = urlsplit(current)
                        await _resolve_public(parts.hostname or "", parts.port or 443)

                    async with client.stream("GET", current) as res:
                        location = res.headers.get("location")
                        if 300 <= res.status_code < 400 and location:
                            redirect_chain.append(current)
                            current = validate_url(str(httpx.URL(current).join(location)))
                            continue

                        if not 200 <= res.status_code < 300:
                            logger.warning("Fetch of %s returned HTTP %d", current, res.status_code)
                            raise FetchError.for_status(res.status_code)

                        content_type = res.headers.get("content-type")
                        mime = (content_type or "").split(";", 1)[0].strip().lower()
                        if mime not in HTML_CONTENT_TYPES:
                            raise ParseError(f"Expected an HTML page but got {mime or 'no content type'}.")

                        body, truncated = await self._read_capped(res)
                        if truncated:
                            logger.info("Truncated %s at %d KB", current, self.max_html_kb)
                        html = body.decode(res.encoding or "utf-8", errors="replace")

                        return FetchedPage(
                            url=start_url,
                            final_url=current,
                            status_code=res.status_code,
                            content_type=content_type,
                            html=html,
                            redirect_chain=redirect_chain,
                            truncated=truncated,
                        )
        except httpx.TimeoutException as e:
            logger.warning("Fetch of %s timed out after %d ms", current, self.timeout_ms)
            raise FetchError("The page took too long to respond.", retryable=True, timed_out=True) from e
        except httpx.HTTPError as e:
            logger.warning("Fetch of %s failed: %s", current, type(e).__name__)
            raise FetchError("Could not reach the page.", retryable=True) from e

        logger.warning("Too many redirects starting at %s", start_url)
        raise FetchError("Too many redirects.")
