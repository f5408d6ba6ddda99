"""Web page extraction with httpx and BeautifulSoup.

Fetch → strip page chrome → pick the main content block (or fall back to
paragraphs and headings) → clean → bound. Transport failures are
classified into NetworkError kinds so the recorded error message tells the
operator what went wrong (unresolvable host, refused connection, timeout,
TLS failure, HTTP status).

Public API:
    - validate_url(url)                     (sync, raises InvalidInputError)
    - parse_page(html, url, max_chars)      (sync, pure)
    - clean_text(text)                      (sync, pure)
    - extract_page_metadata(soup, url)      (sync, best effort, never raises)
    - classify_fetch_error(exc, url)        (sync, httpx error → NetworkError)
    - LinkExtractor.extract(source)         (async, fetch + parse)
"""

from __future__ import annotations

import ipaddress
import re
import socket
import ssl
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import httpx
import structlog
from bs4 import BeautifulSoup

from knowledgebot.core.exceptions import (
    InsufficientContentError,
    InvalidInputError,
    NetworkError,
    NetworkErrorKind,
)
from knowledgebot.services.extractors.base import (
    ContentExtractor,
    DocumentSource,
    ExtractedContent,
    LinkSource,
)

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Upgrade-Insecure-Requests": "1",
}

_UNWANTED_SELECTOR = (
    "script, style, nav, header, footer, aside, "
    ".advertisement, .ads, .sidebar, .menu, .navigation"
)

_CONTENT_SELECTORS = (
    "main",
    '[role="main"]',
    ".main-content",
    ".content",
    "article",
    ".post-content",
    ".entry-content",
    "#content",
    ".page-content",
    ".article-body",
)

_FALLBACK_SELECTOR = "p, h1, h2, h3, h4, h5, h6"
_FALLBACK_MIN_BLOCK_CHARS = 10

_MIN_CONTENT_CHARS = 50
_TRUNCATION_MARKER = "... [truncated]"

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED_CHARS = re.compile(r"[^\w\s.,!?\-():;\"'\[\]]")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([.!?])")

_NOT_FOUND_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "no address associated",
    "temporary failure in name resolution",
)


# ===================================================================
# URL validation
# ===================================================================

def _is_local_host(host: str) -> bool:
    host = host.lower().rstrip(".")
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_loopback or address.is_unspecified or address.is_link_local


def validate_url(url: str) -> None:
    """Reject URLs that are not public http(s) pages."""
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.netloc:
        raise InvalidInputError(
            "Invalid URL format. Please provide a valid HTTP or HTTPS URL."
        )
    if parts.scheme.lower() not in ("http", "https"):
        raise InvalidInputError(
            "Invalid URL protocol. Only HTTP and HTTPS are supported."
        )

    host = parts.hostname or ""
    if _is_local_host(host):
        raise InvalidInputError("Cannot scrape local URLs for security reasons.")
    if len(host) < 3:
        raise InvalidInputError("Invalid hostname in URL.")


# ===================================================================
# HTML → text
# ===================================================================

def clean_text(text: str) -> str:
    """Flatten whitespace and drop everything but words and basic punctuation."""
    if not text:
        return ""
    text = _WHITESPACE.sub(" ", text)
    text = _DISALLOWED_CHARS.sub("", text)
    text = _SPACE_BEFORE_PUNCT.sub(r"\1", text)
    return _WHITESPACE.sub(" ", text).strip()


def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> str:
    tag = soup.find("meta", attrs={attr: value})
    if tag is None:
        return ""
    return str(tag.get("content") or "").strip()


def _empty_metadata(url: str) -> dict[str, Any]:
    return {
        "title": "",
        "description": "",
        "keywords": "",
        "author": "",
        "og_title": "",
        "og_description": "",
        "og_image": "",
        "canonical": url,
        "language": "en",
    }


def extract_page_metadata(soup: BeautifulSoup, url: str) -> dict[str, Any]:
    """Read head metadata. Any parse problem yields the empty record."""
    try:
        title_tag = soup.find("title")
        canonical = soup.find("link", attrs={"rel": "canonical"})
        html_tag = soup.find("html")
        return {
            "title": title_tag.get_text().strip() if title_tag else "",
            "description": (
                _meta_content(soup, "name", "description")
                or _meta_content(soup, "property", "og:description")
            ),
            "keywords": _meta_content(soup, "name", "keywords"),
            "author": _meta_content(soup, "name", "author"),
            "og_title": _meta_content(soup, "property", "og:title"),
            "og_description": _meta_content(soup, "property", "og:description"),
            "og_image": _meta_content(soup, "property", "og:image"),
            "canonical": (str(canonical.get("href") or "") if canonical else "") or url,
            "language": (
                (str(html_tag.get("lang") or "") if html_tag else "")
                or _meta_content(soup, "http-equiv", "content-language")
                or "en"
            ),
        }
    except Exception as e:
        logger.warning("link_metadata_unreadable", url=url, error=str(e))
        return _empty_metadata(url)


def _page_title(soup: BeautifulSoup) -> str:
    title_tag = soup.find("title")
    if title_tag and title_tag.get_text().strip():
        return title_tag.get_text().strip()
    h1 = soup.find("h1")
    if h1 and h1.get_text().strip():
        return h1.get_text().strip()
    return "Untitled"


def _main_text(soup: BeautifulSoup) -> str:
    """Text of the first matching content container, else paragraphs/headings."""
    for selector in _CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = node.get_text(" ")
        if text.strip():
            return text
        break

    blocks = (el.get_text(" ").strip() for el in soup.select(_FALLBACK_SELECTOR))
    return "\n\n".join(b for b in blocks if len(b) > _FALLBACK_MIN_BLOCK_CHARS)


def parse_page(html: str, url: str, max_chars: int = 50_000) -> ExtractedContent:
    """Turn fetched HTML into bounded plain text plus page metadata.

    Raises:
        InsufficientContentError: Fewer than 50 characters survive cleaning.
    """
    soup = BeautifulSoup(html, "html.parser")
    metadata = extract_page_metadata(soup, url)

    for element in soup.select(_UNWANTED_SELECTOR):
        if not element.decomposed:
            element.decompose()

    title = _page_title(soup)
    content = clean_text(_main_text(soup))

    if len(content) < _MIN_CONTENT_CHARS:
        raise InsufficientContentError(
            "Insufficient content extracted from the webpage"
        )

    truncated = len(content) > max_chars
    if truncated:
        content = content[:max_chars] + _TRUNCATION_MARKER

    metadata.update(
        {
            "title": title,
            "url": url,
            "scraped_at": datetime.now(timezone.utc).isoformat(),
            "content_length": len(content),
            "truncated": truncated,
        }
    )
    return ExtractedContent(text=content, metadata=metadata, title=title)


# ===================================================================
# Fetch errors
# ===================================================================

def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc*, its causes/contexts and any grouped sub-exceptions."""
    stack: list[BaseException] = [exc]
    seen: set[int] = set()
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.extend(getattr(current, "exceptions", ()) or ())
        for linked in (current.__cause__, current.__context__):
            if linked is not None:
                stack.append(linked)


def classify_fetch_error(exc: httpx.HTTPError, url: str) -> NetworkError:
    """Map an httpx failure to a NetworkError with a readable message."""
    kind = NetworkErrorKind.OTHER
    if isinstance(exc, httpx.TimeoutException):
        kind = NetworkErrorKind.TIMEOUT
    else:
        for cause in _exception_chain(exc):
            if isinstance(cause, ssl.SSLError):
                kind = NetworkErrorKind.TLS
            elif isinstance(cause, socket.gaierror):
                kind = NetworkErrorKind.NOT_FOUND
            elif isinstance(cause, ConnectionRefusedError):
                kind = NetworkErrorKind.CONNECTION_REFUSED
            elif isinstance(cause, TimeoutError):
                kind = NetworkErrorKind.TIMEOUT
            if kind is not NetworkErrorKind.OTHER:
                break

    if kind is NetworkErrorKind.OTHER:
        text = str(exc).lower()
        if any(marker in text for marker in _NOT_FOUND_MARKERS):
            kind = NetworkErrorKind.NOT_FOUND
        elif "connection refused" in text:
            kind = NetworkErrorKind.CONNECTION_REFUSED
        elif "ssl" in text or "certificate" in text:
            kind = NetworkErrorKind.TLS

    messages = {
        NetworkErrorKind.NOT_FOUND: f"Website not found: could not resolve host for {url}",
        NetworkErrorKind.CONNECTION_REFUSED: f"Connection refused by {url}",
        NetworkErrorKind.TIMEOUT: f"Request timeout for {url}",
        NetworkErrorKind.TLS: (
            f"SSL/TLS connection failed for {url}. "
            "The website may have SSL configuration issues."
        ),
    }
    message = messages.get(kind, f"Failed to scrape content from {url}: {exc}")
    return NetworkError(message, kind=kind)


# ===================================================================
# Extractor
# ===================================================================

class LinkExtractor(ContentExtractor):
    """Fetch a public web page and extract its readable text."""

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        max_content_chars: int = 50_000,
        max_redirects: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._max_chars = max_content_chars
        self._max_redirects = max_redirects
        self._transport = transport

    def validate(self, source: DocumentSource) -> None:
        self._checked(source)

    def _checked(self, source: DocumentSource) -> LinkSource:
        if not isinstance(source, LinkSource):
            raise InvalidInputError("Link extractor received a non-link source")
        validate_url(source.url)
        return source

    async def extract(self, source: DocumentSource) -> ExtractedContent:
        source = self._checked(source)

        html = await self._fetch(source.url)
        content = parse_page(html, source.url, max_chars=self._max_chars)
        logger.info(
            "link_extracted",
            url=source.url,
            title=content.title,
            content_length=len(content.text),
        )
        return content

    async def _fetch(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                max_redirects=self._max_redirects,
                headers=_BROWSER_HEADERS,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            error = classify_fetch_error(e, url)
            logger.error(
                "link_fetch_failed",
                url=url,
                kind=error.kind.value,
                error=str(e),
            )
            raise error from e

        if not 200 <= response.status_code < 400:
            logger.error("link_fetch_bad_status", url=url, status=response.status_code)
            raise NetworkError(
                f"HTTP {response.status_code} error for {url}",
                kind=NetworkErrorKind.HTTP_STATUS,
            )
        return response.text
