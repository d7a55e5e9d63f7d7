"""Article fetcher: download a web page and reduce it to readable text.

Guards applied before and during the fetch:
- http:// and https:// only.
- SSRF: every address the hostname resolves to must be public.
- text/html or text/plain responses only, capped at 5 MB.
- 30 s timeout, at most 3 redirects.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass

import html2text
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

_USER_AGENT = "inkwell/0.1"
_MAX_BYTES = 5 * 1024 * 1024
_TIMEOUT = 30
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = frozenset({"https", "http"})
_ALLOWED_CONTENT_TYPES = frozenset({"text/html", "text/plain"})
_STRIP_TAGS = ["script", "style", "nav", "footer", "header", "aside", "form", "noscript"]


class SsrfError(ValueError):
    """Raised when a URL resolves to a private or reserved address."""


@dataclass(frozen=True)
class Article:
    url: str
    title: str | None
    text: str


def check_url(url: str) -> None:
    """Reject unsupported schemes and hosts that resolve to non-public addresses.

    Raises:
        ValueError: Bad scheme, missing host, or DNS failure.
        SsrfError: Any resolved address is private, loopback, link-local,
            reserved, multicast or unspecified.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise ValueError(
            f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
        )
    host = parsed.hostname
    if not host:
        raise ValueError(f"URL has no hostname: {url}")

    try:
        infos = socket.getaddrinfo(host, None)
    except socket.gaierror as exc:
        raise ValueError(f"DNS resolution failed for '{host}': {exc}") from exc

    for info in infos:
        try:
            ip = ipaddress.ip_address(info[4][0])
        except ValueError:
            continue
        if not ip.is_global or ip.is_multicast:
            raise SsrfError(
                f"URL resolves to a non-public address ({ip}). "
                "Internal network addresses are not allowed."
            )


def fetch_article(url: str, timeout: float = _TIMEOUT) -> Article:
    """Fetch *url* and return its title and plain text."""
    check_url(url)
    body, content_type = _download(url, timeout)
    decoded = body.decode("utf-8", errors="replace")
    if content_type == "text/plain":
        return Article(url=url, title=None, text=decoded.strip())
    title, text = html_to_text(decoded)
    logger.debug("Fetched %s: %d chars of text", url, len(text))
    return Article(url=url, title=title, text=text)


def html_to_text(html: str) -> tuple[str | None, str]:
    """Return (title, body text) for an HTML document."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None
    for tag in soup.find_all(_STRIP_TAGS):
        tag.decompose()
    if soup.head:
        soup.head.decompose()

    converter = html2text.HTML2Text()
    converter.ignore_links = True
    converter.ignore_images = True
    converter.body_width = 0
    return title or None, converter.handle(str(soup)).strip()


def _download(url: str, timeout: float) -> tuple[bytes, str]:
    request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    opener = urllib.request.build_opener(_RedirectLimit(_MAX_REDIRECTS))
    try:
        response = opener.open(request, timeout=timeout)
    except urllib.error.URLError as exc:
        raise RuntimeError(f"Failed to fetch URL '{url}': {exc}") from exc

    with response:
        content_type = response.headers.get("Content-Type", "text/html")
        content_type = content_type.split(";")[0].strip().lower()
        if content_type not in _ALLOWED_CONTENT_TYPES:
            raise ValueError(
                f"Unsupported Content-Type '{content_type}' for URL '{url}'. "
                f"Accepted: {', '.join(sorted(_ALLOWED_CONTENT_TYPES))}"
            )
        body = response.read(_MAX_BYTES + 1)
    if len(body) > _MAX_BYTES:
        raise ValueError(f"Response body exceeds {_MAX_BYTES // (1024 * 1024)} MB for '{url}'.")
    return body, content_type


class _RedirectLimit(urllib.request.HTTPRedirectHandler):
    def __init__(self, max_redirects: int) -> None:
        self._max = max_redirects
        self._seen = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._seen += 1
        if self._seen > self._max:
            raise RuntimeError(f"Too many redirects (>{self._max}) for URL '{req.full_url}'.")
        # Redirect targets get the same SSRF check as the original URL.
        check_url(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)
