"""Web extractor — URL scraping with SSRF protection and main-content selection.

Security requirements:
- SSRF guard: ipaddress module blocks private/loopback/link-local ranges before
  any connection is established.
- Allowed URL schemes: https:// and http:// only.
- Content-Type whitelist: text/html, application/xhtml+xml and text/plain.
- Max response body: 5 MB.
- Timeout: 30 seconds (connect + read).
- Max redirects: 3.

Content selection: script/style/nav/header/footer/aside/form/noscript are
removed, then the first of <main>, <article>, [role=main] is converted to
text; <body> is the fallback.
"""

from __future__ import annotations

import ipaddress
import socket
import urllib.error
import urllib.parse
import urllib.request
from http.client import HTTPResponse

import html2text
from bs4 import BeautifulSoup

from lectern.errors import ExtractionFailure
from lectern.ingest.base import BaseExtractor, Extracted

_USER_AGENT = "lectern/0.1 (+https://github.com/lectern-kb/lectern)"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_TIMEOUT = 30  # seconds
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}
_ALLOWED_CONTENT_TYPES = {"text/html", "application/xhtml+xml", "text/plain"}

_NON_CONTENT_TAGS = ["script", "style", "nav", "footer", "header", "aside", "form", "noscript"]
_MAIN_SELECTORS = ["main", "article", '[role="main"]']


class SsrfError(ExtractionFailure):
    """Raised when a URL resolves to a private or reserved address."""


def _converter() -> html2text.HTML2Text:
    h2t = html2text.HTML2Text()
    h2t.ignore_links = True
    h2t.ignore_images = True
    h2t.body_width = 0
    return h2t


class WebExtractor(BaseExtractor):
    """Fetch a URL (or take rendered HTML bytes) and reduce it to page text.

    SSRF protection is applied *before* any connection is made: the hostname
    is resolved and every resulting IP address is checked against
    private/loopback/link-local/reserved ranges.
    """

    def extract(self, data: bytes) -> Extracted:
        """Convert an already-fetched HTML document to text."""
        return self._html_to_extracted(data.decode("utf-8", errors="replace"))

    def extract_url(self, url: str) -> Extracted:
        """Validate, fetch and convert the page at *url*."""
        self._validate_scheme(url)
        self._check_ssrf(url)
        raw, content_type = self._fetch(url)
        if content_type == "text/plain":
            return Extracted(text=self._clip(raw.decode("utf-8", errors="replace")))
        return self.extract(raw)

    # ------------------------------------------------------------------
    # HTML → text
    # ------------------------------------------------------------------

    def _html_to_extracted(self, html: str) -> Extracted:
        soup = BeautifulSoup(html, "html.parser")
        title = self._title(soup)

        for tag in soup.find_all(_NON_CONTENT_TAGS):
            tag.decompose()

        region = None
        for selector in _MAIN_SELECTORS:
            region = soup.select_one(selector)
            if region is not None and region.get_text(strip=True):
                break
            region = None
        if region is None:
            region = soup.body or soup

        text = _converter().handle(str(region)).strip()
        return Extracted(text=self._clip(text), title=title)

    @staticmethod
    def _title(soup: BeautifulSoup) -> str | None:
        """First <h1>, else <title>; None if neither has text."""
        for tag_name in ("h1", "title"):
            tag = soup.find(tag_name)
            if tag is not None:
                text = tag.get_text(" ", strip=True)
                if text:
                    return text
        return None

    # ------------------------------------------------------------------
    # Fetch pipeline
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_scheme(url: str) -> None:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in _ALLOWED_SCHEMES:
            raise ExtractionFailure(
                f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
            )

    @staticmethod
    def _check_ssrf(url: str) -> None:
        """Resolve the hostname and block private/reserved IP ranges."""
        hostname = urllib.parse.urlparse(url).hostname
        if not hostname:
            raise ExtractionFailure(f"URL has no hostname: {url}")

        try:
            addrinfos = socket.getaddrinfo(hostname, None)
        except socket.gaierror as exc:
            raise ExtractionFailure(f"DNS resolution failed for '{hostname}': {exc}") from exc

        for addrinfo in addrinfos:
            try:
                ip = ipaddress.ip_address(addrinfo[4][0])
            except ValueError:
                continue
            if (
                ip.is_private
                or ip.is_loopback
                or ip.is_link_local
                or ip.is_reserved
                or ip.is_multicast
                or ip.is_unspecified
            ):
                raise SsrfError(
                    f"URL resolves to private address ({ip}). "
                    "Access to internal network addresses is not allowed."
                )

    @staticmethod
    def _fetch(url: str) -> tuple[bytes, str]:
        """Fetch *url* with timeout, redirect limit, size cap, and Content-Type check.

        Returns (body_bytes, content_type_without_params).
        """
        request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))

        try:
            response: HTTPResponse = opener.open(request, timeout=_TIMEOUT)
        except (urllib.error.URLError, TimeoutError) as exc:
            raise ExtractionFailure(f"Failed to fetch URL '{url}': {exc}") from exc

        with response:
            raw_ct = response.headers.get("Content-Type", "text/html")
            ct = raw_ct.split(";")[0].strip().lower()
            if ct not in _ALLOWED_CONTENT_TYPES:
                raise ExtractionFailure(
                    f"Unsupported Content-Type '{ct}' for URL '{url}'. "
                    f"Accepted: {', '.join(sorted(_ALLOWED_CONTENT_TYPES))}"
                )

            body = response.read(_MAX_BYTES + 1)
        if len(body) > _MAX_BYTES:
            raise ExtractionFailure(
                f"Response body exceeds {_MAX_BYTES // (1024 * 1024)} MB limit for URL '{url}'."
            )
        return body, ct


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise an error after more than *max_redirects* redirects."""

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise ExtractionFailure(
                f"Too many redirects (>{self._max_redirects}) for URL '{req.full_url}'."
            )
        # Redirect targets get the same SSRF check as the original URL.
        WebExtractor._check_ssrf(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)
