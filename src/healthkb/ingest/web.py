"""Page fetcher for knowledge sources, with SSRF protection and hard limits.

Every fetch:
- accepts https:// and http:// URLs only;
- resolves the hostname first and refuses private/loopback/link-local/reserved
  addresses before any connection is made;
- sends a descriptive User-Agent;
- has an explicit timeout (connect + read);
- follows at most ``max_redirects`` redirects;
- reads at most ``max_bytes`` of body;
- accepts HTML, plain text and PDF bodies only.

Any of these failing, a non-2xx status, or a network error raises FetchError.
"""

from __future__ import annotations

import ipaddress
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from http.client import HTTPResponse

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; HealthBot/1.0)"
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
DEFAULT_MAX_REDIRECTS = 3

_ALLOWED_SCHEMES = {"https", "http"}
_ALLOWED_CONTENT_TYPES = {
    "text/html",
    "application/xhtml+xml",
    "text/plain",
    "application/pdf",
}


class FetchError(RuntimeError):
    """Raised when a page cannot be fetched. ``status`` is set for HTTP errors."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class SsrfError(FetchError):
    """Raised when a URL resolves to a private or reserved address."""


@dataclass
class FetchedPage:
    """Raw response of a successful fetch."""

    url: str
    body: bytes
    content_type: str = "text/html"
    charset: str | None = None  # from the Content-Type header, if declared
    status: int = 200

    @property
    def text(self) -> str:
        try:
            return self.body.decode(self.charset or "utf-8", errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")


class PageFetcher:
    """Fetch one URL at a time with urllib.

    Args:
        user_agent: Value of the User-Agent header.
        timeout: Socket timeout in seconds for connect and read.
        max_bytes: Largest accepted response body.
        max_redirects: Redirects followed before giving up.
        allow_private: Skip the SSRF guard (local testing only).
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
        max_bytes: int = DEFAULT_MAX_BYTES,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        allow_private: bool = False,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.max_redirects = max_redirects
        self.allow_private = allow_private

    def fetch(self, url: str) -> FetchedPage:
        """Validate and GET *url*. Raises FetchError on any failure."""
        validate_scheme(url)
        if not self.allow_private:
            check_ssrf(url)

        request = urllib.request.Request(url, headers={"User-Agent": self.user_agent})
        opener = urllib.request.build_opener(
            _LimitedRedirectHandler(self.max_redirects, check_targets=not self.allow_private)
        )

        try:
            response: HTTPResponse = opener.open(request, timeout=self.timeout)
        except urllib.error.HTTPError as exc:
            exc.close()
            raise FetchError(f"HTTP {exc.code}", status=exc.code) from exc
        except urllib.error.URLError as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc.reason}") from exc
        except (TimeoutError, OSError) as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc}") from exc

        with response:
            raw_ct = response.headers.get("Content-Type", "text/html")
            ct = raw_ct.split(";")[0].strip().lower()
            if ct not in _ALLOWED_CONTENT_TYPES:
                raise FetchError(
                    f"Unsupported Content-Type '{ct}' for URL '{url}'. "
                    f"Accepted: {', '.join(sorted(_ALLOWED_CONTENT_TYPES))}"
                )
            charset = response.headers.get_content_charset()

            try:
                body = response.read(self.max_bytes + 1)
            except (TimeoutError, OSError) as exc:
                raise FetchError(f"Failed to read URL '{url}': {exc}") from exc
            if len(body) > self.max_bytes:
                raise FetchError(
                    f"Response body exceeds {self.max_bytes} bytes for URL '{url}'."
                )

            return FetchedPage(
                url=url,
                body=body,
                content_type=ct,
                charset=charset,
                status=response.status,
            )


def validate_scheme(url: str) -> None:
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise FetchError(
            f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
        )


def check_ssrf(url: str) -> None:
    """Resolve the hostname and block private/reserved IP ranges.

    Raises SsrfError if any resolved address is private, loopback,
    link-local, or otherwise reserved.
    """
    hostname = urllib.parse.urlparse(url).hostname
    if not hostname:
        raise FetchError(f"URL has no hostname: {url}")

    try:
        addrinfos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as exc:
        raise FetchError(f"DNS resolution failed for '{hostname}': {exc}") from exc

    for addrinfo in addrinfos:
        addr_str = addrinfo[4][0]
        try:
            ip = ipaddress.ip_address(addr_str)
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


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise FetchError after more than *max_redirects* redirects.

    Redirect targets go through the same scheme and SSRF checks as the
    original URL.
    """

    def __init__(self, max_redirects: int, check_targets: bool = True) -> None:
        self._max_redirects = max_redirects
        self._check_targets = check_targets
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise FetchError(
                f"Too many redirects (>{self._max_redirects}) for URL '{req.full_url}'."
            )
        validate_scheme(newurl)
        if self._check_targets:
            check_ssrf(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)
