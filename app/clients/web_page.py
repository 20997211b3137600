"""HTTP page fetcher and HTML-to-text cleanup for contact extraction."""

from __future__ import annotations

import re

import httpx
from bs4 import BeautifulSoup, Comment

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
_NOISE_TAGS = ("script", "style", "noscript", "svg", "iframe", "template")
_WHITESPACE = re.compile(r"\s+")


class WebPageError(RuntimeError):
    """Base error for page fetch failures."""

    def __init__(self, message: str, code: str = "PAGE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class WebPageTimeoutError(WebPageError):
    """Raised when a page request times out."""

    def __init__(self, message: str = "Page request timed out") -> None:
        super().__init__(message, code="PAGE_TIMEOUT")


class WebPageClient:
    """Fetches raw HTML documents with redirects followed."""

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent, "Accept-Language": "ja,en;q=0.8"},
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def fetch_html(self, url: str) -> str:
        """Return the body of `url`, raising WebPageError on transport or HTTP failures."""
        try:
            response = self._http.get(url)
        except httpx.TimeoutException as exc:
            raise WebPageTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise WebPageError(f"HTTP error fetching {url}: {exc}") from exc

        if response.status_code in (408, 504):
            raise WebPageTimeoutError()
        if response.status_code >= 400:
            raise WebPageError(
                f"Page request failed: {response.status_code} {url}",
                code=f"PAGE_{response.status_code}",
            )
        return response.text

    def fetch_text(self, url: str, *, limit: int | None = None) -> str:
        return html_to_text(self.fetch_html(url), limit=limit)

    def __enter__(self) -> "WebPageClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def html_to_text(html: str, *, limit: int | None = None, separator: str = " ") -> str:
    """Strip scripts, styles and comments, collapse whitespace and optionally truncate.

    `separator` joins adjacent text nodes; pass "" for inline fragments such as
    search snippets where highlight tags split a word.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    text = _WHITESPACE.sub(" ", soup.get_text(separator=separator)).strip()
    if limit is not None and limit >= 0:
        return text[:limit]
    return text
