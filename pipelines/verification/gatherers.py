"""Evidence gatherer contracts and adapters over search, page, and judge providers."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from typing import Any, Protocol

from app.clients.brave import BraveError, BraveRateLimitError, BraveTimeoutError
from app.clients.web_page import WebPageError, html_to_text
from app.models.company import ContactExtraction, SearchResult
from app.services.judge.base import Judge
from app.services.leads.errors import GathererUnavailableError

logger = logging.getLogger("pipelines.verification.gatherers")

SleepFn = Callable[[float], None]
RETRYABLE_ERRORS = (BraveRateLimitError, BraveTimeoutError)


class SearchClient(Protocol):
    """Subset of provider search behavior used by the gatherer."""

    def search(
        self,
        *,
        query: str,
        count: int,
        country: str,
        search_lang: str,
    ) -> list[dict[str, Any]]:
        ...


class PageClient(Protocol):
    def fetch_text(self, url: str, *, limit: int | None = None) -> str:
        ...


class SearchGatherer(Protocol):
    def search(self, query: str, *, count: int = 10, locale: str | None = None) -> list[SearchResult]:
        ...


class PageGatherer(Protocol):
    def fetch_text(self, url: str) -> str:
        ...

    def fetch_and_extract(self, url: str, expected_name: str) -> ContactExtraction:
        ...


def backoff_delays(max_attempts: int, base_delay: float) -> Iterator[float]:
    """Yield the wait before each retry: base, 2*base, 4*base... (max_attempts - 1 values)."""
    for attempt in range(1, max(1, max_attempts)):
        yield base_delay * (2 ** (attempt - 1))


def split_locale(locale: str | None, *, country: str, search_lang: str) -> tuple[str, str]:
    """Parse `ja-JP` style locales into (country, language), falling back to defaults."""
    if not locale:
        return country, search_lang
    language, _, region = locale.replace("_", "-").partition("-")
    return (region.upper() or country), (language.lower() or search_lang)


class ProviderSearchGatherer:
    """Adapts a provider client into `search(query) -> list[SearchResult]`.

    Rate-limit and timeout errors are retried with exponential backoff; any
    remaining provider failure surfaces as GathererUnavailableError. Every call
    is followed by a fixed settle delay.
    """

    def __init__(
        self,
        client: SearchClient,
        *,
        country: str = "JP",
        search_lang: str = "ja",
        settle_delay: float = 1.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        sleep: SleepFn | None = None,
    ) -> None:
        self._client = client
        self._country = country
        self._search_lang = search_lang
        self._settle_delay = max(0.0, settle_delay)
        self._retry_attempts = max(1, retry_attempts)
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep or time.sleep

    def search(self, query: str, *, count: int = 10, locale: str | None = None) -> list[SearchResult]:
        country, search_lang = split_locale(locale, country=self._country, search_lang=self._search_lang)
        try:
            raw = self._search_with_retries(query, count=count, country=country, search_lang=search_lang)
        finally:
            self._settle()
        results = normalize_results(raw)
        logger.debug("gatherer.search query=%r results=%d", query, len(results))
        return results

    def _search_with_retries(
        self, query: str, *, count: int, country: str, search_lang: str
    ) -> list[dict[str, Any]]:
        delays = backoff_delays(self._retry_attempts, self._retry_base_delay)
        while True:
            try:
                return self._client.search(
                    query=query,
                    count=count,
                    country=country,
                    search_lang=search_lang,
                )
            except RETRYABLE_ERRORS as exc:
                delay = next(delays, None)
                if delay is None:
                    raise GathererUnavailableError(
                        f"Search failed after {self._retry_attempts} attempts: {exc}", code=exc.code
                    ) from exc
                logger.warning("gatherer.search_retry code=%s delay=%.2f", exc.code, delay)
                self._sleep(delay)
            except BraveError as exc:
                raise GathererUnavailableError(f"Search failed: {exc}", code=exc.code) from exc

    def _settle(self) -> None:
        if self._settle_delay:
            self._sleep(self._settle_delay)


class HttpPageGatherer:
    """Fetches pages as cleaned text and delegates extraction to a judge."""

    def __init__(
        self,
        client: PageClient,
        judge: Judge,
        *,
        text_limit: int = 15000,
        settle_delay: float = 1.0,
        sleep: SleepFn | None = None,
    ) -> None:
        self._client = client
        self._judge = judge
        self._text_limit = text_limit
        self._settle_delay = max(0.0, settle_delay)
        self._sleep = sleep or time.sleep

    def fetch_text(self, url: str) -> str:
        try:
            return self._client.fetch_text(url, limit=self._text_limit)
        except WebPageError as exc:
            raise GathererUnavailableError(f"Page fetch failed: {exc}", code=exc.code) from exc
        finally:
            if self._settle_delay:
                self._sleep(self._settle_delay)

    def fetch_and_extract(self, url: str, expected_name: str) -> ContactExtraction:
        text = self.fetch_text(url)
        if not text:
            return ContactExtraction()
        return self._judge.extract(text, expected_name)


def normalize_results(raw: list[dict[str, Any]]) -> list[SearchResult]:
    """Convert provider payloads into SearchResult entries, skipping ones without a URL."""
    results: list[SearchResult] = []
    for item in raw or []:
        url = (item.get("url") or "").strip()
        if not url:
            continue
        snippet = item.get("description") or item.get("snippet") or item.get("content") or ""
        results.append(
            SearchResult(url=url, title=_plain(item.get("title")), snippet=_plain(snippet))
        )
    return results


def _plain(value: Any) -> str:
    """Drop highlight markup and entities that providers embed in titles and snippets."""
    return html_to_text(str(value or ""), separator="")
