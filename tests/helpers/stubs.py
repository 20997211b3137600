"""Scripted collaborators for verification pipeline tests."""

from __future__ import annotations

from typing import Any

from app.models.company import ContactExtraction, SearchResult
from app.models.lead import LeadRecord
from app.services.leads.errors import GathererUnavailableError, SinkUnavailableError
from app.services.leads.repositories import InMemoryLeadSink


def hit(url: str, title: str = "", snippet: str = "") -> SearchResult:
    return SearchResult(url=url, title=title, snippet=snippet)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubSearchGatherer:
    """Answers queries from a mapping; values may be result lists or exceptions."""

    def __init__(self, responses: dict[str, Any] | None = None, default: list[SearchResult] | None = None):
        self.responses = responses or {}
        self.default = default or []
        self.queries: list[str] = []

    def search(self, query: str, *, count: int = 10, locale: str | None = None) -> list[SearchResult]:
        self.queries.append(query)
        response = self.responses.get(query, self.default)
        if isinstance(response, Exception):
            raise response
        return list(response)[:count]


class StubPageGatherer:
    """Serves page text and extractions per URL; unknown URLs fail like a 404."""

    def __init__(
        self,
        texts: dict[str, str] | None = None,
        extractions: dict[str, Any] | None = None,
    ) -> None:
        self.texts = texts or {}
        self.extractions = extractions or {}
        self.fetched: list[str] = []
        self.extracted: list[str] = []

    def fetch_text(self, url: str) -> str:
        self.fetched.append(url)
        if url not in self.texts:
            raise GathererUnavailableError(f"Page fetch failed: {url}", code="PAGE_404")
        return self.texts[url]

    def fetch_and_extract(self, url: str, expected_name: str) -> ContactExtraction:
        self.extracted.append(url)
        extraction = self.extractions.get(url, ContactExtraction())
        if isinstance(extraction, Exception):
            raise extraction
        return extraction


class ScriptedJudge:
    """Judge returning fixed answers and recording its inputs."""

    def __init__(self, *, match: bool = True, official: bool = True) -> None:
        self.match = match
        self.official = official
        self.match_calls: list[str] = []
        self.official_calls: list[str] = []

    def is_match(self, text: str, expected_name: str) -> bool:
        self.match_calls.append(text)
        return self.match

    def is_official_site(self, link_text: str, expected_name: str) -> bool:
        self.official_calls.append(link_text)
        return self.official

    def extract(self, text: str, expected_name: str) -> ContactExtraction:
        return ContactExtraction()


class FailingSink(InMemoryLeadSink):
    """In-memory sink whose listing and/or appends raise SinkUnavailableError."""

    def __init__(self, *, fail_list: bool = True, fail_append: bool = False) -> None:
        super().__init__()
        self.fail_list = fail_list
        self.fail_append = fail_append

    def list_all_leads(self) -> list[LeadRecord]:
        if self.fail_list:
            raise SinkUnavailableError("Lead listing unavailable.")
        return super().list_all_leads()

    def append_lead(self, record: LeadRecord) -> None:
        if self.fail_append:
            raise SinkUnavailableError("Failed to append lead.")
        super().append_lead(record)
