"""Phased verification of a single candidate company.

Phases run in a fixed order:

1. job signal check (terminal on failure)
2. official contact lookup
3. direct search fallback (only when phase 2 produced no cross-checked contact)
4. phone cross-check, invoked for every extracted contact carrying a phone

A failed cross-check sends control back to the phase that produced the
contact, which moves on to its next candidate source.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from app.config import settings
from app.models.company import (
    CompanyIdentity,
    ContactExtraction,
    EvidenceBundle,
    RejectionReason,
    SearchResult,
    VerificationResult,
    bounded_sources,
)
from app.observability.metrics import metrics
from app.services.judge.base import Judge
from app.services.leads.errors import FatalConfigurationError
from app.services.leads.normalization import (
    ascii_slug,
    clean_company_name,
    compact,
    count_mentions,
    normalize_host,
    registrable_domain,
    url_matches_any,
)
from app.services.leads.phone_numbers import bare_phone, is_valid_phone_format
from pipelines.search_client import (
    RuntimeConfig,
    get_judge,
    get_page_gatherer,
    get_runtime_config,
    get_search_gatherer,
)
from pipelines.verification.confidence import (
    COMPANY_ACCEPT_THRESHOLD,
    company_signals,
    phone_signals,
    score_company,
    score_phone,
)
from pipelines.verification.gatherers import PageGatherer, SearchGatherer, SleepFn
from pipelines.verification.sites import BUSINESS_LISTING_HOSTS, JOB_SITE_HOSTS, THIRD_PARTY_HOSTS

logger = logging.getLogger("pipelines.verification.pipeline")

_T = TypeVar("_T")
Clock = Callable[[], float]

JOB_QUERY_TEMPLATES = (
    '"{name}" intitle:求人 site:indeed.com',
    '"{name}" intitle:採用 site:rikunabi.com',
    '"{name}" 正社員 採用 site:doda.com',
    '"{name}" 募集 -site:townwork.net -site:baitoru.com',
    '"{name}" {location} 求人 OR 採用',
)
OFFICIAL_QUERY_TEMPLATES = (
    "{name} {location} プライバシーポリシー",
    "{name} {location} 利用規約",
)
OFFICIAL_DOMAIN_QUERY_TEMPLATE = "{name} {location} 会社概要 site:{slug}.co.jp"
DIRECT_QUERY_TEMPLATES = (
    "{name} {location} 電話番号",
    "{name} {location} メールアドレス",
    "{name} {location} お問い合わせ",
    "{name} {location} 会社概要",
    "{name} {location} 連絡先",
)

# Tunable heuristics for hiring-signal corroboration.
MIN_NAME_MENTIONS = 3
MAX_COMPETITOR_MENTIONS = 10

_COMPETITOR_PATTERN = re.compile(r"(?:株式会社|有限会社|合同会社)\s*([^\s、。,.「」()（）|｜/]{2,10})")
_SPACES = re.compile(r"\s+")


@dataclass(frozen=True)
class PipelineOptions:
    """Per-run limits and thresholds."""

    search_count: int = 10
    results_per_query: int = 3
    job_links_per_query: int = 3
    min_name_mentions: int = MIN_NAME_MENTIONS
    company_accept_threshold: int = COMPANY_ACCEPT_THRESHOLD
    extraction_min_confidence: int = 20
    match_text_limit: int = 5000
    candidate_timeout_seconds: float | None = 600.0

    @classmethod
    def from_settings(cls) -> PipelineOptions:
        return cls(
            search_count=settings.search_result_count,
            company_accept_threshold=settings.company_accept_threshold,
            extraction_min_confidence=settings.extraction_min_confidence,
            match_text_limit=settings.match_text_limit,
            candidate_timeout_seconds=settings.candidate_timeout_seconds,
        )


class _DeadlineExceeded(Exception):
    """Raised internally when a candidate exceeds its wall-clock budget."""


@dataclass
class _CandidateRun:
    identity: CompanyIdentity
    started_at: float
    deadline: float | None
    evidence: EvidenceBundle = field(default_factory=EvidenceBundle)
    extracted_contacts: int = 0
    gatherer_calls: int = 0


class VerificationPipeline:
    """Runs the verification phases for one candidate and always returns a result."""

    def __init__(
        self,
        search: SearchGatherer,
        pages: PageGatherer,
        judge: Judge,
        *,
        options: PipelineOptions | None = None,
        clock: Clock | None = None,
    ) -> None:
        missing = [
            name for name, value in (("search", search), ("pages", pages), ("judge", judge)) if value is None
        ]
        if missing:
            raise FatalConfigurationError(f"VerificationPipeline missing collaborators: {', '.join(missing)}")
        self._search_gatherer = search
        self._page_gatherer = pages
        self._judge = judge
        self._options = options or PipelineOptions()
        self._clock = clock or time.monotonic

    def verify(self, identity: CompanyIdentity) -> VerificationResult:
        started = self._clock()
        timeout = self._options.candidate_timeout_seconds
        run = _CandidateRun(
            identity=identity,
            started_at=started,
            deadline=started + timeout if timeout else None,
        )
        logger.info("verification.start name=%s location=%s", identity.name, identity.location)
        try:
            if not self._job_signal_check(run):
                return self._finish(run, RejectionReason.NO_HIRING_SIGNAL)
            if not (self._official_contact_lookup(run) or self._direct_search_fallback(run)):
                reason = (
                    RejectionReason.PHONE_CROSS_CHECK_FAILED
                    if run.extracted_contacts
                    else RejectionReason.CONTACT_EXTRACTION_FAILED
                )
                return self._finish(run, reason)
            return self._finish(run, None)
        except _DeadlineExceeded:
            run.evidence.errors.append(f"pipeline:TIMEOUT:exceeded {timeout}s")
            return self._finish(run, RejectionReason.TIMEOUT)
        except Exception as exc:
            logger.exception("verification.fatal name=%s", identity.name)
            run.evidence.record_error("pipeline", exc)
            return self._finish(run, RejectionReason.FATAL_IO_ERROR)

    # Phase 1

    def _job_signal_check(self, run: _CandidateRun) -> bool:
        identity = run.identity
        for template in JOB_QUERY_TEMPLATES:
            query = _render(template, name=identity.name, location=identity.location)
            results = self._search(run, query, step="job_signal")
            if not results:
                continue
            if self._job_site_confirms(run, results) or self._mentions_confirm(run, results):
                run.evidence.job_posting_confirmed = True
                logger.info("verification.job_signal.confirmed name=%s query=%r", identity.name, query)
                return True
        logger.info("verification.job_signal.missing name=%s", identity.name)
        return False

    def _job_site_confirms(self, run: _CandidateRun, results: list[SearchResult]) -> bool:
        name = run.identity.name
        links = [result for result in results if url_matches_any(result.url, JOB_SITE_HOSTS)]
        for result in links[: self._options.job_links_per_query]:
            text = self._guarded(run, "job_signal.fetch", lambda: self._page_gatherer.fetch_text(result.url), "")
            mentions = count_mentions(text, name)
            competitors = count_competitor_mentions(text, name)
            if mentions >= self._options.min_name_mentions and mentions > competitors:
                run.evidence.add_source(result.url)
                return True
        return False

    def _mentions_confirm(self, run: _CandidateRun, results: list[SearchResult]) -> bool:
        name = run.identity.name
        text = " ".join(result.text for result in results)
        if count_mentions(text, name) < self._options.min_name_mentions:
            return False
        snippet = text[: self._options.match_text_limit]
        if not self._guarded(run, "job_signal.judge", lambda: self._judge.is_match(snippet, name), False):
            return False
        for result in results:
            if count_mentions(result.text, name):
                run.evidence.add_source(result.url)
        return True

    # Phase 2

    def _official_contact_lookup(self, run: _CandidateRun) -> bool:
        identity = run.identity
        queries = [
            _render(template, name=identity.name, location=identity.location)
            for template in OFFICIAL_QUERY_TEMPLATES
        ]
        slug = ascii_slug(identity.name)
        if slug:
            queries.append(
                _render(OFFICIAL_DOMAIN_QUERY_TEMPLATE, name=identity.name, location=identity.location, slug=slug)
            )
        for query in queries:
            results = self._search(run, query, step="official_lookup")
            for result in results[: self._options.results_per_query]:
                if url_matches_any(result.url, THIRD_PARTY_HOSTS):
                    continue
                link_text = result.title or result.url
                is_official = self._guarded(
                    run,
                    "official_lookup.judge",
                    lambda: self._judge.is_official_site(link_text, identity.name),
                    False,
                )
                if is_official and self._try_contact(run, result.url, official=True):
                    logger.info("verification.official_contact.accepted name=%s url=%s", identity.name, result.url)
                    return True
        return False

    # Phase 3

    def _direct_search_fallback(self, run: _CandidateRun) -> bool:
        identity = run.identity
        for template in DIRECT_QUERY_TEMPLATES:
            query = _render(template, name=identity.name, location=identity.location)
            results = self._search(run, query, step="direct_search")
            for result in results[: self._options.results_per_query]:
                if self._try_contact(run, result.url, official=False):
                    logger.info("verification.direct_contact.accepted name=%s url=%s", identity.name, result.url)
                    return True
        return False

    def _try_contact(self, run: _CandidateRun, url: str, *, official: bool) -> bool:
        name = run.identity.name
        extraction: ContactExtraction | None = self._guarded(
            run,
            "extract",
            lambda: self._page_gatherer.fetch_and_extract(url, name),
            None,
        )
        if extraction is None or not extraction.has_contact:
            return False
        if extraction.confidence < self._options.extraction_min_confidence:
            logger.debug("verification.extraction.low_confidence url=%s confidence=%d", url, extraction.confidence)
            return False
        run.extracted_contacts += 1
        if extraction.phone and not self._phone_cross_check(run, extraction.phone):
            logger.info("verification.cross_check.failed name=%s url=%s", name, url)
            return False

        evidence = run.evidence
        evidence.phone_candidate = extraction.phone
        evidence.email_candidate = extraction.email
        evidence.address_candidate = extraction.address
        evidence.website_candidate = extraction.website or (_origin(url) if official else None)
        evidence.official_site_confirmed = official or _same_site(extraction.website, url)
        evidence.add_source(url)
        for source in evidence.corroborating_sources:
            evidence.add_source(source)
        return True

    # Phase 4

    def _phone_cross_check(self, run: _CandidateRun, phone: str) -> bool:
        evidence = run.evidence
        name = run.identity.name
        evidence.reset_phone_signals()
        digits = bare_phone(phone)
        results = self._search(run, digits, step="phone_cross_check")
        text = " ".join(result.text for result in results)
        passed = False
        if count_mentions(text, name) > 0:
            snippet = text[: self._options.match_text_limit]
            passed = self._guarded(run, "phone_cross_check.judge", lambda: self._judge.is_match(snippet, name), False)
        if not passed:
            evidence.reset_phone_signals()
            return False

        evidence.phone_format_valid = is_valid_phone_format(phone)
        evidence.phone_company_associated = True
        evidence.corroborating_sources = [
            result.url
            for result in results
            if count_mentions(result.text, name) and _mentions_phone(result.text, digits)
        ]
        evidence.business_listing_found = any(
            url_matches_any(result.url, BUSINESS_LISTING_HOSTS) for result in results
        )
        return True

    # Helpers

    def _search(self, run: _CandidateRun, query: str, *, step: str) -> list[SearchResult]:
        return self._guarded(
            run,
            step,
            lambda: self._search_gatherer.search(query, count=self._options.search_count),
            [],
        )

    def _guarded(self, run: _CandidateRun, step: str, call: Callable[[], _T], default: _T) -> _T:
        """Run one collaborator call; failures become recorded errors and the default value."""
        self._check_deadline(run)
        run.gatherer_calls += 1
        try:
            return call()
        except Exception as exc:
            logger.warning(
                "verification.step_error name=%s step=%s code=%s",
                run.identity.name,
                step,
                getattr(exc, "code", type(exc).__name__),
            )
            run.evidence.record_error(step, exc)
            return default

    def _check_deadline(self, run: _CandidateRun) -> None:
        if run.deadline is not None and self._clock() >= run.deadline:
            raise _DeadlineExceeded()

    def _finish(self, run: _CandidateRun, reason: RejectionReason | None) -> VerificationResult:
        evidence = run.evidence
        confidence = score_company(company_signals(evidence))
        phone_confidence = score_phone(phone_signals(evidence)) if evidence.phone_candidate else None
        if reason is None and confidence < self._options.company_accept_threshold:
            reason = RejectionReason.CONFIDENCE_BELOW_THRESHOLD
        accepted = reason is None
        elapsed = max(0.0, self._clock() - run.started_at)
        result = VerificationResult(
            identity=run.identity,
            evidence=evidence.model_copy(deep=True),
            confidence=confidence,
            phone_confidence=phone_confidence,
            accepted=accepted,
            rejection_reason=reason,
            source_urls=bounded_sources(evidence.source_urls),
            errors=list(evidence.errors),
            elapsed_seconds=elapsed,
        )
        outcome = "accepted" if accepted else reason.value
        metrics.increment("verification.result", tags={"outcome": outcome})
        metrics.timing("verification.elapsed", elapsed * 1000.0, tags={"outcome": outcome})
        logger.info(
            "verification.finish name=%s outcome=%s confidence=%d calls=%d",
            run.identity.name,
            outcome,
            confidence,
            run.gatherer_calls,
        )
        return result


def count_competitor_mentions(text: str | None, name: str) -> int:
    """Count corporate-form mentions of companies other than `name`, capped."""
    if not text:
        return 0
    own = clean_company_name(name)
    competitors = 0
    for match in _COMPETITOR_PATTERN.finditer(text):
        mentioned = compact(match.group(1))
        if own and mentioned.startswith(own):
            continue
        competitors += 1
        if competitors >= MAX_COMPETITOR_MENTIONS:
            break
    return competitors


def _render(template: str, **values: str) -> str:
    return _SPACES.sub(" ", template.format(**values)).strip()


def _mentions_phone(text: str, digits: str) -> bool:
    return bool(digits) and digits.lstrip("+") in re.sub(r"\D", "", text)


def _origin(url: str) -> str | None:
    host = normalize_host(url)
    return f"https://{host}" if host else None


def _same_site(website: str | None, url: str) -> bool:
    if not website or url_matches_any(url, THIRD_PARTY_HOSTS):
        return False
    return registrable_domain(website) == registrable_domain(url) != ""


def build_verification_pipeline(
    config: RuntimeConfig | None = None,
    *,
    sleep: SleepFn | None = None,
) -> VerificationPipeline:
    """Wire a pipeline from runtime configuration and settings."""
    config = config or get_runtime_config()
    judge = get_judge(config)
    return VerificationPipeline(
        get_search_gatherer(config, sleep=sleep),
        get_page_gatherer(judge, config, sleep=sleep),
        judge,
        options=PipelineOptions.from_settings(),
    )
