"""Stand-alone phone number verification against web search evidence."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.models.company import SearchResult
from app.services.leads.errors import LeadVerificationError
from app.services.leads.normalization import count_mentions, url_matches_any
from app.services.leads.phone_numbers import bare_phone, is_valid_phone_format
from pipelines.search_client import get_search_gatherer
from pipelines.verification.confidence import HIGH_QUALITY_THRESHOLD, PhoneSignals, score_phone
from pipelines.verification.gatherers import SearchGatherer, SleepFn
from pipelines.verification.sites import BUSINESS_LISTING_HOSTS

logger = logging.getLogger("pipelines.verification.phone")

ASSOCIATION_QUERY_TEMPLATES = (
    '"{phone}" "{company}"',
    '"{bare}" "{company}"',
    "{company} 電話番号 {phone}",
    "{company} TEL {phone}",
    "{company} お問い合わせ {phone}",
    '"{company}" 連絡先 "{phone}"',
    "{company} 代表 {phone}",
    "{company} 本社 {phone}",
)
LISTING_QUERY_TEMPLATES = (
    'site:itp.ne.jp "{company}" "{phone}"',
    'site:mapion.co.jp "{company}" "{phone}"',
    'site:google.com/maps "{company}" "{phone}"',
    'site:ekiten.jp "{company}" "{phone}"',
    '"{company}" "{phone}" 営業時間',
    '"{company}" "{phone}" 住所',
    '"{company}" "{phone}" アクセス',
)
ASSOCIATION_RESULT_COUNT = 10
LISTING_RESULT_COUNT = 5
SOURCES_PER_QUERY = 3
SUFFICIENT_SOURCES = 2
MAX_SOURCES = 5


@dataclass(frozen=True)
class PhoneVerification:
    """Outcome of verifying that a phone number belongs to a company."""

    phone: str
    company: str
    verified: bool
    confidence: int
    sources: list[str]
    phone_format_valid: bool
    company_associated: bool
    multiple_sources_found: bool
    business_listing_found: bool
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "phone": self.phone,
            "company": self.company,
            "verified": self.verified,
            "confidence": self.confidence,
            "sources": list(self.sources),
            "details": {
                "phone_format_valid": self.phone_format_valid,
                "company_associated": self.company_associated,
                "multiple_sources_found": self.multiple_sources_found,
                "business_listing_found": self.business_listing_found,
            },
            "errors": list(self.errors),
        }


class PhoneVerifier:
    """Scores a (phone, company) pair with the phone confidence table."""

    def __init__(
        self,
        search: SearchGatherer,
        *,
        verified_threshold: int = HIGH_QUALITY_THRESHOLD,
        batch_delay: float = 2.0,
        sleep: SleepFn | None = None,
    ) -> None:
        self._search = search
        self._verified_threshold = verified_threshold
        self._batch_delay = max(0.0, batch_delay)
        self._sleep = sleep or time.sleep

    def verify(self, phone: str, company: str) -> PhoneVerification:
        errors: list[str] = []
        format_valid = is_valid_phone_format(phone)
        association_sources = self._association_sources(phone, company, errors)
        listing_sources = self._listing_sources(phone, company, errors)
        confidence = score_phone(
            PhoneSignals(
                phone_format_valid=format_valid,
                phone_company_associated=bool(association_sources),
                corroborating_sources=len(association_sources),
                business_listing_found=bool(listing_sources),
            )
        )
        sources = _dedupe(association_sources + listing_sources)[:MAX_SOURCES]
        result = PhoneVerification(
            phone=phone,
            company=company,
            verified=confidence >= self._verified_threshold,
            confidence=confidence,
            sources=sources,
            phone_format_valid=format_valid,
            company_associated=bool(association_sources),
            multiple_sources_found=len(association_sources) > 1,
            business_listing_found=bool(listing_sources),
            errors=errors,
        )
        logger.info(
            "phone.verified company=%s confidence=%d verified=%s",
            company,
            confidence,
            result.verified,
        )
        return result

    def verify_many(self, pairs: Sequence[tuple[str, str]]) -> list[PhoneVerification]:
        """Verify pairs sequentially with a fixed delay between them."""
        results: list[PhoneVerification] = []
        for index, (phone, company) in enumerate(pairs):
            results.append(self.verify(phone, company))
            if index < len(pairs) - 1 and self._batch_delay:
                self._sleep(self._batch_delay)
        verified = sum(1 for result in results if result.verified)
        logger.info("phone.batch_complete verified=%d total=%d", verified, len(results))
        return results

    def _association_sources(self, phone: str, company: str, errors: list[str]) -> list[str]:
        digits = bare_phone(phone)
        sources: list[str] = []
        for template in ASSOCIATION_QUERY_TEMPLATES:
            query = template.format(phone=phone, bare=digits, company=company)
            found_this_query = 0
            for result in self._safe_search(query, ASSOCIATION_RESULT_COUNT, errors):
                if not count_mentions(result.text, company):
                    continue
                if phone not in result.text and digits not in _digits(result.text):
                    continue
                if result.url not in sources:
                    sources.append(result.url)
                found_this_query += 1
                if found_this_query >= SOURCES_PER_QUERY:
                    break
            if len(sources) >= SUFFICIENT_SOURCES:
                break
        return sources[:MAX_SOURCES]

    def _listing_sources(self, phone: str, company: str, errors: list[str]) -> list[str]:
        sources: list[str] = []
        for template in LISTING_QUERY_TEMPLATES:
            query = template.format(phone=phone, company=company)
            for result in self._safe_search(query, LISTING_RESULT_COUNT, errors):
                if url_matches_any(result.url, BUSINESS_LISTING_HOSTS) and result.url not in sources:
                    sources.append(result.url)
        return sources

    def _safe_search(self, query: str, count: int, errors: list[str]) -> list[SearchResult]:
        try:
            return self._search.search(query, count=count)
        except LeadVerificationError as exc:
            logger.warning("phone.search_error code=%s query=%r", exc.code, query)
            errors.append(f"search:{exc.code}:{exc}")
            return []


def _digits(text: str) -> str:
    return "".join(ch for ch in text if ch.isdigit())


def _dedupe(urls: list[str]) -> list[str]:
    return list(dict.fromkeys(url for url in urls if url))


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Verify that a phone number belongs to a company.")
    parser.add_argument("--phone", required=True, help="Phone number to verify.")
    parser.add_argument("--company", required=True, help="Company name expected to own the number.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        verifier = PhoneVerifier(get_search_gatherer())
    except LeadVerificationError as exc:
        logger.error("Phone verification unavailable: %s (code=%s)", exc, exc.code)
        return 1
    result = verifier.verify(args.phone, args.company)
    print(json.dumps(result.as_dict(), ensure_ascii=False, indent=2))
    return 0 if result.verified else 2


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
