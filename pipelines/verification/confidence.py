"""Fixed-weight confidence scoring for phone and company verification."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from app.models.company import EvidenceBundle
from app.services.leads.normalization import normalize_host

# Phone verification table. All signals firing sums to exactly 100.
PHONE_WEIGHTS: Mapping[str, int] = MappingProxyType(
    {
        "phone_format_valid": 20,
        "phone_company_associated": 40,
        "corroborating_source": 10,
        "business_listing_found": 10,
    }
)
MAX_CORROBORATING_SOURCES = 3

# End-to-end company verification table. Sums to 100.
COMPANY_WEIGHTS: Mapping[str, int] = MappingProxyType(
    {
        "company_exists": 40,
        "official_site_found": 20,
        "phone_verified": 25,
        "contact_extracted": 10,
        "multiple_sources": 5,
    }
)

# Pipeline acceptance (company table).
COMPANY_ACCEPT_THRESHOLD = 60
# Persistence gate in the batch orchestrator, also the phone "verified" cut-off.
HIGH_QUALITY_THRESHOLD = 70

MAX_SCORE = 100


@dataclass(frozen=True)
class PhoneSignals:
    phone_format_valid: bool = False
    phone_company_associated: bool = False
    corroborating_sources: int = 0
    business_listing_found: bool = False


@dataclass(frozen=True)
class CompanySignals:
    company_exists: bool = False
    official_site_found: bool = False
    phone_verified: bool = False
    contact_extracted: bool = False
    multiple_sources: bool = False


def phone_breakdown(signals: PhoneSignals) -> dict[str, int]:
    sources = min(max(signals.corroborating_sources, 0), MAX_CORROBORATING_SOURCES)
    return {
        "phone_format_valid": PHONE_WEIGHTS["phone_format_valid"] if signals.phone_format_valid else 0,
        "phone_company_associated": (
            PHONE_WEIGHTS["phone_company_associated"] if signals.phone_company_associated else 0
        ),
        "corroborating_sources": PHONE_WEIGHTS["corroborating_source"] * sources,
        "business_listing_found": (
            PHONE_WEIGHTS["business_listing_found"] if signals.business_listing_found else 0
        ),
    }


def company_breakdown(signals: CompanySignals) -> dict[str, int]:
    return {name: weight if getattr(signals, name) else 0 for name, weight in COMPANY_WEIGHTS.items()}


def score_phone(signals: PhoneSignals) -> int:
    return min(MAX_SCORE, sum(phone_breakdown(signals).values()))


def score_company(signals: CompanySignals) -> int:
    return min(MAX_SCORE, sum(company_breakdown(signals).values()))


def phone_signals(evidence: EvidenceBundle) -> PhoneSignals:
    return PhoneSignals(
        phone_format_valid=evidence.phone_format_valid,
        phone_company_associated=evidence.phone_company_associated,
        corroborating_sources=len(set(evidence.corroborating_sources)),
        business_listing_found=evidence.business_listing_found,
    )


def company_signals(evidence: EvidenceBundle) -> CompanySignals:
    hosts = {normalize_host(url) for url in evidence.source_urls if url}
    hosts.discard("")
    return CompanySignals(
        company_exists=evidence.job_posting_confirmed,
        official_site_found=evidence.official_site_confirmed,
        phone_verified=bool(evidence.phone_candidate) and evidence.phone_company_associated,
        contact_extracted=bool(evidence.phone_candidate or evidence.email_candidate),
        multiple_sources=len(hosts) >= 2,
    )
