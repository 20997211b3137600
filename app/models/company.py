"""Domain models for candidate companies and verification outcomes."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

MAX_RESULT_SOURCES = 5


class CompanyIdentity(BaseModel):
    """Company name and location of a candidate, plus the caller's opaque payload."""

    name: str = Field(..., min_length=1)
    location: str = ""
    payload: Mapping[str, Any] | None = None

    model_config = ConfigDict(frozen=True)


class SearchResult(BaseModel):
    """Single organic search hit returned by a search gatherer."""

    url: str
    title: str = ""
    snippet: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def text(self) -> str:
        return f"{self.title} {self.snippet}"


class ContactExtraction(BaseModel):
    """Structured contact fields extracted from a single page."""

    phone: str | None = None
    email: str | None = None
    website: str | None = None
    address: str | None = None
    confidence: int = Field(default=0, ge=0, le=100)

    model_config = ConfigDict(frozen=True)

    @property
    def has_contact(self) -> bool:
        return bool(self.phone or self.email)


class RejectionReason(str, Enum):
    """Terminal reasons a candidate is not accepted."""

    NO_HIRING_SIGNAL = "no_hiring_signal"
    CONTACT_EXTRACTION_FAILED = "contact_extraction_failed"
    PHONE_CROSS_CHECK_FAILED = "phone_cross_check_failed"
    CONFIDENCE_BELOW_THRESHOLD = "confidence_below_threshold"
    FATAL_IO_ERROR = "fatal_io_error"
    TIMEOUT = "timeout"


class EvidenceBundle(BaseModel):
    """Signals accumulated for one candidate during one pipeline run."""

    phone_candidate: str | None = None
    email_candidate: str | None = None
    website_candidate: str | None = None
    address_candidate: str | None = None
    source_urls: list[str] = Field(default_factory=list)
    corroborating_sources: list[str] = Field(default_factory=list)
    job_posting_confirmed: bool = False
    official_site_confirmed: bool = False
    phone_format_valid: bool = False
    phone_company_associated: bool = False
    business_listing_found: bool = False
    errors: list[str] = Field(default_factory=list)

    def add_source(self, url: str | None) -> None:
        if url and url not in self.source_urls:
            self.source_urls.append(url)

    def record_error(self, step: str, exc: BaseException) -> None:
        code = getattr(exc, "code", type(exc).__name__)
        self.errors.append(f"{step}:{code}:{exc}")

    def reset_phone_signals(self) -> None:
        self.phone_format_valid = False
        self.phone_company_associated = False
        self.business_listing_found = False
        self.corroborating_sources = []


class VerificationResult(BaseModel):
    """Terminal, immutable outcome of verifying one candidate."""

    identity: CompanyIdentity
    evidence: EvidenceBundle
    confidence: int = Field(..., ge=0, le=100)
    phone_confidence: int | None = Field(default=None, ge=0, le=100)
    accepted: bool
    rejection_reason: RejectionReason | None = None
    source_urls: list[str] = Field(default_factory=list, max_length=MAX_RESULT_SOURCES)
    errors: list[str] = Field(default_factory=list)
    elapsed_seconds: float = 0.0

    model_config = ConfigDict(frozen=True)

    @property
    def final_confidence(self) -> int:
        return max(self.confidence, self.phone_confidence or 0)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.identity.name,
            "location": self.identity.location,
            "accepted": self.accepted,
            "rejection_reason": self.rejection_reason.value if self.rejection_reason else None,
            "confidence": self.confidence,
            "phone_confidence": self.phone_confidence,
            "final_confidence": self.final_confidence,
            "phone": self.evidence.phone_candidate,
            "email": self.evidence.email_candidate,
            "website": self.evidence.website_candidate,
            "address": self.evidence.address_candidate,
            "source_urls": list(self.source_urls),
            "errors": list(self.errors),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


def bounded_sources(urls: list[str], limit: int = MAX_RESULT_SOURCES) -> list[str]:
    """Deduplicate URLs preserving first-seen order and cap the list."""
    seen: list[str] = []
    for url in urls:
        if url and url not in seen:
            seen.append(url)
        if len(seen) >= limit:
            break
    return seen
