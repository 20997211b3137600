"""Sequential batch verification: duplicate gate, pipeline, threshold, sink."""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from app.config import settings
from app.models.company import CompanyIdentity, VerificationResult
from app.models.lead import DEFAULT_SEARCH_CONDITION, LeadRecord, extract_region
from app.observability.metrics import metrics
from app.services.leads.errors import LeadVerificationError, SinkUnavailableError
from app.services.leads.repositories import LeadSink, build_lead_sink
from pipelines.search_client import get_search_gatherer
from pipelines.verification.confidence import COMPANY_ACCEPT_THRESHOLD, HIGH_QUALITY_THRESHOLD
from pipelines.verification.duplicate_gate import DuplicateGate
from pipelines.verification.gatherers import SleepFn
from pipelines.verification.phone import PhoneVerifier
from pipelines.verification.pipeline import VerificationPipeline, build_verification_pipeline

logger = logging.getLogger("pipelines.verification.batch")

NAME_KEYS = ("name", "company", "company_name", "企業名")
LOCATION_KEYS = ("location", "address", "住所")


@dataclass
class BatchCounters:
    processed: int = 0
    verified: int = 0
    saved: int = 0
    duplicates_skipped: int = 0
    errors: int = 0
    high_quality: int = 0
    confidence_total: int = 0

    @property
    def average_confidence(self) -> float:
        return round(self.confidence_total / self.verified, 1) if self.verified else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "verified": self.verified,
            "saved": self.saved,
            "duplicates_skipped": self.duplicates_skipped,
            "errors": self.errors,
            "high_quality": self.high_quality,
            "average_confidence": self.average_confidence,
        }


@dataclass(frozen=True)
class CandidateOutcome:
    identity: CompanyIdentity
    result: VerificationResult | None
    duplicate: bool = False
    saved: bool = False
    persist_error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.identity.name,
            "location": self.identity.location,
            "duplicate": self.duplicate,
            "saved": self.saved,
            "persist_error": self.persist_error,
        }
        if self.result is not None:
            payload["result"] = self.result.as_dict()
        return payload


@dataclass(frozen=True)
class BatchReport:
    counters: BatchCounters
    outcomes: list[CandidateOutcome] = field(default_factory=list)
    duplicates: list[CompanyIdentity] = field(default_factory=list)
    refresh_error: str | None = None
    elapsed_seconds: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "summary": {**self.counters.as_dict(), "elapsed_seconds": round(self.elapsed_seconds, 3)},
            "refresh_error": self.refresh_error,
            "duplicates": [{"name": item.name, "location": item.location} for item in self.duplicates],
            "outcomes": [outcome.as_dict() for outcome in self.outcomes],
        }


class BatchOrchestrator:
    """Processes candidates one at a time and persists high-quality leads at most once."""

    def __init__(
        self,
        pipeline: VerificationPipeline,
        gate: DuplicateGate,
        sink: LeadSink,
        *,
        phone_verifier: PhoneVerifier | None = None,
        high_quality_threshold: int = HIGH_QUALITY_THRESHOLD,
        inter_candidate_delay: float = 3.0,
        dry_run: bool = False,
        sleep: SleepFn | None = None,
        clock: Any = None,
    ) -> None:
        self._pipeline = pipeline
        self._gate = gate
        self._sink = sink
        self._phone_verifier = phone_verifier
        self._high_quality_threshold = high_quality_threshold
        self._inter_candidate_delay = max(0.0, inter_candidate_delay)
        self._dry_run = dry_run
        self._sleep = sleep or time.sleep
        self._clock = clock or time.monotonic

    @property
    def gate(self) -> DuplicateGate:
        return self._gate

    @property
    def sink(self) -> LeadSink:
        return self._sink

    def run(self, candidates: Sequence[CompanyIdentity]) -> BatchReport:
        started = self._clock()
        counters = BatchCounters()
        partition = self._gate.partition(candidates)
        duplicates = list(partition.duplicates)
        refresh_error = None
        if partition.error is not None:
            counters.errors += 1
            refresh_error = f"{partition.error.code}: {partition.error}"
            logger.error("batch.duplicate_refresh_failed code=%s; continuing fail-open", partition.error.code)

        outcomes: list[CandidateOutcome] = []
        for index, identity in enumerate(partition.new):
            if self._gate.claim(identity).is_duplicate:
                logger.info("batch.claimed_elsewhere name=%s", identity.name)
                duplicates.append(identity)
                continue
            outcome = self._verify_claimed(identity)
            outcomes.append(outcome)
            self._count(counters, outcome)
            if index < len(partition.new) - 1 and self._inter_candidate_delay:
                self._sleep(self._inter_candidate_delay)
        counters.duplicates_skipped = len(duplicates)

        elapsed = max(0.0, self._clock() - started)
        report = BatchReport(
            counters=counters,
            outcomes=outcomes,
            duplicates=duplicates,
            refresh_error=refresh_error,
            elapsed_seconds=elapsed,
        )
        metrics.timing("batch.elapsed", elapsed * 1000.0)
        logger.info("batch.complete %s", json.dumps(counters.as_dict(), ensure_ascii=False))
        return report

    def process_one(self, identity: CompanyIdentity) -> CandidateOutcome:
        """Verify a single candidate unless the gate already knows it."""
        check = self._gate.claim(identity)
        if check.error is not None:
            logger.warning("batch.duplicate_check_failed code=%s; treating as new", check.error.code)
        if check.is_duplicate:
            metrics.increment("batch.duplicate_skipped")
            return CandidateOutcome(identity=identity, result=None, duplicate=True)
        return self._verify_claimed(identity)

    def process_next(self, candidates: Sequence[CompanyIdentity]) -> CandidateOutcome | None:
        """Process the candidate at the sink's next unprocessed offset, if any remain."""
        offset = self._sink.next_unprocessed_offset()
        if offset >= len(candidates):
            logger.info("batch.process_next.exhausted offset=%d total=%d", offset, len(candidates))
            return None
        return self.process_one(candidates[offset])

    def system_status(self) -> dict[str, Any]:
        try:
            stored = self._sink.next_unprocessed_offset()
            sink_error = None
        except SinkUnavailableError as exc:
            stored = None
            sink_error = exc.code
        return {
            "duplicate_cache": self._gate.stats().as_dict(),
            "stored_leads": stored,
            "sink_error": sink_error,
            "thresholds": {
                "company_accept": settings.company_accept_threshold or COMPANY_ACCEPT_THRESHOLD,
                "high_quality": self._high_quality_threshold,
            },
            "dry_run": self._dry_run,
        }

    def _verify_claimed(self, identity: CompanyIdentity) -> CandidateOutcome:
        """Run a claimed candidate; the claim is released unless the lead was saved."""
        saved = False
        try:
            outcome = self._verify_and_persist(identity)
            saved = outcome.saved
            return outcome
        finally:
            if not saved:
                self._gate.release(identity)

    def _verify_and_persist(self, identity: CompanyIdentity) -> CandidateOutcome:
        result = self._pipeline.verify(identity)
        if result.accepted and result.evidence.phone_candidate and self._phone_verifier is not None:
            phone_check = self._phone_verifier.verify(result.evidence.phone_candidate, identity.name)
            result = result.model_copy(update={"phone_confidence": phone_check.confidence})

        if not result.accepted or result.final_confidence < self._high_quality_threshold:
            return CandidateOutcome(identity=identity, result=result)
        if self._dry_run:
            logger.info("batch.dry_run.skip_persist name=%s", identity.name)
            return CandidateOutcome(identity=identity, result=result)

        record = build_lead_record(result)
        try:
            self._sink.append_lead(record)
        except LeadVerificationError as exc:
            logger.error("batch.persist_failed name=%s code=%s", identity.name, exc.code)
            return CandidateOutcome(identity=identity, result=result, persist_error=f"{exc.code}: {exc}")
        self._gate.admit(identity)
        return CandidateOutcome(identity=identity, result=result, saved=True)

    def _count(self, counters: BatchCounters, outcome: CandidateOutcome) -> None:
        counters.processed += 1
        result = outcome.result
        if result is None:
            return
        if result.accepted:
            counters.verified += 1
            counters.confidence_total += result.final_confidence
            if result.final_confidence >= self._high_quality_threshold:
                counters.high_quality += 1
        if outcome.saved:
            counters.saved += 1
        if outcome.persist_error or result.errors:
            counters.errors += 1
        metrics.increment("batch.processed", tags={"accepted": result.accepted, "saved": outcome.saved})


def build_lead_record(result: VerificationResult) -> LeadRecord:
    evidence = result.evidence
    payload = result.identity.payload or {}
    address = evidence.address_candidate or result.identity.location
    return LeadRecord(
        company_name=result.identity.name,
        location=result.identity.location,
        address=address,
        phone=evidence.phone_candidate,
        website=evidence.website_candidate,
        email=evidence.email_candidate,
        confidence=result.final_confidence,
        search_condition=str(payload.get("search_condition") or DEFAULT_SEARCH_CONDITION),
        region=extract_region(address) or extract_region(result.identity.location),
        source_urls=list(result.source_urls),
    )


def load_candidates(path: Path) -> list[CompanyIdentity]:
    """Load identities from a JSON list of objects or a CSV file with a header row."""
    if path.suffix.lower() == ".csv":
        with path.open("r", encoding="utf-8-sig", newline="") as infile:
            rows: list[dict[str, Any]] = list(csv.DictReader(infile))
    else:
        with path.open("r", encoding="utf-8") as infile:
            rows = json.load(infile)
        if not isinstance(rows, list):
            raise ValueError("Input JSON must be a list.")
    return [_identity_from_row(row) for row in rows if _first(row, NAME_KEYS)]


def _identity_from_row(row: dict[str, Any]) -> CompanyIdentity:
    return CompanyIdentity(
        name=_first(row, NAME_KEYS),
        location=_first(row, LOCATION_KEYS),
        payload=dict(row),
    )


def _first(row: dict[str, Any], keys: Sequence[str]) -> str:
    for key in keys:
        value = row.get(key)
        if value:
            return str(value).strip()
    return ""


def persist_report(report: BatchReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as outfile:
        json.dump(report.as_dict(), outfile, ensure_ascii=False, indent=2)
        outfile.write("\n")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Verify candidate companies and persist qualifying leads.")
    parser.add_argument("--input", type=Path, required=True, help="Candidate JSON or CSV path.")
    parser.add_argument("--output", type=Path, default=Path("leads/verification_report.json"), help="Report path.")
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of candidates to consider.")
    parser.add_argument("--start-index", type=int, default=0, help="Skip candidates before this index.")
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Start at the sink's next unprocessed offset instead of --start-index.",
    )
    parser.add_argument("--dry-run", action="store_true", help="Verify without writing to the sink.")
    parser.add_argument(
        "--deep-phone-check",
        action="store_true",
        help="Run the full phone verification service on accepted phones.",
    )
    return parser.parse_args(argv)


def build_orchestrator(
    *,
    sink: LeadSink | None = None,
    pipeline: VerificationPipeline | None = None,
    dry_run: bool = False,
    deep_phone_check: bool = False,
) -> BatchOrchestrator:
    sink = sink or build_lead_sink()
    phone_verifier = None
    if deep_phone_check:
        phone_verifier = PhoneVerifier(
            get_search_gatherer(),
            verified_threshold=settings.high_quality_threshold,
            batch_delay=settings.phone_batch_delay_seconds,
        )
    return BatchOrchestrator(
        pipeline or build_verification_pipeline(),
        DuplicateGate(sink, ttl_seconds=settings.duplicate_cache_ttl_seconds),
        sink,
        phone_verifier=phone_verifier,
        high_quality_threshold=settings.high_quality_threshold,
        inter_candidate_delay=settings.inter_candidate_delay_seconds,
        dry_run=dry_run,
    )


def run_pipeline(
    *,
    input_path: Path,
    output_path: Path,
    limit: int | None = None,
    start_index: int = 0,
    resume: bool = False,
    dry_run: bool = False,
    deep_phone_check: bool = False,
    orchestrator: BatchOrchestrator | None = None,
) -> BatchReport:
    """Run batch verification over a candidate file and write the JSON report."""
    candidates = load_candidates(input_path)
    logger.info("Loaded %s candidates from %s.", len(candidates), input_path)
    orchestrator = orchestrator or build_orchestrator(dry_run=dry_run, deep_phone_check=deep_phone_check)
    start = orchestrator.sink.next_unprocessed_offset() if resume else max(0, start_index)
    selected = candidates[start:]
    if limit is not None:
        selected = selected[: max(0, limit)]
    report = orchestrator.run(selected)
    persist_report(report, output_path)
    logger.info("Persisted verification report to %s.", output_path)
    return report


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        run_pipeline(
            input_path=args.input,
            output_path=args.output,
            limit=args.limit,
            start_index=args.start_index,
            resume=args.resume,
            dry_run=args.dry_run,
            deep_phone_check=args.deep_phone_check,
        )
    except LeadVerificationError as exc:
        logger.error("Batch verification failed: %s (code=%s)", exc, exc.code)
        return 1
    except (OSError, ValueError) as exc:
        logger.error("Unable to read candidates: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
