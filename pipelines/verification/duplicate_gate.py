"""Process-scoped duplicate gate backed by the lead sink."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Protocol

from app.models.company import CompanyIdentity
from app.models.lead import LeadRecord
from app.observability.metrics import metrics
from app.services.leads.errors import SinkUnavailableError
from pipelines.verification.fingerprint import fingerprint, identity_key

logger = logging.getLogger("pipelines.verification.duplicate_gate")

DEFAULT_TTL_SECONDS = 30 * 60

Clock = Callable[[], float]


class LeadListing(Protocol):
    def list_all_leads(self) -> list[LeadRecord]:
        ...


@dataclass(frozen=True)
class DuplicateCheck:
    """Answer for one identity; `error` carries a fail-open refresh failure."""

    identity: CompanyIdentity
    key: str
    is_duplicate: bool
    error: SinkUnavailableError | None = None


@dataclass(frozen=True)
class InternalDuplicate:
    item: CompanyIdentity
    key: str
    first_index: int


@dataclass(frozen=True)
class BatchPartition:
    new: list[CompanyIdentity] = field(default_factory=list)
    duplicates: list[CompanyIdentity] = field(default_factory=list)
    error: SinkUnavailableError | None = None


@dataclass(frozen=True)
class DuplicateCacheStats:
    size: int
    last_refresh: datetime | None
    is_valid: bool
    expires_in_seconds: float
    pending: int
    in_flight: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "size": self.size,
            "last_refresh": self.last_refresh.isoformat() if self.last_refresh else None,
            "is_valid": self.is_valid,
            "expires_in_seconds": round(self.expires_in_seconds, 3),
            "pending": self.pending,
            "in_flight": self.in_flight,
        }


class DuplicateGate:
    """Answers "was this company already processed?" against an in-memory index.

    The index maps fingerprint keys to True (persisted in the sink) or False
    (seen in a batch, not yet persisted). It is rebuilt with replace-all
    semantics from `sink.list_all_leads()` whenever it is empty or older than
    the TTL. Keys passed to `admit` stay duplicates across refreshes until the
    sink listing contains them. Keys held by `claim` count as duplicates for
    every other caller until they are admitted or released.
    """

    def __init__(
        self,
        sink: LeadListing,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Clock | None = None,
    ) -> None:
        self._sink = sink
        self._ttl = max(0.0, float(ttl_seconds))
        self._clock = clock or time.monotonic
        self._index: dict[str, bool] = {}
        self._pending: set[str] = set()
        self._in_flight: set[str] = set()
        self._refreshed_at: float | None = None
        self._refreshed_wall: datetime | None = None
        self._lock = RLock()
        self.last_refresh_error: SinkUnavailableError | None = None

    def is_duplicate(self, identity: CompanyIdentity) -> bool:
        return self.check(identity).is_duplicate

    def check(self, identity: CompanyIdentity) -> DuplicateCheck:
        key = identity_key(identity)
        with self._lock:
            error = None if self._is_valid() else self._refresh_fail_open()
            duplicate = self._known(key)
        return DuplicateCheck(identity=identity, key=key, is_duplicate=duplicate, error=error)

    def claim(self, identity: CompanyIdentity) -> DuplicateCheck:
        """Atomically check an identity and reserve it for the caller.

        `is_duplicate=False` means the caller now holds the key and must either
        `admit` it after persisting or `release` it.
        """
        key = identity_key(identity)
        with self._lock:
            error = None if self._is_valid() else self._refresh_fail_open()
            duplicate = self._known(key)
            if not duplicate:
                self._in_flight.add(key)
        if duplicate:
            logger.debug("duplicate_gate.claim_refused key=%s", key)
        return DuplicateCheck(identity=identity, key=key, is_duplicate=duplicate, error=error)

    def release(self, identity: CompanyIdentity) -> None:
        with self._lock:
            self._in_flight.discard(identity_key(identity))

    def admit(self, identity: CompanyIdentity) -> None:
        key = identity_key(identity)
        with self._lock:
            self._index[key] = True
            self._pending.add(key)
            self._in_flight.discard(key)
        logger.debug("duplicate_gate.admitted key=%s", key)

    def partition(
        self,
        identities: Sequence[CompanyIdentity],
        *,
        force_refresh: bool = True,
    ) -> BatchPartition:
        """Split a batch into new and duplicate identities, keeping input order."""
        new: list[CompanyIdentity] = []
        duplicates: list[CompanyIdentity] = []
        with self._lock:
            error = None
            if force_refresh or not self._is_valid():
                error = self._refresh_fail_open()
            seen_this_batch: set[str] = set()
            for identity in identities:
                key = identity_key(identity)
                known = self._known(key)
                if known or key in seen_this_batch:
                    duplicates.append(identity)
                else:
                    new.append(identity)
                seen_this_batch.add(key)
                self._index.setdefault(key, False)
        logger.info(
            "duplicate_gate.partition total=%d new=%d duplicates=%d",
            len(identities),
            len(new),
            len(duplicates),
        )
        return BatchPartition(new=new, duplicates=duplicates, error=error)

    def filter_new(self, identities: Sequence[CompanyIdentity]) -> list[CompanyIdentity]:
        return self.partition(identities).new

    def check_duplicates_with_details(
        self, identities: Sequence[CompanyIdentity]
    ) -> list[DuplicateCheck]:
        return [self.check(identity) for identity in identities]

    def find_internal_duplicates(
        self, identities: Sequence[CompanyIdentity]
    ) -> list[InternalDuplicate]:
        first_seen: dict[str, int] = {}
        repeats: list[InternalDuplicate] = []
        for index, identity in enumerate(identities):
            key = identity_key(identity)
            if key in first_seen:
                repeats.append(InternalDuplicate(item=identity, key=key, first_index=first_seen[key]))
            else:
                first_seen[key] = index
        return repeats

    def refresh(self) -> int:
        """Replace the index with the sink's current lead set; returns the number of keys."""
        with self._lock:
            try:
                leads = self._sink.list_all_leads()
            except SinkUnavailableError:
                raise
            except Exception as exc:
                raise SinkUnavailableError(f"Lead listing failed: {exc}") from exc

            rebuilt: dict[str, bool] = {}
            for lead in leads:
                if not lead.name:
                    continue
                rebuilt[fingerprint(lead.name, lead.identity_location)] = True
            self._index = rebuilt
            self._pending.difference_update(rebuilt)
            for key in self._pending:
                self._index[key] = True
            self._refreshed_at = self._clock()
            self._refreshed_wall = datetime.now(timezone.utc)
            self.last_refresh_error = None
            size = len(self._index)
        metrics.gauge("duplicate_gate.size", size)
        logger.info("duplicate_gate.refreshed keys=%d", size)
        return size

    def invalidate(self) -> None:
        with self._lock:
            self._index.clear()
            self._refreshed_at = None
            self._refreshed_wall = None
        logger.info("duplicate_gate.invalidated")

    def stats(self) -> DuplicateCacheStats:
        with self._lock:
            valid = self._is_valid()
            expires_in = 0.0
            if self._refreshed_at is not None:
                expires_in = max(0.0, self._refreshed_at + self._ttl - self._clock())
            return DuplicateCacheStats(
                size=len(self._index),
                last_refresh=self._refreshed_wall,
                is_valid=valid,
                expires_in_seconds=expires_in,
                pending=len(self._pending),
                in_flight=len(self._in_flight),
            )

    def _known(self, key: str) -> bool:
        return self._index.get(key, False) or key in self._pending or key in self._in_flight

    def _is_valid(self) -> bool:
        if not self._index or self._refreshed_at is None:
            return False
        return (self._clock() - self._refreshed_at) < self._ttl

    def _refresh_fail_open(self) -> SinkUnavailableError | None:
        try:
            self.refresh()
        except SinkUnavailableError as exc:
            self.last_refresh_error = exc
            metrics.increment("duplicate_gate.refresh_failed")
            logger.warning("duplicate_gate.refresh_failed code=%s error=%s", exc.code, exc)
            return exc
        return None
