"""API endpoints for duplicate checks, stored leads, and single-candidate verification."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.models.company import CompanyIdentity
from app.models.lead import LeadRecord
from app.services.leads.errors import LeadVerificationError, SinkUnavailableError
from pipelines.verification.batch import BatchOrchestrator, build_orchestrator
from pipelines.verification.duplicate_gate import DuplicateGate

router = APIRouter()
logger = logging.getLogger(__name__)

_ORCHESTRATOR_INSTANCE: BatchOrchestrator | None = None


class CandidatePayload(BaseModel):
    """Company name and location supplied by API callers."""

    name: str = Field(..., min_length=1)
    location: str = ""

    def to_identity(self) -> CompanyIdentity:
        return CompanyIdentity(name=self.name, location=self.location)


class DuplicateCheckRequest(BaseModel):
    companies: list[CandidatePayload] = Field(..., min_length=1)


def get_orchestrator() -> BatchOrchestrator:
    """Singleton accessor used by API routes."""
    global _ORCHESTRATOR_INSTANCE  # noqa: PLW0603
    if _ORCHESTRATOR_INSTANCE is None:
        try:
            _ORCHESTRATOR_INSTANCE = build_orchestrator()
        except LeadVerificationError as exc:
            logger.error("leads.api.unavailable", extra={"code": exc.code})
            raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc
    return _ORCHESTRATOR_INSTANCE


def get_duplicate_gate(orchestrator: BatchOrchestrator = Depends(get_orchestrator)) -> DuplicateGate:
    return orchestrator.gate


def shutdown_services() -> None:
    """Drop the cached orchestrator and release its sink connections."""
    global _ORCHESTRATOR_INSTANCE  # noqa: PLW0603
    if _ORCHESTRATOR_INSTANCE is None:
        return
    dispose = getattr(_ORCHESTRATOR_INSTANCE.sink, "dispose", None)
    if callable(dispose):
        dispose()
    _ORCHESTRATOR_INSTANCE = None


@router.get("/duplicates/stats")
async def duplicate_stats(gate: DuplicateGate = Depends(get_duplicate_gate)) -> dict[str, Any]:
    """Report the duplicate cache size, age, and validity."""
    return gate.stats().as_dict()


@router.post("/duplicates/invalidate")
async def invalidate_duplicates(gate: DuplicateGate = Depends(get_duplicate_gate)) -> dict[str, Any]:
    """Force the next duplicate check to rebuild the cache from the sink."""
    gate.invalidate()
    return gate.stats().as_dict()


@router.post("/duplicates/check")
async def check_duplicates(
    payload: DuplicateCheckRequest,
    gate: DuplicateGate = Depends(get_duplicate_gate),
) -> dict[str, Any]:
    """Check each company against stored leads and against earlier entries of the request."""
    identities = [company.to_identity() for company in payload.companies]
    checks = gate.check_duplicates_with_details(identities)
    internal = gate.find_internal_duplicates(identities)
    errors = sorted({check.error.code for check in checks if check.error is not None})
    return {
        "results": [
            {
                "name": check.identity.name,
                "location": check.identity.location,
                "key": check.key,
                "is_duplicate": check.is_duplicate,
            }
            for check in checks
        ],
        "internal_duplicates": [
            {"name": item.item.name, "key": item.key, "first_index": item.first_index} for item in internal
        ],
        "errors": errors,
    }


@router.get("/leads", response_model=list[LeadRecord])
async def list_leads(
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of leads to return."),
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> list[LeadRecord]:
    """List stored leads, oldest first."""
    try:
        return orchestrator.sink.list_all_leads()[:limit]
    except SinkUnavailableError as exc:
        logger.error("leads.api_error", extra={"code": exc.code})
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc


@router.post("/leads/verify", status_code=status.HTTP_200_OK)
def verify_lead(
    payload: CandidatePayload,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Verify one candidate and persist it when it clears the quality threshold."""
    outcome = orchestrator.process_one(payload.to_identity())
    if outcome.duplicate:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Company already processed.")
    return outcome.as_dict()


@router.get("/status")
async def system_status(orchestrator: BatchOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    """Summarize the duplicate cache, stored lead count, and thresholds."""
    return orchestrator.system_status()


def _map_error_code(code: str) -> int:
    if code == "SINK_UNAVAILABLE":
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if code == "FATAL_CONFIGURATION":
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if code == "GATHERER_UNAVAILABLE":
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR
