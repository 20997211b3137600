from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.routes.leads import get_orchestrator
from app.config import settings
from app.services.leads.errors import SinkUnavailableError
from pipelines.verification.batch import BatchOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check(orchestrator: BatchOrchestrator = Depends(get_orchestrator)):
    """Readiness check endpoint that includes lead sink connectivity."""
    try:
        stored = orchestrator.sink.next_unprocessed_offset()
    except SinkUnavailableError as exc:
        logger.error(f"Lead sink is not available: {exc}")
        raise HTTPException(status_code=503, detail="Lead sink is not available") from exc

    return {
        "status": "ready",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "connected" if settings.database_url else "not configured",
        "stored_leads": stored,
    }
