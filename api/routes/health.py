"""
Health check endpoint with scheduler and last-run status
"""

from fastapi import APIRouter, Depends
from api.dependencies import RunTracker, get_run_tracker, get_scheduler
from core.config import settings
from ingestion.scheduler import HarvestScheduler
from models.base import HarvestStatus
from schemas.api import HealthResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    scheduler: HarvestScheduler = Depends(get_scheduler),
    tracker: RunTracker = Depends(get_run_tracker),
):
    """
    Health check endpoint.

    Returns:
    - Store backend and environment
    - Whether the periodic catalog refresh is running
    - Summary of the most recent harvest run (degraded if it failed)
    """
    last_run = tracker.latest(scheduler.last_summary)
    status = "healthy"
    if last_run is not None and last_run.status == HarvestStatus.FAILED.value:
        status = "degraded"

    return HealthResponse(
        status=status,
        environment=settings.ENVIRONMENT,
        store_backend=settings.STORE_BACKEND,
        scheduler_running=scheduler.running,
        last_run=last_run,
    )
