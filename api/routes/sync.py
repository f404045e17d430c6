"""
HTTP-triggered TCGCSV catalog sync, one batch of groups per request
"""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import RunTracker, get_harvest_runner, get_run_tracker
from core.exceptions import ConfigurationError
from ingestion.factory import HarvestOptions
from models.base import PipelineName
from schemas.api import ErrorResponse, SyncResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["Sync"])

GROUPS_PER_BATCH = 50


@router.post(
    "/tcgcsv",
    response_model=SyncResponse,
    responses={503: {"model": ErrorResponse}},
)
async def sync_tcgcsv(
    category_id: int = Query(3, ge=1, description="TCGCSV category id"),
    group_id: Optional[int] = Query(None, ge=1, description="Sync a single group"),
    batch: int = Query(0, ge=0, description="Batch of 50 groups, newest first"),
    runner=Depends(get_harvest_runner),
    tracker: RunTracker = Depends(get_run_tracker),
):
    """
    Sync groups `[batch*50, batch*50+50)` of a category (or one group by
    id). Call again with `next_batch` while `has_more` is true.
    """
    options = HarvestOptions(
        pipeline=PipelineName.CATALOG,
        category_id=category_id,
        sets=GROUPS_PER_BATCH,
        skip_sets=batch * GROUPS_PER_BATCH,
        group_id=group_id,
    )
    logger.info(f"Sync requested: category {category_id}, batch {batch}, group {group_id}")

    try:
        summary, controller = await runner(options)
    except ConfigurationError as e:
        logger.error(f"Sync not started: {e.message}")
        raise HTTPException(status_code=503, detail=e.message)

    tracker.record(summary)
    has_more = bool(getattr(controller, "has_more", False)) and summary.succeeded

    return SyncResponse(
        success=summary.succeeded,
        category_id=category_id,
        batch=batch,
        groups_processed=list(getattr(controller, "groups_processed", [])),
        has_more=has_more,
        next_batch=batch + 1 if has_more else None,
        summary=summary,
    )
