"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime, timezone
from models.base import HarvestStatus, PipelineName


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Run Summary
# ============================================================================

class RunSummary(BaseModel):
    """Final report of one harvest run"""
    run_id: str
    pipeline: PipelineName
    status: HarvestStatus
    calls_made: int = 0
    call_budget: int = 0
    records_processed: int = 0
    records_written: int = 0
    resume_offset: Optional[int] = None
    resume_hint: Optional[str] = Field(
        None, description="Exact flag to pass to a fresh run to resume where this one stopped"
    )
    started_at: datetime
    finished_at: Optional[datetime] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "run_id": "8d0f8a9e-52c4-4b8e-9a0e-3f7f5d3d9a41",
                "pipeline": "catalog",
                "status": "budget_exhausted",
                "calls_made": 500,
                "call_budget": 500,
                "records_processed": 2140,
                "records_written": 2102,
                "resume_offset": 12,
                "resume_hint": "--skip-sets=12",
                "started_at": "2026-01-15T10:00:00Z",
                "finished_at": "2026-01-15T10:04:12Z",
            }
        },
    )

    @property
    def succeeded(self) -> bool:
        return self.status in (HarvestStatus.COMPLETED.value, HarvestStatus.BUDGET_EXHAUSTED.value)


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall service status: healthy, degraded")
    timestamp: datetime = Field(default_factory=_utcnow)
    environment: str
    store_backend: str
    scheduler_running: bool = False
    last_run: Optional[RunSummary] = None


# ============================================================================
# Sync Schemas
# ============================================================================

class SyncResponse(BaseModel):
    """Result of one HTTP-triggered catalog sync batch"""
    success: bool
    category_id: int
    batch: int
    groups_processed: List[str] = Field(default_factory=list)
    has_more: bool = False
    next_batch: Optional[int] = None
    summary: RunSummary

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "category_id": 3,
                "batch": 0,
                "groups_processed": ["Surging Sparks", "Stellar Crown"],
                "has_more": True,
                "next_batch": 1,
            }
        }
    )


class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
