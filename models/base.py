from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
import enum

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================

class PipelineName(str, enum.Enum):
    """Harvest pipelines"""
    CATALOG = "catalog"
    GRADED = "graded"
    SEARCH = "search"


class HarvestStatus(str, enum.Enum):
    """Run controller states"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FAILED = "failed"
