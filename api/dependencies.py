"""
Shared FastAPI dependencies
"""

from typing import Optional

from ingestion.factory import run_harvest
from ingestion.scheduler import HarvestScheduler
from schemas.api import RunSummary

scheduler = HarvestScheduler()


class RunTracker:
    """Remembers the last run triggered through the API"""

    def __init__(self):
        self.last: Optional[RunSummary] = None

    def record(self, summary: RunSummary):
        self.last = summary

    def latest(self, scheduled: Optional[RunSummary] = None) -> Optional[RunSummary]:
        candidates = [s for s in (self.last, scheduled) if s is not None]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.finished_at or s.started_at)


run_tracker = RunTracker()


def get_scheduler() -> HarvestScheduler:
    return scheduler


def get_run_tracker() -> RunTracker:
    return run_tracker


def get_harvest_runner():
    """Coroutine function used to execute a harvest; overridden in tests"""
    return run_harvest
