# ============================================================================
# File: ingestion/runner.py
# Description: Run controller shared by every harvest pipeline
# ============================================================================
"""
Run Controller - drives one harvest run through its state machine.

    Idle -> Running -> {Completed, BudgetExhausted, Failed}

This module provides:
- Setup failures (credentials, configuration) ending the run as Failed
  before any harvesting starts
- Budget checks at every iteration boundary, stopping cleanly with the
  exact ``--skip-sets=N`` needed to resume
- Fixed inter-call delays
- A final summary (records processed vs written) persisted as a
  ``harvest_runs`` row
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence
import asyncio
import logging

from core.exceptions import BudgetExhausted, HarvestException, NonRetryableError
from ingestion.context import RunContext
from ingestion.loaders.base import KeyedStore
from ingestion.loaders.batcher import UpsertBatcher
from models.base import HarvestStatus, PipelineName
from schemas.api import RunSummary
from schemas.normalized import CanonicalRow, HarvestRunRow

logger = logging.getLogger(__name__)


def resume_hint(offset: Optional[int]) -> Optional[str]:
    if offset is None:
        return None
    return f"--skip-sets={offset}"


class RunController(ABC):
    """
    Base class for harvest pipelines.

    Subclasses implement ``harvest()`` and call ``check_budget(offset)``
    before each unit of work, where ``offset`` is the index of that unit
    in the run's fixed processing order. A spent budget raises
    BudgetExhausted out of ``harvest()``; the controller turns that into
    the BudgetExhausted state with ``offset`` as the resume point.

    Attributes:
        context: The run's RunContext
        store: Keyed store the run writes to
        batcher: Upsert batcher over ``store``
        status: Current HarvestStatus
    """

    pipeline: PipelineName

    def __init__(
        self,
        context: RunContext,
        store: KeyedStore,
        batcher: Optional[UpsertBatcher] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.context = context
        self.store = store
        self.batcher = batcher or UpsertBatcher(store)
        self.sleep = sleep or asyncio.sleep

        self.status = HarvestStatus.IDLE
        self.records_processed = 0
        self.records_written = 0
        self.resume_offset: Optional[int] = None
        self.error_message: Optional[str] = None
        self.finished_at: Optional[datetime] = None
        self.counters: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def setup(self):
        """Pre-harvest checks (authentication, ...). Raise NonRetryableError to fail the run."""
        return None

    @abstractmethod
    async def harvest(self):
        """Walk the source, writing as it goes"""

    def describe(self) -> Dict[str, Any]:
        """Run parameters for the start-of-run log line"""
        return {}

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def check_budget(self, offset: int):
        """Iteration boundary: stop here if the budget is spent"""
        if self.context.has_reached_api_limit():
            self.stop_for_budget(offset)

    def stop_for_budget(self, offset: int):
        self.resume_offset = offset
        raise BudgetExhausted(
            self.context.calls_made,
            self.context.call_budget,
            context={"resume_offset": offset}
        )

    async def pause(self, seconds: float):
        if seconds > 0:
            await self.sleep(seconds)

    async def write(self, rows: Sequence[CanonicalRow], unit: str = "", primary: bool = True) -> int:
        """
        Upsert rows through the batcher. Primary rows (products, listings)
        count toward records_written; auxiliary rows (groups, price
        history) are tallied in ``counters`` by table.
        """
        if not rows:
            return 0
        written = await self.batcher.upsert(rows, unit=unit)
        if primary:
            self.records_written += written
        else:
            table = rows[0].TABLE
            self.counters[table] = self.counters.get(table, 0) + written
        return written

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def run(self) -> RunSummary:
        """
        Execute the run.

        Returns:
            RunSummary with the final status. Completed and BudgetExhausted
            are both clean stops; Failed means setup (or a mid-run
            credential refresh) failed.

        Raises:
            Exception: Anything unexpected, after the run is recorded as Failed
        """
        self.status = HarvestStatus.RUNNING
        params = ", ".join(f"{k}={v}" for k, v in self.describe().items())
        logger.info(
            f"Starting {self.pipeline.value} harvest {self.context.run_id} "
            f"(budget {self.context.call_budget} calls, skip {self.context.sets_skipped}"
            f"{', ' + params if params else ''})"
        )
        await self._persist()

        try:
            await self.setup()
        except NonRetryableError as e:
            return await self._fail(e)

        try:
            await self.harvest()
            self.status = HarvestStatus.COMPLETED
        except BudgetExhausted as e:
            self.status = HarvestStatus.BUDGET_EXHAUSTED
            if self.resume_offset is None:
                self.resume_offset = self.context.current_cursor or self.context.sets_skipped
            logger.warning(
                f"{e.message}. Stopping cleanly. "
                f"Resume with {resume_hint(self.resume_offset)}"
            )
        except NonRetryableError as e:
            return await self._fail(e)
        except Exception as e:
            logger.exception(f"Unexpected error in {self.pipeline.value} harvest")
            await self._fail(e)
            raise

        return await self._finish()

    async def _fail(self, error: Exception) -> RunSummary:
        self.status = HarvestStatus.FAILED
        self.error_message = error.message if isinstance(error, HarvestException) else str(error)
        logger.error(f"{self.pipeline.value} harvest failed: {error}")
        return await self._finish()

    async def _finish(self) -> RunSummary:
        self.finished_at = datetime.now(timezone.utc)
        summary = self.summary()
        await self._persist()

        extras = ", ".join(f"{table}={count}" for table, count in sorted(self.counters.items()))
        logger.info(
            f"{self.pipeline.value} harvest {summary.status}: "
            f"processed {summary.records_processed}, written {summary.records_written}, "
            f"API calls {self.context.budget_label()}"
            f"{' (' + extras + ')' if extras else ''}"
        )
        if summary.resume_hint:
            logger.info(f"To resume: {summary.resume_hint}")
        return summary

    def summary(self) -> RunSummary:
        return RunSummary(
            run_id=self.context.run_id,
            pipeline=self.pipeline,
            status=self.status,
            calls_made=self.context.calls_made,
            call_budget=self.context.call_budget,
            records_processed=self.records_processed,
            records_written=self.records_written,
            resume_offset=self.resume_offset,
            resume_hint=resume_hint(self.resume_offset),
            started_at=self.context.started_at,
            finished_at=self.finished_at,
            error_message=self.error_message,
        )

    async def _persist(self):
        """Upsert the harvest_runs row; failures are logged by the batcher"""
        row = HarvestRunRow(
            run_id=self.context.run_id,
            pipeline=self.pipeline,
            status=self.status,
            calls_made=self.context.calls_made,
            call_budget=self.context.call_budget,
            records_processed=self.records_processed,
            records_written=self.records_written,
            resume_offset=self.resume_offset,
            started_at=self.context.started_at,
            finished_at=self.finished_at,
            error_message=self.error_message,
        )
        await self.batcher.upsert([row], unit=f"run {self.context.run_id}")
