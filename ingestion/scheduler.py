import asyncio
import logging
from typing import Dict, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.exceptions import ConfigurationError
from ingestion.factory import HarvestOptions, run_harvest
from models.base import PipelineName
from schemas.api import RunSummary

logger = logging.getLogger(__name__)


class HarvestScheduler:
    """Periodic catalog refresh for the configured categories"""

    def __init__(
        self,
        category_ids: Optional[Sequence[int]] = None,
        interval_minutes: Optional[int] = None,
        max_groups: int = 10,
        runner=run_harvest,
    ):
        self.scheduler = AsyncIOScheduler()
        self.category_ids = list(category_ids if category_ids is not None else settings.SCHEDULED_CATEGORY_IDS)
        self.interval_minutes = interval_minutes or settings.SYNC_INTERVAL_MINUTES
        self.max_groups = max_groups
        self.runner = runner
        self.last_summaries: Dict[int, RunSummary] = {}

    @property
    def running(self) -> bool:
        return self.scheduler.running

    @property
    def last_summary(self) -> Optional[RunSummary]:
        """Most recently finished run across all categories"""
        if not self.last_summaries:
            return None
        return max(self.last_summaries.values(), key=lambda s: s.finished_at or s.started_at)

    async def run_catalog_job(self):
        """Job to refresh the catalog for every scheduled category"""
        logger.info(f"Scheduler: starting catalog refresh for categories {self.category_ids}")
        for category_id in self.category_ids:
            options = HarvestOptions(
                pipeline=PipelineName.CATALOG,
                category_id=category_id,
                sets=self.max_groups,
            )
            try:
                summary, _ = await self.runner(options)
            except ConfigurationError as e:
                logger.error(f"Scheduler: category {category_id} not started - {e.message}")
                continue
            except Exception as e:
                logger.error(f"Scheduler: category {category_id} failed - {e}")
                continue
            self.last_summaries[category_id] = summary

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_catalog_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="catalog_refresh",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info(f"Harvest scheduler started (every {self.interval_minutes} min)")

    async def stop(self):
        """Shut the scheduler down and wait for it to report stopped"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler queues the shutdown on the event loop
            while self.scheduler.running:
                await asyncio.sleep(0)
        logger.info("Harvest scheduler stopped")
