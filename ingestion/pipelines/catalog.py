"""
Catalog harvest: TCGCSV groups, products and prices into the catalog tables.

Cost per run: one call for the group list, then two per group (products
and prices). Groups are walked most-recently-published first, so a run
that stops on budget always stops at the same group for the same data.
"""

from datetime import date, datetime, timezone
from typing import List, Optional
import logging

from core.config import settings
from ingestion.context import RunContext
from ingestion.extractors.tcgcsv_extractor import TcgcsvWalker
from ingestion.loaders.base import KeyedStore
from ingestion.loaders.batcher import UpsertBatcher
from ingestion.runner import RunController
from ingestion.transformers.deduplicator import PriceVariantMerger
from ingestion.transformers.normalizer import CatalogContext, CatalogNormalizer
from models.base import PipelineName
from schemas.normalized import CatalogProductRow, PriceHistoryRow
from schemas.raw import TcgGroup, TcgPrice, TcgProduct

logger = logging.getLogger(__name__)


class CatalogHarvest(RunController):
    """
    Attributes:
        category_id: TCGCSV category (3 Pokemon, 85 Pokemon Japan, 68 One Piece, 2 Yu-Gi-Oh)
        max_groups: Groups to process after the skip offset
        group_id: Restrict the run to this single group
        sync_groups: Upsert every listed group before walking products
        recorded_on: Date stamped on price history rows (explicit "today")
        groups_processed: Names of groups fully written this run
        total_groups: Groups available after filtering, before skip/limit
    """

    pipeline = PipelineName.CATALOG

    def __init__(
        self,
        walker: TcgcsvWalker,
        store: KeyedStore,
        context: RunContext,
        category_id: int,
        max_groups: int = 10,
        group_id: Optional[int] = None,
        sync_groups: bool = True,
        recorded_on: Optional[date] = None,
        batcher: Optional[UpsertBatcher] = None,
        normalizer: Optional[CatalogNormalizer] = None,
        merger: Optional[PriceVariantMerger] = None,
        group_delay: float = settings.GROUP_DELAY,
        sleep=None,
    ):
        super().__init__(context, store, batcher=batcher, sleep=sleep)
        self.walker = walker
        self.category_id = category_id
        self.max_groups = max_groups
        self.group_id = group_id
        self.sync_groups = sync_groups
        self.recorded_on = recorded_on or datetime.now(timezone.utc).date()
        self.normalizer = normalizer or CatalogNormalizer()
        self.merger = merger or PriceVariantMerger.for_category(category_id)
        self.group_delay = group_delay

        self.groups_processed: List[str] = []
        self.total_groups = 0

    def describe(self):
        params = {"category": self.category_id, "groups": self.max_groups}
        if self.group_id is not None:
            params["group_id"] = self.group_id
        return params

    @property
    def has_more(self) -> bool:
        """Groups remain beyond this run's window"""
        if self.group_id is not None:
            return False
        return self.total_groups > self.context.sets_skipped + self.max_groups

    async def harvest(self):
        skip = self.context.sets_skipped
        refused_before = self.context.calls_refused

        groups = await self.walker.list_groups(self.category_id)
        if self.context.calls_refused > refused_before:
            self.stop_for_budget(skip)
        if not groups:
            logger.warning(f"No groups returned for category {self.category_id}")
            return

        ordered = TcgcsvWalker.sort_groups(groups)
        if self.group_id is not None:
            ordered = [g for g in ordered if g.group_id == self.group_id]
            if not ordered:
                logger.warning(f"Group {self.group_id} not found in category {self.category_id}")
                return
        self.total_groups = len(ordered)

        if self.sync_groups:
            await self.write(
                [self.normalizer.normalize_group(g) for g in ordered],
                unit=f"category {self.category_id} groups",
                primary=False,
            )

        window = ordered[skip:skip + self.max_groups]
        logger.info(
            f"Processing {len(window)} of {len(ordered)} groups "
            f"(skipping {skip}, newest first)"
        )

        for offset, group in enumerate(window, start=skip):
            self.check_budget(offset)
            self.context.current_cursor = offset
            await self.harvest_group(offset, group)

            if offset < skip + len(window) - 1:
                await self.pause(self.group_delay)

    async def harvest_group(self, offset: int, group: TcgGroup):
        refused_before = self.context.calls_refused

        products = await self.walker.list_products(self.category_id, group.group_id)
        prices = await self.walker.list_prices(self.category_id, group.group_id)

        # A refused call means this group is incomplete; write nothing and
        # resume from it next time
        if self.context.calls_refused > refused_before:
            self.stop_for_budget(offset)

        rows, history = self.normalize_group(group, products, prices)
        self.records_processed += len(products)

        unit = f"group {group.group_id} {group.name!r}"
        written = await self.write(rows, unit=unit)
        await self.write(history, unit=unit, primary=False)
        self.groups_processed.append(group.name)

        logger.info(
            f"[{offset + 1}] {group.name}: {len(products)} products, {len(prices)} prices, "
            f"{written}/{len(rows)} rows written (API calls {self.context.budget_label()})"
        )

    def normalize_group(
        self,
        group: TcgGroup,
        products: List[TcgProduct],
        prices: List[TcgPrice],
    ):
        price_map = self.merger.merge_all(prices)

        rows: List[CatalogProductRow] = []
        history: List[PriceHistoryRow] = []
        for product in products:
            row = self.normalizer.normalize(
                product,
                CatalogContext(
                    category_id=self.category_id,
                    group=group,
                    price=price_map.get(product.product_id),
                ),
            )
            if row is None:
                continue
            rows.append(row)
            snapshot = self.normalizer.price_history(row, self.recorded_on)
            if snapshot is not None:
                history.append(snapshot)
        return rows, history
