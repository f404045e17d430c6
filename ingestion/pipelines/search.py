"""
Search-list harvest: run a fixed list of eBay searches and keep every
graded single-card listing they return.
"""

import logging
from typing import Optional, Sequence

from core.config import settings
from ingestion.context import RunContext
from ingestion.extractors.ebay_extractor import EbaySearchWalker
from ingestion.loaders.base import KeyedStore
from ingestion.loaders.batcher import UpsertBatcher
from ingestion.queries import DEFAULT_SEARCH_QUERIES, SearchQuery
from ingestion.runner import RunController
from ingestion.transformers.deduplicator import merge_listings
from ingestion.transformers.extraction import BULK_LISTING_DENYLIST, OFF_TOPIC_KEYWORDS
from ingestion.transformers.normalizer import ListingContext, ListingNormalizer
from models.base import PipelineName

logger = logging.getLogger(__name__)


class SearchListHarvest(RunController):
    """
    One budgeted search per configured query. The skip offset counts
    queries.
    """

    pipeline = PipelineName.SEARCH

    def __init__(
        self,
        walker: EbaySearchWalker,
        store: KeyedStore,
        context: RunContext,
        queries: Sequence[SearchQuery] = DEFAULT_SEARCH_QUERIES,
        max_queries: Optional[int] = None,
        batcher: Optional[UpsertBatcher] = None,
        normalizer: Optional[ListingNormalizer] = None,
        query_delay: float = settings.QUERY_DELAY,
        sleep=None,
    ):
        super().__init__(context, store, batcher=batcher, sleep=sleep)
        self.walker = walker
        self.queries = tuple(queries)
        self.max_queries = max_queries
        self.normalizer = normalizer or ListingNormalizer()
        self.query_delay = query_delay

    def describe(self):
        return {"queries": len(self.queries)}

    async def setup(self):
        await self.walker.fetcher.authenticate()

    async def harvest(self):
        skip = self.context.sets_skipped
        end = len(self.queries) if self.max_queries is None else skip + self.max_queries
        window = self.queries[skip:end]

        for offset, search in enumerate(window, start=skip):
            self.check_budget(offset)
            self.context.current_cursor = offset

            refused_before = self.context.calls_refused
            items = await self.walker.search(
                search.query, limit=search.limit, sort=search.sort, min_price=search.min_price
            )
            if self.context.calls_refused > refused_before:
                self.stop_for_budget(offset)
            self.records_processed += len(items)

            context = ListingContext(
                category=search.category,
                denylist=BULK_LISTING_DENYLIST + OFF_TOPIC_KEYWORDS.get(search.category, ()),
                query=search.query,
            )
            rows = [
                row for row in (self.normalizer.normalize(item, context) for item in items)
                if row is not None
            ]
            written = await self.write(merge_listings(rows), unit=f'query "{search.query}"')
            logger.info(
                f'[{offset + 1}] "{search.query}": {len(items)} items, '
                f"{len(rows)} graded, {written} written"
            )

            if offset < skip + len(window) - 1:
                await self.pause(self.query_delay)
