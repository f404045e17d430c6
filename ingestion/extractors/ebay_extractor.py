"""
eBay Browse API search walker.

Results are re-sorted locally so that two runs over the same upstream
data return the same sequence, whatever order eBay answered in.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from core.config import settings
from ingestion.base import SourceWalker
from ingestion.fetcher import RateLimitedFetcher
from schemas.raw import EbayItemSummary
import logging

logger = logging.getLogger(__name__)

_NO_PRICE = Decimal("Infinity")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created(item: EbayItemSummary) -> datetime:
    value = item.item_creation_date
    if value is None:
        return _EPOCH
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def sort_items(items: List[EbayItemSummary], sort: Optional[str]) -> List[EbayItemSummary]:
    """Deterministic local ordering matching the requested eBay sort"""
    if sort == "price":
        return sorted(items, key=lambda i: (_NO_PRICE if i.price_value is None else i.price_value, i.item_id))
    if sort == "-price":
        return sorted(
            items,
            key=lambda i: (i.price_value is not None, i.price_value or Decimal(0), i.item_id),
            reverse=True,
        )
    if sort == "newlyListed":
        by_id = sorted(items, key=lambda i: i.item_id)
        return sorted(by_id, key=_created, reverse=True)
    return sorted(items, key=lambda i: i.item_id)


class EbaySearchWalker(SourceWalker):
    """
    Search-style source: ``search(query, limit)`` returns one page of item
    summaries.

    Attributes:
        search_url: Browse API item_summary/search endpoint
        marketplace_id: Sent as X-EBAY-C-MARKETPLACE-ID
        category_ids: eBay category filter (trading cards by default)
    """

    source_name = "ebay"

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        search_url: Optional[str] = None,
        marketplace_id: Optional[str] = None,
        category_ids: Optional[str] = None,
    ):
        super().__init__(fetcher)
        self.search_url = search_url or settings.EBAY_SEARCH_URL
        self.marketplace_id = marketplace_id or settings.EBAY_MARKETPLACE_ID
        self.category_ids = category_ids if category_ids is not None else settings.EBAY_CARD_CATEGORY_ID

    def build_params(
        self,
        query: str,
        limit: int,
        sort: Optional[str] = None,
        min_price: Optional[float] = None,
    ) -> Dict[str, str]:
        params = {"q": query, "limit": str(limit)}
        if sort:
            params["sort"] = sort
        if self.category_ids:
            params["category_ids"] = self.category_ids
        if min_price is not None:
            params["filter"] = f"price:[{min_price:g}..],priceCurrency:USD"
        return params

    async def search(
        self,
        query: str,
        limit: int = 5,
        sort: Optional[str] = "price",
        min_price: Optional[float] = None,
    ) -> List[EbayItemSummary]:
        unit = f'search "{query}"'
        payload = await self._fetch_payload(
            unit,
            self.search_url,
            params=self.build_params(query, limit, sort, min_price),
            headers={"X-EBAY-C-MARKETPLACE-ID": self.marketplace_id},
        )
        if not payload:
            return []

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, dict) else first
            logger.error(f"[ebay] API error for {unit}: {message}")
            return []

        items = self._validate_records(unit, payload.get("itemSummaries") or [], EbayItemSummary)
        logger.debug(f"[ebay] {unit}: {len(items)} items")
        return sort_items(items, sort)[:limit]
