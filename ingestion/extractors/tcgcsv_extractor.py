"""
TCGCSV catalog walker: category -> groups -> products / prices.

Each endpoint answers ``{success, errors, results}`` in a single page per
group, so every method is one budgeted call.
"""

from datetime import datetime, timezone
from typing import List, Optional

from core.config import settings
from ingestion.base import SourceWalker
from ingestion.fetcher import RateLimitedFetcher
from schemas.raw import TcgGroup, TcgPrice, TcgProduct
import logging

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TcgcsvWalker(SourceWalker):
    """
    Walk the TCGCSV catalog API.

    Attributes:
        base_url: API root, e.g. https://tcgcsv.com/tcgplayer
    """

    source_name = "tcgcsv"

    def __init__(self, fetcher: RateLimitedFetcher, base_url: Optional[str] = None):
        super().__init__(fetcher)
        self.base_url = (base_url or settings.TCGCSV_BASE_URL).rstrip("/")

    async def list_groups(self, category_id: int) -> List[TcgGroup]:
        """All groups (sets) of a category, unsorted"""
        groups = await self._fetch_results(
            unit=f"category {category_id} groups",
            url=f"{self.base_url}/{category_id}/groups",
            model=TcgGroup,
        )
        logger.info(f"[tcgcsv] Category {category_id}: {len(groups)} groups")
        return groups

    async def list_products(self, category_id: int, group_id: int) -> List[TcgProduct]:
        return await self._fetch_results(
            unit=f"group {group_id} products",
            url=f"{self.base_url}/{category_id}/{group_id}/products",
            model=TcgProduct,
        )

    async def list_prices(self, category_id: int, group_id: int) -> List[TcgPrice]:
        return await self._fetch_results(
            unit=f"group {group_id} prices",
            url=f"{self.base_url}/{category_id}/{group_id}/prices",
            model=TcgPrice,
        )

    @staticmethod
    def sort_groups(groups: List[TcgGroup]) -> List[TcgGroup]:
        """
        Most recently published first; undated groups last, ties broken by
        group id descending. This order decides where a budget-limited run
        stops, so it must not depend on upstream ordering.
        """
        return sorted(
            groups,
            key=lambda g: (
                g.published_on is not None,
                _aware(g.published_on) or _EPOCH,
                g.group_id,
            ),
            reverse=True,
        )
