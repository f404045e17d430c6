"""
Collapse multiple raw records for the same logical entity.

Price variants: TCGCSV returns one price row per sub-type (Normal,
Holofoil, Reverse Holofoil, 1st Edition, ...) for the same product. The
preferred sub-type per source category comes from an explicit table
instead of inline string checks, so a new variant shows up here as a
deliberate config change rather than silently falling through.

Listings: repeated passes over eBay can return the same item id with a
different price; the last one fetched replaces the earlier ones whole.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from schemas.normalized import GradedListingRow
from schemas.raw import TcgPrice
import logging

logger = logging.getLogger(__name__)

DEFAULT_SUB_TYPE_PREFERENCE: Tuple[str, ...] = ("Normal",)

# TCGCSV category id -> preferred sub-types, best first
SUB_TYPE_PREFERENCES: Dict[int, Tuple[str, ...]] = {
    3: ("Normal", "Holofoil"),   # Pokemon
    85: ("Normal", "Holofoil"),  # Pokemon Japan
    68: ("Normal",),             # One Piece
    2: ("Normal",),              # Yu-Gi-Oh
}


class PriceVariantMerger:
    """
    Pick one price row per product.

    Selection is total and order-independent for preferred sub-types: the
    variant whose sub-type ranks best in the preference list wins. Only
    when no variant is preferred does input order matter, and then the
    first one seen is kept.
    """

    def __init__(self, preference: Optional[Sequence[str]] = None):
        self.preference: Tuple[str, ...] = tuple(preference or DEFAULT_SUB_TYPE_PREFERENCE)
        self._rank = {name.lower(): index for index, name in enumerate(self.preference)}

    @classmethod
    def for_category(
        cls,
        category_id: int,
        table: Mapping[int, Sequence[str]] = SUB_TYPE_PREFERENCES,
    ) -> "PriceVariantMerger":
        return cls(table.get(category_id, DEFAULT_SUB_TYPE_PREFERENCE))

    def rank(self, price: TcgPrice) -> int:
        """Position in the preference list; unlisted sub-types rank last"""
        name = (price.sub_type_name or "").lower()
        return self._rank.get(name, len(self.preference))

    def merge(self, variants: Sequence[TcgPrice]) -> Optional[TcgPrice]:
        """Choose one of the variants for a single product"""
        if not variants:
            return None
        best = variants[0]
        best_rank = self.rank(best)
        for candidate in variants[1:]:
            candidate_rank = self.rank(candidate)
            if candidate_rank < best_rank:
                best, best_rank = candidate, candidate_rank
        return best

    def merge_all(self, prices: Iterable[TcgPrice]) -> Dict[int, TcgPrice]:
        """product_id -> chosen variant"""
        grouped: Dict[int, List[TcgPrice]] = {}
        for price in prices:
            grouped.setdefault(price.product_id, []).append(price)

        merged = {}
        for product_id, variants in grouped.items():
            merged[product_id] = self.merge(variants)
            if len(variants) > 1 and self.rank(merged[product_id]) == len(self.preference):
                logger.debug(
                    f"No preferred sub-type for product {product_id} "
                    f"among {[v.sub_type_name for v in variants]}; kept first seen"
                )
        return merged


def merge_listings(rows: Iterable[GradedListingRow]) -> List[GradedListingRow]:
    """
    Last-fetched-wins per ebay_item_id; rows keep the position of the
    item's first appearance.
    """
    latest: Dict[str, GradedListingRow] = {}
    for row in rows:
        latest[row.ebay_item_id] = row
    return list(latest.values())
