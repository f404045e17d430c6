"""
Transform validated source records into canonical store rows
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional, Tuple
from pydantic import ValidationError
from core.exceptions import NormalizationSkip
from ingestion.transformers.extraction import (
    CATALOG_PRODUCT_DENYLIST,
    extract_card_number,
    extract_grading,
    extract_set_name,
    extract_year,
    find_denied,
    to_cents,
    to_dollars,
    upgrade_image_url,
)
from schemas.normalized import (
    CatalogGroupRow,
    CatalogProductRow,
    GradedListingRow,
    PriceHistoryRow,
)
from schemas.raw import EbayItemSummary, TcgGroup, TcgPrice, TcgProduct
import logging

logger = logging.getLogger(__name__)


@dataclass
class CatalogContext:
    """What a catalog product needs from its surroundings"""
    category_id: int
    group: TcgGroup
    price: Optional[TcgPrice] = None
    denylist: Tuple[str, ...] = CATALOG_PRODUCT_DENYLIST


@dataclass
class ListingContext:
    """
    Per-search rules for eBay listings.

    Attributes:
        category: Category label stored on the row (pokemon, onepiece, ...)
        denylist: Substrings that exclude a listing (bulk words, other games)
        allowed_graders: Grading companies accepted; None accepts any
        required_grade: Grade a listing must carry (the tier searched for)
        product_id: Catalog product the search was built from
        set_name: Fallback set name when the title names none
        source_market_price: Catalog market price of that product
        query: Search text that produced the listing
    """
    category: Optional[str] = None
    denylist: Tuple[str, ...] = ()
    allowed_graders: Optional[Tuple[str, ...]] = None
    required_grade: Optional[str] = None
    product_id: Optional[int] = None
    set_name: Optional[str] = None
    source_market_price: Optional[float] = None
    query: Optional[str] = None
    extra_metadata: Dict[str, Any] = field(default_factory=dict)


class CatalogNormalizer:
    """
    Normalize TCGCSV groups and products.

    Prices are stored as decimal dollars rounded half up to the cent. A
    source price of 0 is kept as 0.0; only a missing price becomes None.
    """

    source = "tcgcsv"

    def normalize_group(self, group: TcgGroup) -> CatalogGroupRow:
        return CatalogGroupRow(
            group_id=group.group_id,
            category_id=group.category_id,
            display_name=group.name,
            abbreviation=group.abbreviation,
            published_at=group.published_on,
            modified_at=group.modified_on,
        )

    def normalize(self, product: TcgProduct, context: CatalogContext) -> Optional[CatalogProductRow]:
        """
        Returns:
            A CatalogProductRow, or None when the product is excluded (the
            reason is logged)
        """
        try:
            return self._build_product(product, context)
        except NormalizationSkip as skip:
            logger.info(
                f"[{self.source}] Skipping product {product.product_id} "
                f"in group {context.group.group_id}: {skip.reason}"
            )
            return None

    def _build_product(self, product: TcgProduct, context: CatalogContext) -> CatalogProductRow:
        name = (product.name or product.clean_name or "").strip()
        if not name:
            raise NormalizationSkip("missing name")

        denied = find_denied(name, context.denylist)
        if denied:
            raise NormalizationSkip(f"sealed product ({denied!r} in name)")

        card_number = product.extended_value("Number")
        if not card_number:
            raise NormalizationSkip("missing card number")

        price = context.price
        extended: Dict[str, Any] = {
            "extended_data": [
                {"name": f.name, "value": f.value} for f in product.extended_data
            ],
            "group_abbreviation": context.group.abbreviation,
            "group_published_on": (
                context.group.published_on.isoformat() if context.group.published_on else None
            ),
        }
        if price is not None and price.sub_type_name:
            extended["price_sub_type"] = price.sub_type_name

        try:
            return CatalogProductRow(
                product_id=product.product_id,
                category_id=context.category_id,
                group_id=product.group_id,
                name=name,
                image_url=upgrade_image_url(product.image_url, self.source),
                set_name=context.group.name,
                card_number=card_number,
                rarity=product.extended_value("Rarity"),
                market_price=to_dollars(price.market_price) if price else None,
                low_price=to_dollars(price.low_price) if price else None,
                mid_price=to_dollars(price.mid_price) if price else None,
                high_price=to_dollars(price.high_price) if price else None,
                extended_attributes=extended,
                source_url=product.url,
            )
        except ValidationError as e:
            raise NormalizationSkip(f"invalid row ({e.error_count()} validation error(s))")

    def price_history(self, row: CatalogProductRow, recorded_at: date) -> Optional[PriceHistoryRow]:
        """Snapshot of a product's prices, or None if it has no market or low price"""
        if row.market_price is None and row.low_price is None:
            return None
        return PriceHistoryRow(
            product_id=row.product_id,
            recorded_at=recorded_at,
            market_price=row.market_price,
            low_price=row.low_price,
            mid_price=row.mid_price,
            high_price=row.high_price,
        )


class ListingNormalizer:
    """
    Normalize eBay item summaries into graded listings.

    Prices are stored as integer cents, rounded half up.
    """

    source = "ebay"

    def normalize(self, item: EbayItemSummary, context: ListingContext) -> Optional[GradedListingRow]:
        try:
            return self._build_listing(item, context)
        except NormalizationSkip as skip:
            logger.debug(f"[{self.source}] Skipping item {item.item_id}: {skip.reason}")
            return None

    def _build_listing(self, item: EbayItemSummary, context: ListingContext) -> GradedListingRow:
        title = (item.title or "").strip()
        if not title:
            raise NormalizationSkip("missing title")

        denied = find_denied(title, context.denylist)
        if denied:
            raise NormalizationSkip(f"excluded keyword {denied!r}")

        grader, grade = extract_grading(title)
        if grader is None or grade is None:
            raise NormalizationSkip("no grader/grade in title")
        if context.allowed_graders is not None and grader not in context.allowed_graders:
            raise NormalizationSkip(f"grader {grader} not accepted")
        if context.required_grade is not None and grade != context.required_grade:
            raise NormalizationSkip(f"grade {grade} does not match tier {context.required_grade}")

        price_cents = to_cents(item.price_value)
        if price_cents is None or price_cents <= 0:
            raise NormalizationSkip("missing or non-positive price")

        metadata: Dict[str, Any] = {
            "condition": item.condition,
            "currency": item.price.currency if item.price else None,
            "query": context.query,
            "source_market_price": context.source_market_price,
        }
        metadata.update(context.extra_metadata)

        try:
            return GradedListingRow(
                ebay_item_id=item.item_id,
                title=title[:500],
                image_url=upgrade_image_url(item.primary_image_url, self.source),
                price_cents=price_cents,
                grader=grader,
                grade=grade,
                set_name=extract_set_name(title) or context.set_name,
                year=extract_year(title),
                card_number=extract_card_number(title),
                category=context.category,
                product_id=context.product_id,
                item_url=item.item_web_url,
                source_metadata={k: v for k, v in metadata.items() if v is not None},
            )
        except ValidationError as e:
            raise NormalizationSkip(f"invalid row ({e.error_count()} validation error(s))")
