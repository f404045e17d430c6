"""
Pydantic schemas for canonical, store-ready rows.

Each row type names its target table and conflict key, so the upsert
batcher never needs to be told where a row goes.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, ClassVar, Dict, Optional, Tuple
from datetime import date, datetime, timezone
from models.base import HarvestStatus, PipelineName


class CanonicalRow(BaseModel):
    """Base for every row the pipeline proposes to the store"""

    TABLE: ClassVar[str]
    CONFLICT_KEY: ClassVar[Tuple[str, ...]]

    model_config = ConfigDict(use_enum_values=True)

    def key(self) -> Tuple[Any, ...]:
        """Values of the conflict key columns"""
        return tuple(getattr(self, column) for column in self.CONFLICT_KEY)


class CatalogGroupRow(CanonicalRow):
    TABLE: ClassVar[str] = "tcgcsv_groups"
    CONFLICT_KEY: ClassVar[Tuple[str, ...]] = ("group_id",)

    group_id: int
    category_id: int
    display_name: str = Field(..., min_length=1, max_length=300)
    abbreviation: Optional[str] = None
    published_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @field_validator("published_at", "modified_at")
    @classmethod
    def assume_utc(cls, v):
        # TCGCSV timestamps carry no offset
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class CatalogProductRow(CanonicalRow):
    """
    Catalog product with prices in decimal dollars.

    Full upsert: every column is always present so a re-harvest overwrites
    all mutable fields instead of patching some of them.
    """
    TABLE: ClassVar[str] = "tcgcsv_products"
    CONFLICT_KEY: ClassVar[Tuple[str, ...]] = ("product_id",)

    product_id: int
    category_id: int
    group_id: int
    name: str = Field(..., min_length=1, max_length=500)
    image_url: Optional[str] = None
    set_name: Optional[str] = None
    card_number: str = Field(..., min_length=1)
    rarity: Optional[str] = None
    market_price: Optional[float] = None
    low_price: Optional[float] = None
    mid_price: Optional[float] = None
    high_price: Optional[float] = None
    extended_attributes: Dict[str, Any] = Field(default_factory=dict)
    source_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty after stripping")
        return v


class PriceHistoryRow(CanonicalRow):
    TABLE: ClassVar[str] = "tcgcsv_price_history"
    CONFLICT_KEY: ClassVar[Tuple[str, ...]] = ("product_id", "recorded_at")

    product_id: int
    recorded_at: date
    market_price: Optional[float] = None
    low_price: Optional[float] = None
    mid_price: Optional[float] = None
    high_price: Optional[float] = None


class GradedListingRow(CanonicalRow):
    """Graded eBay listing with its price in integer cents"""
    TABLE: ClassVar[str] = "graded_listings"
    CONFLICT_KEY: ClassVar[Tuple[str, ...]] = ("ebay_item_id",)

    ebay_item_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=500)
    image_url: Optional[str] = None
    price_cents: int = Field(..., gt=0)
    grader: str
    grade: str
    set_name: Optional[str] = None
    year: Optional[str] = None
    card_number: Optional[str] = None
    category: Optional[str] = None
    product_id: Optional[int] = None
    item_url: Optional[str] = None
    source_metadata: Dict[str, Any] = Field(default_factory=dict)


class HarvestRunRow(CanonicalRow):
    TABLE: ClassVar[str] = "harvest_runs"
    CONFLICT_KEY: ClassVar[Tuple[str, ...]] = ("run_id",)

    run_id: str
    pipeline: PipelineName
    status: HarvestStatus
    calls_made: int = 0
    call_budget: int = 0
    records_processed: int = 0
    records_written: int = 0
    resume_offset: Optional[int] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    error_message: Optional[str] = None
