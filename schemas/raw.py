"""
Pydantic schemas for raw third-party payloads.

Every record coming back from TCGCSV or the eBay Browse API is validated
against one of these models at the ingestion boundary. Unknown keys are
kept (``extra="allow"``) so nothing the source sends is lost, but the
fields the pipeline depends on are typed.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal, InvalidOperation


class SourceModel(BaseModel):
    """Base for camelCase source payloads"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# ============================================================================
# TCGCSV catalog
# ============================================================================

class TcgGroup(SourceModel):
    group_id: int = Field(alias="groupId")
    category_id: int = Field(alias="categoryId")
    name: str
    abbreviation: Optional[str] = None
    published_on: Optional[datetime] = Field(None, alias="publishedOn")
    modified_on: Optional[datetime] = Field(None, alias="modifiedOn")


class TcgExtendedField(SourceModel):
    name: str
    value: Optional[str] = None


class TcgProduct(SourceModel):
    product_id: int = Field(alias="productId")
    category_id: int = Field(alias="categoryId")
    group_id: int = Field(alias="groupId")
    name: Optional[str] = None
    clean_name: Optional[str] = Field(None, alias="cleanName")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    url: Optional[str] = None
    modified_on: Optional[datetime] = Field(None, alias="modifiedOn")
    extended_data: List[TcgExtendedField] = Field(default_factory=list, alias="extendedData")

    def extended_value(self, field_name: str) -> Optional[str]:
        """First value of a named extended field, or None"""
        for field in self.extended_data:
            if field.name == field_name:
                return field.value or None
        return None


class TcgPrice(SourceModel):
    product_id: int = Field(alias="productId")
    low_price: Optional[float] = Field(None, alias="lowPrice")
    mid_price: Optional[float] = Field(None, alias="midPrice")
    high_price: Optional[float] = Field(None, alias="highPrice")
    market_price: Optional[float] = Field(None, alias="marketPrice")
    direct_low_price: Optional[float] = Field(None, alias="directLowPrice")
    sub_type_name: Optional[str] = Field(None, alias="subTypeName")


# ============================================================================
# eBay Browse API
# ============================================================================

class EbayPrice(SourceModel):
    value: Optional[str] = None
    currency: Optional[str] = None


class EbayImage(SourceModel):
    image_url: Optional[str] = Field(None, alias="imageUrl")


class EbayItemSummary(SourceModel):
    item_id: str = Field(alias="itemId")
    title: Optional[str] = None
    price: Optional[EbayPrice] = None
    image: Optional[EbayImage] = None
    thumbnail_images: List[EbayImage] = Field(default_factory=list, alias="thumbnailImages")
    item_web_url: Optional[str] = Field(None, alias="itemWebUrl")
    condition: Optional[str] = None
    item_creation_date: Optional[datetime] = Field(None, alias="itemCreationDate")

    @property
    def price_value(self) -> Optional[Decimal]:
        """Listing price in decimal currency units"""
        if self.price is None or self.price.value in (None, ""):
            return None
        try:
            return Decimal(str(self.price.value))
        except InvalidOperation:
            return None

    @property
    def primary_image_url(self) -> Optional[str]:
        """Main image, falling back to the first thumbnail"""
        if self.image and self.image.image_url:
            return self.image.image_url
        for thumb in self.thumbnail_images:
            if thumb.image_url:
                return thumb.image_url
        return None


class OAuthTokenResponse(SourceModel):
    access_token: str
    expires_in: int = 7200
    token_type: Optional[str] = None


# ============================================================================
# Targets read back from the store (graded harvest)
# ============================================================================

class TargetGroup(BaseModel):
    group_id: int
    display_name: str


class TargetCard(BaseModel):
    product_id: int
    name: str
    card_number: Optional[str] = None
    market_price: Optional[float] = None
    set_name: Optional[str] = None
