from sqlalchemy import Column, BigInteger, Integer, String, Float, Date, DateTime, Index
from sqlalchemy.dialects.postgresql import JSONB
from models.base import Base, utcnow


class CatalogGroup(Base):
    """
    A set or release batch from the catalog source.

    Refreshed on every harvest run; never deleted by the pipeline. Stale
    groups simply stop being refreshed.
    """
    __tablename__ = "tcgcsv_groups"

    group_id = Column(BigInteger, primary_key=True, autoincrement=False)
    category_id = Column(Integer, nullable=False, index=True)
    display_name = Column(String(300), nullable=False)
    abbreviation = Column(String(50), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True, index=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class CatalogProduct(Base):
    """
    One catalog product with its preferred price variant folded in.

    Mapping from TCGCSV:
    - productId -> product_id
    - extendedData[Number] -> card_number
    - extendedData[Rarity] -> rarity
    - prices[preferred subType] -> market/low/mid/high price
    - url -> source_url
    """
    __tablename__ = "tcgcsv_products"

    product_id = Column(BigInteger, primary_key=True, autoincrement=False)
    category_id = Column(Integer, nullable=False, index=True)
    group_id = Column(BigInteger, nullable=False, index=True)

    name = Column(String(500), nullable=False)
    image_url = Column(String(2048), nullable=True)
    set_name = Column(String(300), nullable=True)
    card_number = Column(String(50), nullable=True)
    rarity = Column(String(100), nullable=True)

    market_price = Column(Float, nullable=True)
    low_price = Column(Float, nullable=True)
    mid_price = Column(Float, nullable=True)
    high_price = Column(Float, nullable=True)

    extended_attributes = Column(JSONB, nullable=True)
    source_url = Column(String(2048), nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_products_group_market", "group_id", "market_price"),
    )


class PriceHistory(Base):
    """Daily price snapshot per product, one row per (product_id, recorded_at)"""
    __tablename__ = "tcgcsv_price_history"

    product_id = Column(BigInteger, primary_key=True, autoincrement=False)
    recorded_at = Column(Date, primary_key=True)

    market_price = Column(Float, nullable=True)
    low_price = Column(Float, nullable=True)
    mid_price = Column(Float, nullable=True)
    high_price = Column(Float, nullable=True)
