from sqlalchemy import Column, BigInteger, Integer, String, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from models.base import Base, utcnow


class GradedListing(Base):
    """
    Graded eBay listing.

    Design:
    - ebay_item_id is the idempotency key; re-harvests replace the row
      (price may change between passes, last write wins)
    - grader and grade are never null: ungraded listings are dropped
      before they reach the store
    - price_cents stores integer minor units
    """
    __tablename__ = "graded_listings"

    ebay_item_id = Column(String(64), primary_key=True)

    title = Column(String(500), nullable=False)
    image_url = Column(String(2048), nullable=True)
    price_cents = Column(Integer, nullable=False)
    grader = Column(String(10), nullable=False, index=True)
    grade = Column(String(10), nullable=False, index=True)

    set_name = Column(String(300), nullable=True)
    year = Column(String(4), nullable=True)
    card_number = Column(String(50), nullable=True)
    category = Column(String(50), nullable=True, index=True)
    product_id = Column(BigInteger, nullable=True, index=True)
    item_url = Column(String(2048), nullable=True)

    source_metadata = Column(JSONB, nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
