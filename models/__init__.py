"""
SQLAlchemy ORM models for the target store tables.

Models:
    base: Declarative base and shared enums (PipelineName, HarvestStatus)
    catalog: Catalog groups, products and daily price history
    listings: Graded eBay listings
    harvest_run: One summary row per harvest invocation

Database Schema:
    Every table is keyed by the same column(s) the pipeline uses as its
    upsert conflict target, so re-harvesting replaces rows in place.

Usage:
    from models.catalog import CatalogGroup, CatalogProduct, PriceHistory
    from models.listings import GradedListing
    from models.base import Base, HarvestStatus
"""

__all__ = [
    "Base",
    "PipelineName",
    "HarvestStatus",
    "CatalogGroup",
    "CatalogProduct",
    "PriceHistory",
    "GradedListing",
    "HarvestRun",
]
