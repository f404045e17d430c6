"""
Pydantic schemas for validation and serialization.

Schemas:
    raw: Third-party payload shapes (TCGCSV groups/products/prices,
         eBay item summaries, OAuth token responses)
    normalized: Canonical store rows, each carrying its table name and
                conflict key
    api: HTTP API response models

Usage:
    from schemas.raw import TcgProduct, EbayItemSummary
    from schemas.normalized import CatalogProductRow, GradedListingRow
    from schemas.api import HealthResponse, SyncResponse

Validation:
    Raw payloads are validated once, when a walker receives them. Records
    that do not match their schema are logged and dropped there, so
    nothing downstream of the walkers handles untyped JSON.
"""

__all__ = [
    "TcgGroup",
    "TcgProduct",
    "TcgPrice",
    "EbayItemSummary",
    "CatalogGroupRow",
    "CatalogProductRow",
    "PriceHistoryRow",
    "GradedListingRow",
    "HarvestRunRow",
    "HealthResponse",
    "SyncResponse",
]
