"""
In-memory keyed store for dry runs and tests
"""

from typing import Any, Dict, List, Sequence, Tuple
from ingestion.loaders.base import KeyedStore
from schemas.normalized import CanonicalRow
from schemas.raw import TargetCard, TargetGroup
import logging

logger = logging.getLogger(__name__)


class InMemoryStore(KeyedStore):
    """
    Dict-of-dicts store with the same replace-on-conflict semantics as the
    real backends. ``writes`` counts upsert calls per table.
    """

    backend = "memory"

    def __init__(self):
        self.tables: Dict[str, Dict[Tuple[Any, ...], Dict[str, Any]]] = {}
        self.writes: Dict[str, int] = {}

    async def upsert(
        self,
        table: str,
        rows: Sequence[CanonicalRow],
        conflict_key: Sequence[str],
    ) -> int:
        if not rows:
            return 0
        stored = self.tables.setdefault(table, {})
        for row in rows:
            data = row.model_dump()
            stored[tuple(data[column] for column in conflict_key)] = data
        self.writes[table] = self.writes.get(table, 0) + 1
        logger.debug(f"[memory] Upserted {len(rows)} rows into {table}")
        return len(rows)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def count(self, table: str) -> int:
        return len(self.tables.get(table, {}))

    async def select_groups(self, category_id: int, limit: int) -> List[TargetGroup]:
        groups = [g for g in self.rows("tcgcsv_groups") if g["category_id"] == category_id]
        groups.sort(key=lambda g: g["group_id"], reverse=True)
        return [
            TargetGroup(group_id=g["group_id"], display_name=g["display_name"])
            for g in groups[:limit]
        ]

    async def select_top_products(self, group_id: int, limit: int) -> List[TargetCard]:
        products = [
            p for p in self.rows("tcgcsv_products")
            if p["group_id"] == group_id and p["market_price"] is not None
        ]
        products.sort(key=lambda p: p["market_price"], reverse=True)
        return [
            TargetCard(
                product_id=p["product_id"],
                name=p["name"],
                card_number=p["card_number"],
                market_price=p["market_price"],
                set_name=p["set_name"],
            )
            for p in products[:limit]
        ]
