"""
Load canonical rows into PostgreSQL with upsert logic (idempotency)
"""

from typing import Dict, List, Sequence, Type
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from core.exceptions import StoreReadError, StoreWriteError
from ingestion.loaders.base import KeyedStore
from models.base import Base
from models.catalog import CatalogGroup, CatalogProduct, PriceHistory
from models.harvest_run import HarvestRun
from models.listings import GradedListing
from schemas.normalized import CanonicalRow
from schemas.raw import TargetCard, TargetGroup
import logging

logger = logging.getLogger(__name__)

TABLE_MODELS: Dict[str, Type[Base]] = {
    model.__tablename__: model
    for model in (CatalogGroup, CatalogProduct, PriceHistory, GradedListing, HarvestRun)
}


class PostgresStore(KeyedStore):
    """
    Keyed store on PostgreSQL via SQLAlchemy.

    Ensures:
    - No duplicate rows on repeated runs (INSERT ... ON CONFLICT DO UPDATE)
    - Every non-key column is overwritten from the incoming row
    - One transaction per batch
    """

    backend = "postgres"

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    @staticmethod
    def model_for(table: str) -> Type[Base]:
        try:
            return TABLE_MODELS[table]
        except KeyError:
            raise StoreWriteError(f"Unknown table {table}", context={"table": table})

    async def upsert(
        self,
        table: str,
        rows: Sequence[CanonicalRow],
        conflict_key: Sequence[str],
    ) -> int:
        """
        Upsert a batch (INSERT ON CONFLICT UPDATE).

        Returns:
            Number of rows written
        """
        if not rows:
            return 0

        model = self.model_for(table)
        values = [row.model_dump() for row in rows]

        stmt = insert(model).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_key),
            set_={
                column.name: stmt.excluded[column.name]
                for column in model.__table__.columns
                if column.name not in conflict_key
            }
        )

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreWriteError(
                f"Upsert into {table} failed",
                context={"table": table, "conflict_key": ",".join(conflict_key), "rows": len(rows)},
                original_exception=e
            )

        logger.debug(f"Upserted {len(rows)} rows into {table}")
        return len(rows)

    async def _read(self, stmt, table: str):
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreReadError(f"Read from {table} failed", context={"table": table}, original_exception=e)
        return result.all()

    async def select_groups(self, category_id: int, limit: int) -> List[TargetGroup]:
        rows = await self._read(
            select(CatalogGroup.group_id, CatalogGroup.display_name)
            .where(CatalogGroup.category_id == category_id)
            .order_by(CatalogGroup.group_id.desc())
            .limit(limit),
            "tcgcsv_groups",
        )
        return [
            TargetGroup(group_id=row.group_id, display_name=row.display_name)
            for row in rows
        ]

    async def select_top_products(self, group_id: int, limit: int) -> List[TargetCard]:
        rows = await self._read(
            select(
                CatalogProduct.product_id,
                CatalogProduct.name,
                CatalogProduct.card_number,
                CatalogProduct.market_price,
                CatalogProduct.set_name,
            )
            .where(
                CatalogProduct.group_id == group_id,
                CatalogProduct.market_price.is_not(None),
            )
            .order_by(CatalogProduct.market_price.desc())
            .limit(limit),
            "tcgcsv_products",
        )
        return [
            TargetCard(
                product_id=row.product_id,
                name=row.name,
                card_number=row.card_number,
                market_price=row.market_price,
                set_name=row.set_name,
            )
            for row in rows
        ]

    async def close(self):
        await self.db.close()
