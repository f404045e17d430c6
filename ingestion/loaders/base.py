"""
Keyed upsert store contract shared by every store backend
"""

from abc import ABC, abstractmethod
from typing import List, Sequence
from schemas.normalized import CanonicalRow
from schemas.raw import TargetCard, TargetGroup


class KeyedStore(ABC):
    """
    A table-shaped store that upserts rows on an explicit conflict key.

    Contract:
    - ``upsert`` replaces the whole row on conflict (never patches fields),
      so writing the same row twice leaves the same stored state
    - ``upsert`` raises StoreWriteError when the store rejects the batch;
      retrying is the batcher's job, not the store's
    - The two ``select_*`` reads serve the graded harvest, which walks
      catalog rows written by an earlier catalog harvest
    """

    backend: str = "abstract"

    @abstractmethod
    async def upsert(
        self,
        table: str,
        rows: Sequence[CanonicalRow],
        conflict_key: Sequence[str],
    ) -> int:
        """Write ``rows`` to ``table``; returns the number of rows written"""

    @abstractmethod
    async def select_groups(self, category_id: int, limit: int) -> List[TargetGroup]:
        """Catalog groups of a category, newest group id first"""

    @abstractmethod
    async def select_top_products(self, group_id: int, limit: int) -> List[TargetCard]:
        """Priced products of a group, highest market price first"""

    async def close(self):
        return None
