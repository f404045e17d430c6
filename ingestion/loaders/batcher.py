"""
Upsert batcher: bounded batches, per-batch retry, partial-failure tolerance
"""

from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Any
from core.config import settings
from core.exceptions import StoreWriteError
from ingestion.loaders.base import KeyedStore
from ingestion.retry import RetryPolicy, with_retry
from schemas.normalized import CanonicalRow
import logging

logger = logging.getLogger(__name__)


class UpsertBatcher:
    """
    Write canonical rows to a keyed store in bounded batches.

    - Rows are grouped by their own table and conflict key
    - Duplicate keys within one call collapse to the last row given
    - A rejected batch is retried with linear backoff; once retries run
      out the batch is logged and counted as zero, and the next batch
      still goes out

    Attributes:
        store: Target KeyedStore
        batch_size: Maximum rows per store request
        policy: Retry policy for rejected batches
        failed_batches: Batches dropped after exhausting retries (this batcher's lifetime)
    """

    def __init__(
        self,
        store: KeyedStore,
        batch_size: int = settings.UPSERT_BATCH_SIZE,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self.policy = policy or RetryPolicy.linear(
            attempts=settings.STORE_MAX_RETRIES,
            base_delay=settings.STORE_RETRY_DELAY,
        )
        self.sleep = sleep
        self.failed_batches = 0

    async def upsert(
        self,
        rows: Sequence[CanonicalRow],
        conflict_key: Optional[Sequence[str]] = None,
        unit: str = "",
    ) -> int:
        """
        Upsert rows; returns the number of rows the store accepted.

        Empty input is a no-op returning 0.
        """
        if not rows:
            return 0

        written = 0
        for (table, key), table_rows in self._by_table(rows, conflict_key).items():
            written += await self._write_table(table, key, table_rows, unit)
        return written

    @staticmethod
    def _by_table(
        rows: Sequence[CanonicalRow],
        conflict_key: Optional[Sequence[str]],
    ) -> Dict[Tuple[str, Tuple[str, ...]], List[CanonicalRow]]:
        grouped: Dict[Tuple[str, Tuple[str, ...]], Dict[Tuple[Any, ...], CanonicalRow]] = {}
        for row in rows:
            key = tuple(conflict_key) if conflict_key else row.CONFLICT_KEY
            by_key = grouped.setdefault((row.TABLE, key), {})
            by_key[tuple(getattr(row, column) for column in key)] = row
        return {target: list(by_key.values()) for target, by_key in grouped.items()}

    async def _write_table(
        self,
        table: str,
        conflict_key: Tuple[str, ...],
        rows: List[CanonicalRow],
        unit: str,
    ) -> int:
        written = 0
        label = f"{table} ({unit})" if unit else table

        for index, start in enumerate(range(0, len(rows), self.batch_size), start=1):
            batch = rows[start:start + self.batch_size]

            async def write(attempt: int, batch=batch) -> int:
                return await self.store.upsert(table, batch, conflict_key)

            try:
                count = await with_retry(
                    write,
                    self.policy,
                    retry_on=(StoreWriteError,),
                    description=f"Batch {index} for {label}",
                    sleep=self.sleep,
                )
            except StoreWriteError as e:
                self.failed_batches += 1
                logger.error(
                    f"Batch {index} for {label} dropped after {self.policy.max_attempts} attempts "
                    f"({len(batch)} rows): {e.message}"
                )
                continue

            written += count
            logger.debug(f"Batch {index} for {label}: wrote {count} rows")

        return written
