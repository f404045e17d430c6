"""
Unit tests for keyed stores and the upsert batcher
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from core.config import settings
from core.exceptions import ConfigurationError, StoreReadError, StoreWriteError
from ingestion.loaders.batcher import UpsertBatcher
from ingestion.loaders.memory_loader import InMemoryStore
from ingestion.loaders.postgres_loader import PostgresStore
from ingestion.loaders.postgrest_loader import PostgrestStore
from ingestion.retry import RetryPolicy
from schemas.normalized import CatalogGroupRow, CatalogProductRow, GradedListingRow
from tests.helpers import SleepRecorder, ok


def product_row(product_id, group_id=10, market_price=5.0, name=None):
    return CatalogProductRow(
        product_id=product_id,
        category_id=3,
        group_id=group_id,
        name=name or f"Card {product_id}",
        card_number=f"{product_id % 1000:03d}/100",
        market_price=market_price,
        set_name="Base Set",
    )


def listing_row(item_id, cents=1000):
    return GradedListingRow(
        ebay_item_id=item_id, title=f"Pikachu {item_id} PSA 10", price_cents=cents, grader="PSA", grade="10"
    )


class TestInMemoryStore:
    """Replace-on-conflict semantics and graded-harvest reads"""

    @pytest.mark.asyncio
    async def test_upsert_replaces_whole_row(self, memory_store):
        await memory_store.upsert("graded_listings", [listing_row("a", 1000)], ("ebay_item_id",))
        await memory_store.upsert("graded_listings", [listing_row("a", 1500)], ("ebay_item_id",))

        rows = memory_store.rows("graded_listings")
        assert len(rows) == 1
        assert rows[0]["price_cents"] == 1500
        assert memory_store.writes["graded_listings"] == 2

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, memory_store):
        rows = [listing_row("a"), listing_row("b")]
        await memory_store.upsert("graded_listings", rows, ("ebay_item_id",))
        snapshot = memory_store.rows("graded_listings")
        await memory_store.upsert("graded_listings", rows, ("ebay_item_id",))
        assert memory_store.rows("graded_listings") == snapshot

    @pytest.mark.asyncio
    async def test_select_groups_and_top_products(self, memory_store):
        groups = [
            CatalogGroupRow(group_id=gid, category_id=cat, display_name=f"Set {gid}")
            for gid, cat in ((10, 3), (30, 3), (20, 85))
        ]
        await memory_store.upsert("tcgcsv_groups", groups, ("group_id",))
        await memory_store.upsert(
            "tcgcsv_products",
            [product_row(1, market_price=2.0), product_row(2, market_price=None), product_row(3, market_price=9.0),
             product_row(4, group_id=30, market_price=50.0)],
            ("product_id",),
        )

        targets = await memory_store.select_groups(3, limit=5)
        assert [g.group_id for g in targets] == [30, 10]

        cards = await memory_store.select_top_products(10, limit=5)
        assert [c.product_id for c in cards] == [3, 1]
        assert cards[0].card_number == "003/100"


class TestPostgrestStore:
    """PostgREST upserts and reads over httpx"""

    def test_missing_configuration(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_URL", None)
        monkeypatch.setattr(settings, "SUPABASE_KEY", None)
        with pytest.raises(ConfigurationError):
            PostgrestStore(httpx.AsyncClient())

    @pytest.mark.asyncio
    async def test_upsert_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = PostgrestStore(client, base_url="https://db.test", api_key="service-key")
            written = await store.upsert("tcgcsv_products", [product_row(1), product_row(2)], ("product_id",))

        assert written == 2
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/rest/v1/tcgcsv_products"
        assert request.url.params["on_conflict"] == "product_id"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Authorization"] == "Bearer service-key"
        assert "resolution=merge-duplicates" in request.headers["Prefer"]
        body = json.loads(request.content)
        assert [row["product_id"] for row in body] == [1, 2]
        assert set(body[0]) == set(CatalogProductRow.model_fields)

    @pytest.mark.asyncio
    async def test_rejected_upsert_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(409, text="conflict"))
        async with httpx.AsyncClient(transport=transport) as client:
            store = PostgrestStore(client, base_url="https://db.test", api_key="k")
            with pytest.raises(StoreWriteError) as exc_info:
                await store.upsert("graded_listings", [listing_row("a")], ("ebay_item_id",))
        assert exc_info.value.context["status_code"] == 409

    @pytest.mark.asyncio
    async def test_select_top_products_filters(self):
        seen = []

        def handler(request):
            seen.append(request)
            return ok([
                {"product_id": 7, "name": "Charizard", "card_number": "004/102", "market_price": 300.0,
                 "set_name": "Base Set"},
                {"name": "missing id"},
            ])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = PostgrestStore(client, base_url="https://db.test/", api_key="k")
            cards = await store.select_top_products(10, limit=5)

        assert [c.product_id for c in cards] == [7]
        params = seen[0].url.params
        assert params["group_id"] == "eq.10"
        assert params["market_price"] == "not.is.null"
        assert params["order"] == "market_price.desc"
        assert params["limit"] == "5"

    @pytest.mark.asyncio
    async def test_failed_read_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="down"))
        async with httpx.AsyncClient(transport=transport) as client:
            store = PostgrestStore(client, base_url="https://db.test", api_key="k")
            with pytest.raises(StoreReadError):
                await store.select_groups(3, limit=10)

    @pytest.mark.asyncio
    async def test_unparseable_read_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
        async with httpx.AsyncClient(transport=transport) as client:
            store = PostgrestStore(client, base_url="https://db.test", api_key="k")
            with pytest.raises(StoreReadError) as exc_info:
                await store.select_top_products(10, limit=5)
        assert exc_info.value.context["table"] == "tcgcsv_products"


class TestPostgresStore:
    """Test PostgreSQL store against a mocked session"""

    @pytest.mark.asyncio
    async def test_upsert_uses_on_conflict_do_update(self):
        mock_session = AsyncMock()
        store = PostgresStore(mock_session)

        written = await store.upsert("tcgcsv_products", [product_row(1), product_row(2)], ("product_id",))

        assert written == 2
        mock_session.execute.assert_called_once()
        mock_session.commit.assert_called_once()

        stmt = mock_session.execute.call_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "INSERT INTO tcgcsv_products" in sql
        assert "ON CONFLICT (product_id) DO UPDATE" in sql
        assert "market_price = excluded.market_price" in sql

    @pytest.mark.asyncio
    async def test_upsert_empty_list(self):
        mock_session = AsyncMock()
        store = PostgresStore(mock_session)
        assert await store.upsert("tcgcsv_products", [], ("product_id",)) == 0
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_database_error_rolls_back(self):
        mock_session = AsyncMock()
        mock_session.execute.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))
        store = PostgresStore(mock_session)

        with pytest.raises(StoreWriteError):
            await store.upsert("graded_listings", [listing_row("a")], ("ebay_item_id",))

        mock_session.rollback.assert_called_once()
        mock_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_select_groups_maps_rows(self):
        result = MagicMock()
        row = MagicMock(group_id=42, display_name="Stellar Crown")
        result.all.return_value = [row]
        mock_session = AsyncMock()
        mock_session.execute.return_value = result

        groups = await PostgresStore(mock_session).select_groups(3, limit=10)

        assert [(g.group_id, g.display_name) for g in groups] == [(42, "Stellar Crown")]

    @pytest.mark.asyncio
    async def test_failed_read_raises(self):
        mock_session = AsyncMock()
        mock_session.execute.side_effect = OperationalError("SELECT", {}, Exception("timeout"))
        with pytest.raises(StoreReadError):
            await PostgresStore(mock_session).select_top_products(10, limit=5)

    def test_unknown_table(self):
        with pytest.raises(StoreWriteError):
            PostgresStore.model_for("no_such_table")


class FlakyStore(InMemoryStore):
    """Rejects the first ``failures`` upserts of selected tables"""

    def __init__(self, failures=0, always_fail_batch=None):
        super().__init__()
        self.failures = failures
        self.always_fail_batch = always_fail_batch
        self.calls = 0

    async def upsert(self, table, rows, conflict_key):
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise StoreWriteError("temporarily unavailable", context={"table": table})
        if self.always_fail_batch and any(self.always_fail_batch(row) for row in rows):
            raise StoreWriteError("rejected", context={"table": table})
        return await super().upsert(table, rows, conflict_key)


class TestUpsertBatcher:
    """Batching, in-call dedup and retry"""

    @pytest.mark.asyncio
    async def test_chunks_rows(self, memory_store):
        batcher = UpsertBatcher(memory_store, batch_size=2)
        written = await batcher.upsert([listing_row(str(i)) for i in range(5)])

        assert written == 5
        assert memory_store.writes["graded_listings"] == 3
        assert memory_store.count("graded_listings") == 5

    @pytest.mark.asyncio
    async def test_empty_input_is_noop(self, memory_store):
        assert await UpsertBatcher(memory_store).upsert([]) == 0
        assert memory_store.writes == {}

    @pytest.mark.asyncio
    async def test_duplicate_keys_collapse_to_last(self, memory_store):
        batcher = UpsertBatcher(memory_store)
        written = await batcher.upsert([listing_row("a", 100), listing_row("a", 200)])

        assert written == 1
        assert memory_store.rows("graded_listings")[0]["price_cents"] == 200

    @pytest.mark.asyncio
    async def test_rows_are_routed_by_table(self, memory_store):
        batcher = UpsertBatcher(memory_store)
        await batcher.upsert([listing_row("a"), product_row(1)])
        assert memory_store.count("graded_listings") == 1
        assert memory_store.count("tcgcsv_products") == 1

    @pytest.mark.asyncio
    async def test_rejected_batch_is_retried_with_linear_backoff(self):
        store = FlakyStore(failures=2)
        sleeps = SleepRecorder()
        batcher = UpsertBatcher(store, policy=RetryPolicy.linear(3, 1.0), sleep=sleeps)

        assert await batcher.upsert([listing_row("a")]) == 1
        assert store.calls == 3
        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_batch_is_skipped_and_others_written(self, caplog):
        store = FlakyStore(always_fail_batch=lambda row: row.ebay_item_id == "bad")
        batcher = UpsertBatcher(store, batch_size=2, policy=RetryPolicy.linear(3, 1.0), sleep=SleepRecorder())
        rows = [listing_row("a"), listing_row("bad"), listing_row("c"), listing_row("d")]

        with caplog.at_level(logging.ERROR):
            written = await batcher.upsert(rows, unit="test")

        assert written == 2
        assert batcher.failed_batches == 1
        assert store.count("graded_listings") == 2
        assert "Batch 1 for graded_listings (test) dropped after 3 attempts" in caplog.text

    @pytest.mark.asyncio
    async def test_single_attempt_policy_drops_batch_without_aborting(self):
        store = FlakyStore(always_fail_batch=lambda row: row.ebay_item_id == "bad")
        sleeps = SleepRecorder()
        batcher = UpsertBatcher(store, batch_size=1, policy=RetryPolicy.linear(1, 1.0), sleep=sleeps)

        written = await batcher.upsert([listing_row("bad"), listing_row("good")])

        assert written == 1
        assert batcher.failed_batches == 1
        assert store.calls == 2
        assert sleeps.delays == []

    def test_batch_size_must_be_positive(self, memory_store):
        with pytest.raises(ValueError):
            UpsertBatcher(memory_store, batch_size=0)
