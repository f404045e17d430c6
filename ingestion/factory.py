"""
Assemble stores, fetchers and pipelines from settings.

Credentials and store configuration are checked here, when a run is
built, never at import time.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Sequence, Tuple
import logging

import httpx

from core.config import settings
from core.database import create_engine, create_session_maker
from core.exceptions import ConfigurationError
from ingestion.context import RunContext
from ingestion.extractors.ebay_extractor import EbaySearchWalker
from ingestion.extractors.tcgcsv_extractor import TcgcsvWalker
from ingestion.fetcher import RateLimitedFetcher, TokenManager
from ingestion.loaders.base import KeyedStore
from ingestion.loaders.batcher import UpsertBatcher
from ingestion.loaders.memory_loader import InMemoryStore
from ingestion.loaders.postgres_loader import PostgresStore
from ingestion.loaders.postgrest_loader import PostgrestStore
from ingestion.pipelines.catalog import CatalogHarvest
from ingestion.pipelines.graded import GradedHarvest
from ingestion.pipelines.search import SearchListHarvest
from ingestion.queries import DEFAULT_GRADE_TIERS
from ingestion.runner import RunController
from models.base import PipelineName
from schemas.api import RunSummary

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("postgrest", "postgres", "memory")


@dataclass
class HarvestOptions:
    """
    Everything a caller (CLI, API, scheduler) can choose about one run.
    None means "use the setting / pipeline default".
    """
    pipeline: PipelineName
    category_id: Optional[int] = None
    sets: int = 10
    cards_per_set: int = 5
    skip_sets: int = 0
    max_api_calls: Optional[int] = None
    group_id: Optional[int] = None
    grades: Sequence[str] = field(default_factory=lambda: DEFAULT_GRADE_TIERS)
    store: Optional[str] = None
    dry_run: bool = False

    @property
    def store_backend(self) -> str:
        return "memory" if self.dry_run else (self.store or settings.STORE_BACKEND)

    @property
    def call_budget(self) -> int:
        return self.max_api_calls if self.max_api_calls is not None else settings.MAX_API_CALLS


def new_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT, follow_redirects=True)


@asynccontextmanager
async def open_store(backend: str, client: httpx.AsyncClient) -> AsyncIterator[KeyedStore]:
    """
    Yield a ready KeyedStore for ``backend``.

    Raises:
        ConfigurationError: Unknown backend or missing store settings
    """
    if backend == "memory":
        yield InMemoryStore()
    elif backend == "postgrest":
        yield PostgrestStore(client)
    elif backend == "postgres":
        engine = create_engine()
        session_maker = create_session_maker(engine)
        try:
            async with session_maker() as session:
                yield PostgresStore(session)
        finally:
            await engine.dispose()
    else:
        raise ConfigurationError(
            f"Unknown store backend {backend!r}",
            context={"store_backend": backend, "allowed": ",".join(STORE_BACKENDS)}
        )


def build_pipeline(
    options: HarvestOptions,
    client: httpx.AsyncClient,
    store: KeyedStore,
    context: Optional[RunContext] = None,
) -> RunController:
    context = context or RunContext(call_budget=options.call_budget, sets_skipped=options.skip_sets)
    batcher = UpsertBatcher(store)

    if options.pipeline == PipelineName.CATALOG:
        fetcher = RateLimitedFetcher(client, context)
        return CatalogHarvest(
            walker=TcgcsvWalker(fetcher),
            store=store,
            context=context,
            category_id=options.category_id if options.category_id is not None else 3,
            max_groups=options.sets,
            group_id=options.group_id,
            batcher=batcher,
        )

    token_manager = TokenManager(client, settings.EBAY_APP_ID, settings.EBAY_CLIENT_SECRET)
    walker = EbaySearchWalker(RateLimitedFetcher(client, context, token_manager=token_manager))

    if options.pipeline == PipelineName.GRADED:
        return GradedHarvest(
            walker=walker,
            store=store,
            context=context,
            category_id=options.category_id if options.category_id is not None else 85,
            max_sets=options.sets,
            cards_per_set=options.cards_per_set,
            grades=options.grades,
            batcher=batcher,
        )

    return SearchListHarvest(walker=walker, store=store, context=context, batcher=batcher)


async def run_harvest(
    options: HarvestOptions,
    client: Optional[httpx.AsyncClient] = None,
    store: Optional[KeyedStore] = None,
) -> Tuple[RunSummary, RunController]:
    """
    Build and run one harvest.

    Returns:
        (summary, controller); the controller exposes pipeline-specific
        results such as ``groups_processed`` and ``has_more``
    """
    async with _client(client) as http:
        async with _store(store, options.store_backend, http) as target:
            controller = build_pipeline(options, http, target)
            summary = await controller.run()

            if options.dry_run and isinstance(target, InMemoryStore):
                for table in sorted(target.tables):
                    logger.info(f"[dry run] {table}: {target.count(table)} rows would be written")

            return summary, controller


@asynccontextmanager
async def _client(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with new_http_client() as owned:
        yield owned


@asynccontextmanager
async def _store(
    store: Optional[KeyedStore],
    backend: str,
    client: httpx.AsyncClient,
) -> AsyncIterator[KeyedStore]:
    if store is not None:
        yield store
        return
    async with open_store(backend, client) as opened:
        yield opened
