"""
Harvest pipeline components for trading-card catalog and listing data.

Modules:
    context: Per-run call budget, counters and resume cursor
    retry: Backoff policies shared by the fetcher and the upsert batcher
    fetcher: Budgeted, rate-limited HTTP fetcher with OAuth token reuse
    base: Paginated source walker base class
    runner: Run controller (budget stops, resume hints, run summaries)
    factory: Builds stores, fetchers and pipelines from settings
    cli: ``card-harvest`` command-line entry point
    scheduler: APScheduler job for periodic catalog refreshes
    queries: Category profiles, grade tiers and the fixed search list

Subpackages:
    extractors: TCGCSV and eBay Browse walkers
    transformers: Field extraction, normalization and deduplication
    loaders: Keyed stores (PostgREST, Postgres, in-memory) and the upsert batcher
    pipelines: Catalog, graded and search-list harvests

Architecture:
    Every external call goes through one RateLimitedFetcher bound to a
    RunContext. Walkers turn responses into validated raw records, the
    normalizers turn those into canonical rows, and the UpsertBatcher
    writes them by natural key. Pipelines check the budget at every unit
    boundary and stop with a resume offset instead of failing.

Usage:
    from ingestion.factory import HarvestOptions, run_harvest
    from models.base import PipelineName

    summary, _ = await run_harvest(
        HarvestOptions(pipeline=PipelineName.CATALOG, category_id=3, sets=5)
    )
    print(summary.status, summary.resume_hint)

Error Handling:
    Retryable errors (429, transport failures) are retried with backoff
    inside the fetcher; exhausted units yield empty results and the run
    continues. Budget exhaustion ends the run with a resume offset.
    Authentication and configuration errors fail the run.
"""

__all__ = [
    "RunContext",
    "RateLimitedFetcher",
    "TokenManager",
    "SourceWalker",
    "RunController",
    "HarvestOptions",
    "run_harvest",
    "HarvestScheduler",
]
