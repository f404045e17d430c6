"""
Command-line entry point: ``card-harvest <catalog|graded|search> [flags]``

Exit codes: 0 when the run completed or stopped cleanly on its call
budget, 1 when it failed (missing credentials, store misconfigured, ...).
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from core.config import settings
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from ingestion.factory import STORE_BACKENDS, HarvestOptions, run_harvest
from ingestion.queries import CATEGORIES, DEFAULT_GRADE_TIERS
from models.base import PipelineName

logger = logging.getLogger(__name__)


def _grades(value: str):
    tiers = tuple(part.strip() for part in value.split(",") if part.strip())
    if not tiers:
        raise argparse.ArgumentTypeError("at least one grade tier is required")
    return tiers


def build_parser() -> argparse.ArgumentParser:
    categories = ", ".join(f"{c.category_id}={c.name}" for c in CATEGORIES.values())
    parser = argparse.ArgumentParser(
        prog="card-harvest",
        description="Budgeted, resumable harvester for TCGCSV catalog data and eBay graded listings.",
    )
    parser.add_argument(
        "pipeline",
        choices=[p.value for p in PipelineName],
        help="catalog: TCGCSV groups/products/prices; graded: eBay searches per catalog card "
             "and grade tier; search: fixed eBay search list",
    )
    parser.add_argument("--category-id", type=int, default=None, help=f"TCGCSV category ({categories}).")
    parser.add_argument("--sets", type=int, default=10, help="Max groups/sets to process.")
    parser.add_argument("--cards-per-set", type=int, default=5, help="Cards searched per set (graded).")
    parser.add_argument("--skip-sets", type=int, default=0, help="Resume offset: groups/sets/queries to skip.")
    parser.add_argument(
        "--max-api-calls",
        type=int,
        default=None,
        help=f"External call budget (default {settings.MAX_API_CALLS}).",
    )
    parser.add_argument("--group-id", type=int, default=None, help="Sync a single group (catalog).")
    parser.add_argument(
        "--grades",
        type=_grades,
        default=DEFAULT_GRADE_TIERS,
        help="Comma-separated grade tiers (graded), e.g. 10,9,8.",
    )
    parser.add_argument("--store", choices=STORE_BACKENDS, default=None, help="Store backend override.")
    parser.add_argument("--dry-run", action="store_true", help="Write to an in-memory store only.")
    parser.add_argument("--log-level", default=None, help="Logging level (default from LOG_LEVEL).")
    return parser


def options_from_args(args: argparse.Namespace) -> HarvestOptions:
    return HarvestOptions(
        pipeline=PipelineName(args.pipeline),
        category_id=args.category_id,
        sets=args.sets,
        cards_per_set=args.cards_per_set,
        skip_sets=args.skip_sets,
        max_api_calls=args.max_api_calls,
        group_id=args.group_id,
        grades=args.grades,
        store=args.store,
        dry_run=args.dry_run,
    )


async def run_cli(options: HarvestOptions) -> int:
    try:
        summary, _ = await run_harvest(options)
    except ConfigurationError as e:
        logger.error(f"Cannot start harvest: {e.message}")
        return 1
    return 0 if summary.succeeded else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.sets < 1 or args.cards_per_set < 1 or args.skip_sets < 0:
        parser.error("--sets and --cards-per-set must be positive, --skip-sets non-negative")
    if args.max_api_calls is not None and args.max_api_calls < 1:
        parser.error("--max-api-calls must be positive")

    setup_logging(args.log_level)
    return asyncio.run(run_cli(options_from_args(args)))


if __name__ == "__main__":
    sys.exit(main())
