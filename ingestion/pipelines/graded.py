"""
Graded set-based harvest: for the most valuable cards of each catalog set,
search eBay once per grade tier and keep listings graded exactly at that
tier.

Targets come from the catalog tables (written by the catalog harvest), so
only the searches count against the call budget. Resume offsets count
sets; a set interrupted mid-way is searched again from its first card on
resume, which is safe because listing upserts are idempotent.
"""

import logging
import re
from typing import List, Optional, Sequence

from core.config import settings
from core.exceptions import StoreReadError
from ingestion.context import RunContext
from ingestion.extractors.ebay_extractor import EbaySearchWalker
from ingestion.loaders.base import KeyedStore
from ingestion.loaders.batcher import UpsertBatcher
from ingestion.queries import DEFAULT_GRADE_TIERS, category_profile
from ingestion.runner import RunController
from ingestion.transformers.deduplicator import merge_listings
from ingestion.transformers.normalizer import ListingContext, ListingNormalizer
from models.base import PipelineName
from schemas.normalized import GradedListingRow
from schemas.raw import TargetCard, TargetGroup

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s-]")
_SPACES = re.compile(r"\s+")


def build_graded_query(card: TargetCard, grade: str, suffix: str, grader: str = "PSA") -> str:
    """
    ``PSA 10 Pikachu ex 123 456 pokemon japanese``: grader and grade, the
    first three words of the cleaned card name, the card number with its
    slash turned into a space, then the category keywords.
    """
    clean_name = _SPACES.sub(" ", _NON_WORD.sub(" ", card.name)).strip()
    name_part = " ".join(clean_name.split(" ")[:3])
    number_part = card.card_number.replace("/", " ", 1) if card.card_number else ""
    parts = [grader, grade, name_part, number_part, suffix]
    return " ".join(part for part in parts if part)


class GradedHarvest(RunController):
    """
    Attributes:
        category_id: TCGCSV category whose sets are searched
        max_sets: Sets to process after the skip offset
        cards_per_set: Top cards (by market price) searched per set
        grades: Grade tiers searched for each card, in order
        search_limit: Results requested per search
    """

    pipeline = PipelineName.GRADED

    def __init__(
        self,
        walker: EbaySearchWalker,
        store: KeyedStore,
        context: RunContext,
        category_id: int = 85,
        max_sets: int = 10,
        cards_per_set: int = 5,
        grades: Sequence[str] = DEFAULT_GRADE_TIERS,
        grader: str = "PSA",
        search_limit: int = 5,
        batcher: Optional[UpsertBatcher] = None,
        normalizer: Optional[ListingNormalizer] = None,
        search_delay: float = settings.SEARCH_DELAY,
        card_delay: float = settings.CARD_DELAY,
        sleep=None,
    ):
        super().__init__(context, store, batcher=batcher, sleep=sleep)
        self.walker = walker
        self.category_id = category_id
        self.profile = category_profile(category_id)
        self.max_sets = max_sets
        self.cards_per_set = cards_per_set
        self.grades = tuple(grades)
        self.grader = grader
        self.search_limit = search_limit
        self.normalizer = normalizer or ListingNormalizer()
        self.search_delay = search_delay
        self.card_delay = card_delay

        self.targets: List[TargetGroup] = []

    def describe(self):
        return {
            "category": self.category_id,
            "sets": self.max_sets,
            "cards_per_set": self.cards_per_set,
            "grades": "/".join(self.grades),
        }

    async def setup(self):
        await self.walker.fetcher.authenticate()

        skip = self.context.sets_skipped
        groups = await self.store.select_groups(self.category_id, skip + self.max_sets)
        self.targets = groups[skip:skip + self.max_sets]
        logger.info(
            f"Found {len(groups)} sets for category {self.category_id}; "
            f"processing {len(self.targets)} after skipping {skip}"
        )

    async def harvest(self):
        skip = self.context.sets_skipped
        for offset, group in enumerate(self.targets, start=skip):
            self.check_budget(offset)
            self.context.current_cursor = offset
            await self.harvest_set(offset, group)

    async def harvest_set(self, offset: int, group: TargetGroup):
        try:
            cards = await self.store.select_top_products(group.group_id, self.cards_per_set)
        except StoreReadError as e:
            logger.error(f"[{offset + 1}] {group.display_name}: could not read cards: {e.message}")
            return

        logger.info(f"[{offset + 1}] {group.display_name}: {len(cards)} cards")
        set_written = 0
        for index, card in enumerate(cards):
            self.check_budget(offset)
            set_written += await self.harvest_card(offset, card, group)
            if index < len(cards) - 1:
                await self.pause(self.card_delay)

        logger.info(
            f"[{offset + 1}] {group.display_name}: {set_written} listings written "
            f"(API calls {self.context.budget_label()})"
        )

    async def harvest_card(self, offset: int, card: TargetCard, group: TargetGroup) -> int:
        rows: List[GradedListingRow] = []
        refused_before = self.context.calls_refused
        cut_short = False
        for index, grade in enumerate(self.grades):
            if self.context.has_reached_api_limit():
                cut_short = True
                break

            query = build_graded_query(card, grade, self.profile.query_suffix, self.grader)
            items = await self.walker.search(query, limit=self.search_limit, sort="price")
            self.records_processed += len(items)

            context = ListingContext(
                category=self.profile.label,
                denylist=self.profile.off_topic_keywords,
                allowed_graders=(self.grader,),
                required_grade=grade,
                product_id=card.product_id,
                set_name=card.set_name or group.display_name,
                source_market_price=card.market_price,
                query=query,
                extra_metadata={"card_number": card.card_number},
            )
            for item in items:
                row = self.normalizer.normalize(item, context)
                if row is not None:
                    rows.append(row)

            if index < len(self.grades) - 1:
                await self.pause(self.search_delay)

        # Partial results are kept even when the budget ran out mid-card
        written = await self.write(merge_listings(rows), unit=f"card {card.product_id} {card.name!r}")
        if cut_short or self.context.calls_refused > refused_before:
            self.stop_for_budget(offset)
        return written
