"""
Catalog categories and eBay search definitions
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ingestion.transformers.extraction import OFF_TOPIC_KEYWORDS


@dataclass(frozen=True)
class CategoryProfile:
    """
    How a TCGCSV category is searched on eBay.

    Attributes:
        category_id: TCGCSV category id
        name: Display name
        label: Category stored on listing rows
        query_suffix: Keywords appended to graded searches
    """
    category_id: int
    name: str
    label: str
    query_suffix: str

    @property
    def off_topic_keywords(self) -> Tuple[str, ...]:
        return OFF_TOPIC_KEYWORDS.get(self.label, ())


CATEGORIES: Dict[int, CategoryProfile] = {
    3: CategoryProfile(3, "Pokemon", "pokemon", "pokemon"),
    85: CategoryProfile(85, "Pokemon Japan", "pokemon", "pokemon japanese"),
    68: CategoryProfile(68, "One Piece Card Game", "onepiece", "one piece"),
    2: CategoryProfile(2, "YuGiOh", "yugioh", "yugioh"),
}


def category_profile(category_id: int) -> CategoryProfile:
    profile = CATEGORIES.get(category_id)
    if profile is None:
        return CategoryProfile(category_id, f"Category {category_id}", str(category_id), "")
    return profile


DEFAULT_GRADE_TIERS: Tuple[str, ...] = ("10", "9", "8")


@dataclass(frozen=True)
class SearchQuery:
    """One entry of the search-list harvest"""
    query: str
    category: str
    limit: int = 20
    sort: Optional[str] = "newlyListed"
    min_price: Optional[float] = None


DEFAULT_SEARCH_QUERIES: Tuple[SearchQuery, ...] = (
    # Pokemon
    SearchQuery("PSA 10 Pokemon", "pokemon", 50),
    SearchQuery("PSA 9 Pokemon", "pokemon", 30),
    SearchQuery("BGS 9.5 Pokemon", "pokemon", 20),
    SearchQuery("CGC 10 Pokemon", "pokemon", 20),
    SearchQuery("PSA 10 Charizard", "pokemon", 30),
    SearchQuery("PSA 10 Pikachu", "pokemon", 20),
    # One Piece
    SearchQuery("PSA 10 One Piece TCG", "onepiece", 50),
    SearchQuery("PSA 9 One Piece TCG", "onepiece", 30),
    SearchQuery("BGS 9.5 One Piece", "onepiece", 20),
    SearchQuery("PSA 10 Luffy", "onepiece", 30),
    # Soccer (Topps, Panini)
    SearchQuery("PSA 10 Topps Chrome soccer 2025", "soccer", 30, min_price=10),
    SearchQuery("PSA 10 Topps Finest soccer 2025", "soccer", 20, min_price=15),
    SearchQuery("PSA 10 Topps Merlin soccer", "soccer", 20, min_price=10),
    SearchQuery("PSA 10 Panini Prizm soccer", "soccer", 20, min_price=10),
    SearchQuery("BGS 9.5 Topps Chrome soccer", "soccer", 20, min_price=15),
)
