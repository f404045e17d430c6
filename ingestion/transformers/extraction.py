"""
Field-extraction rule tables for free-text card titles and source URLs.

Every rule list is ordered and evaluated first-match-wins. The tables are
plain data so tests can enumerate them; the functions below only walk
them.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Pattern, Tuple, Union
import re

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ExtractionRule:
    """One (pattern, capture group) pair in an ordered rule table"""
    name: str
    pattern: Pattern
    group: int = 1
    template: str = "{}"

    def apply(self, text: str) -> Optional[str]:
        match = self.pattern.search(text)
        if match is None:
            return None
        return self.template.format(match.group(self.group))


@dataclass(frozen=True)
class GraderRule:
    grader: str
    pattern: Pattern


@dataclass(frozen=True)
class RewriteRule:
    pattern: Pattern
    replacement: str


def _grader(token: str) -> GraderRule:
    # Whole grades or one decimal place: "PSA 10", "BGS 9.5", "CGC10"
    return GraderRule(token, re.compile(rf"\b({token})\s*(\d{{1,2}}(?:\.\d)?)\b", re.IGNORECASE))


# ============================================================================
# Rule tables
# ============================================================================

GRADER_TOKENS: Tuple[str, ...] = ("PSA", "BGS", "CGC", "SGC", "TAG", "ACE")

GRADER_RULES: Tuple[GraderRule, ...] = tuple(_grader(token) for token in GRADER_TOKENS)

CARD_NUMBER_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule("fraction", re.compile(r"\b(\d{1,3}/\d{1,3})\b")),
    ExtractionRule("hash", re.compile(r"#(\d+)")),
    ExtractionRule("scarlet_violet_promo", re.compile(r"\b(SV\d+)\b", re.IGNORECASE)),
    ExtractionRule("set_code", re.compile(r"\b([A-Z]{2,3}\d{2}-\d{3})\b")),
    # Grader tokens glued to the grade ("PSA10") are not card numbers
    ExtractionRule(
        "alphanumeric",
        re.compile(rf"\b(?!(?:{'|'.join(GRADER_TOKENS)})\d)([A-Z]{{1,3}}\d+)\b"),
    ),
)

YEAR_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule("year", re.compile(r"\b(19\d{2}|20\d{2})\b")),
)

SET_NAME_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule(
        "pokemon",
        re.compile(
            r"\b(Surging Sparks|Prismatic Evolutions|Paldean Fates|Obsidian Flames|"
            r"Scarlet & Violet|Crown Zenith|Silver Tempest|Lost Origin)\b",
            re.IGNORECASE,
        ),
    ),
    ExtractionRule(
        "one_piece",
        re.compile(
            r"\b(OP-\d+|Romance Dawn|Paramount War|Pillars of Strength|Awakening of the New Era)\b",
            re.IGNORECASE,
        ),
    ),
    ExtractionRule(
        "topps",
        re.compile(r"\b(Chrome|Finest|Merlin|Match Attax|Bowman|Heritage|Stadium Club)\b", re.IGNORECASE),
        template="Topps {}",
    ),
)

IMAGE_UPGRADE_RULES = {
    "tcgcsv": (
        RewriteRule(re.compile(r"_\d+w\.jpg$"), "_in_1000x1000.jpg"),
    ),
    "ebay": (
        RewriteRule(re.compile(r"s-l\d+"), "s-l1600"),
        RewriteRule(re.compile(r"\$_\d+"), "$_57"),
    ),
}

# Bulk and sealed-product listings, not single cards
BULK_LISTING_DENYLIST: Tuple[str, ...] = (
    "mystery", "pack", "box", "lot", "bundle", "set of", "collection",
    "bulk", "repack", "break", "pick your", "you pick", "choose",
    "complete set", "hobby", "blaster", "hanger", "cello",
    "guaranteed", "random", "case", "sealed", "sticker", "album",
)

# Sealed catalog products
CATALOG_PRODUCT_DENYLIST: Tuple[str, ...] = ("booster", "box")

OFF_TOPIC_KEYWORDS = {
    "pokemon": ("YUGIOH", "YU-GI-OH", "MAGIC", "MTG", "DIGIMON", "DRAGON BALL", "ONE PIECE"),
    "onepiece": ("POKEMON", "YUGIOH", "YU-GI-OH", "MAGIC", "MTG", "DIGIMON", "DRAGON BALL"),
    "yugioh": ("POKEMON", "MAGIC", "MTG", "DIGIMON", "DRAGON BALL", "ONE PIECE"),
    # American football
    "soccer": ("NFL", "FOOTBALL", "QUARTERBACK", "TOUCHDOWN", "SUPER BOWL"),
}


# ============================================================================
# Extractors
# ============================================================================

def first_match(rules: Iterable[ExtractionRule], text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    for rule in rules:
        value = rule.apply(text)
        if value is not None:
            return value
    return None


def extract_grading(title: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """(grader, grade) from the first grader rule that matches, else (None, None)"""
    if not title:
        return None, None
    for rule in GRADER_RULES:
        match = rule.pattern.search(title)
        if match:
            return rule.grader, match.group(2)
    return None, None


def extract_card_number(title: Optional[str]) -> Optional[str]:
    return first_match(CARD_NUMBER_RULES, title)


def extract_year(title: Optional[str]) -> Optional[str]:
    return first_match(YEAR_RULES, title)


def extract_set_name(title: Optional[str]) -> Optional[str]:
    return first_match(SET_NAME_RULES, title)


def upgrade_image_url(url: Optional[str], source: str) -> Optional[str]:
    """Rewrite thumbnail size tokens to full-size ones. None stays None."""
    if not url:
        return None
    for rule in IMAGE_UPGRADE_RULES.get(source, ()):
        url = rule.pattern.sub(rule.replacement, url, count=1)
    return url


def find_denied(text: Optional[str], denylist: Iterable[str]) -> Optional[str]:
    """First denylisted substring found in ``text`` (case-insensitive)"""
    if not text:
        return None
    lowered = text.lower()
    for word in denylist:
        if word.lower() in lowered:
            return word
    return None


# ============================================================================
# Price units
# ============================================================================

def to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def to_cents(value: Optional[Number]) -> Optional[int]:
    """
    Decimal currency units to integer minor units, rounding half up
    (12.345 -> 1235).
    """
    amount = to_decimal(value)
    if amount is None:
        return None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_dollars(value: Optional[Number]) -> Optional[float]:
    """Decimal dollars rounded half up to the cent. Zero is a real price."""
    amount = to_decimal(value)
    if amount is None:
        return None
    return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))
