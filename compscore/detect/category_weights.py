"""
Category-aware weighting for comp validation.

Different product categories care about different attributes: a watch is
identified by its reference number, a trading card by its grade, a pair of
sneakers by colorway and size. The table below holds per-category weights for
the validation criteria, the relative importance of variant attributes and
the boosts applied during heuristic relevance scoring.
"""

import logging
from dataclasses import dataclass, fields
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from compscore.ai.text_processor import normalize_string

logger = logging.getLogger(__name__)


class CategoryId(str, Enum):
    SNEAKERS = "sneakers"
    LUXURY_HANDBAGS = "luxury_handbags"
    WATCHES = "watches"
    ELECTRONICS_PHONES = "electronics_phones"
    ELECTRONICS_GAMING = "electronics_gaming"
    TRADING_CARDS = "trading_cards"
    VINTAGE_DENIM = "vintage_denim"
    DESIGNER_CLOTHING = "designer_clothing"
    AUDIO_EQUIPMENT = "audio_equipment"
    GENERAL = "general"


@dataclass(frozen=True)
class ValidationWeights:
    brand: float
    model: float
    variant: float
    condition: float
    recency: float
    price_outlier: float

    @property
    def total(self) -> float:
        return sum(getattr(self, f.name) for f in fields(self))


@dataclass(frozen=True)
class VariantImportance:
    color: float = 0.0
    size: float = 0.0
    edition: float = 0.0
    material: float = 0.0
    colorway: float = 0.0
    year: float = 0.0
    storage: float = 0.0
    grade: float = 0.0
    ref_number: float = 0.0


@dataclass(frozen=True)
class MatchBoosts:
    brand_match: float
    model_match: float
    condition_match: float
    variant_match: float


@dataclass(frozen=True)
class CategoryAttributeWeights:
    category_id: CategoryId
    display_name: str
    validation_weights: ValidationWeights
    variant_importance: VariantImportance
    match_boosts: MatchBoosts


CATEGORY_WEIGHTS: Dict[CategoryId, CategoryAttributeWeights] = {
    CategoryId.SNEAKERS: CategoryAttributeWeights(
        category_id=CategoryId.SNEAKERS,
        display_name="Sneakers",
        validation_weights=ValidationWeights(0.15, 0.30, 0.30, 0.10, 0.10, 0.05),
        variant_importance=VariantImportance(colorway=0.45, size=0.30, edition=0.15, year=0.10),
        match_boosts=MatchBoosts(0.10, 0.20, 0.10, 0.20),
    ),
    CategoryId.LUXURY_HANDBAGS: CategoryAttributeWeights(
        category_id=CategoryId.LUXURY_HANDBAGS,
        display_name="Luxury Handbags",
        validation_weights=ValidationWeights(0.25, 0.25, 0.20, 0.20, 0.05, 0.05),
        variant_importance=VariantImportance(material=0.40, color=0.30, size=0.20, edition=0.10),
        match_boosts=MatchBoosts(0.15, 0.15, 0.20, 0.15),
    ),
    CategoryId.WATCHES: CategoryAttributeWeights(
        category_id=CategoryId.WATCHES,
        display_name="Watches",
        validation_weights=ValidationWeights(0.20, 0.40, 0.10, 0.20, 0.05, 0.05),
        variant_importance=VariantImportance(ref_number=0.60, color=0.15, material=0.15, edition=0.10),
        match_boosts=MatchBoosts(0.10, 0.25, 0.15, 0.10),
    ),
    CategoryId.ELECTRONICS_PHONES: CategoryAttributeWeights(
        category_id=CategoryId.ELECTRONICS_PHONES,
        display_name="Phones",
        validation_weights=ValidationWeights(0.15, 0.30, 0.30, 0.15, 0.05, 0.05),
        variant_importance=VariantImportance(storage=0.55, color=0.20, edition=0.15, size=0.10),
        match_boosts=MatchBoosts(0.10, 0.20, 0.15, 0.20),
    ),
    CategoryId.ELECTRONICS_GAMING: CategoryAttributeWeights(
        category_id=CategoryId.ELECTRONICS_GAMING,
        display_name="Gaming Consoles",
        validation_weights=ValidationWeights(0.15, 0.35, 0.25, 0.15, 0.05, 0.05),
        variant_importance=VariantImportance(edition=0.45, storage=0.30, color=0.15, size=0.10),
        match_boosts=MatchBoosts(0.10, 0.25, 0.10, 0.20),
    ),
    CategoryId.TRADING_CARDS: CategoryAttributeWeights(
        category_id=CategoryId.TRADING_CARDS,
        display_name="Trading Cards",
        validation_weights=ValidationWeights(0.10, 0.20, 0.15, 0.45, 0.05, 0.05),
        variant_importance=VariantImportance(grade=0.70, edition=0.20, color=0.05, size=0.05),
        match_boosts=MatchBoosts(0.05, 0.15, 0.30, 0.15),
    ),
    CategoryId.VINTAGE_DENIM: CategoryAttributeWeights(
        category_id=CategoryId.VINTAGE_DENIM,
        display_name="Vintage Denim",
        validation_weights=ValidationWeights(0.25, 0.25, 0.30, 0.10, 0.05, 0.05),
        variant_importance=VariantImportance(edition=0.40, material=0.25, size=0.20, color=0.10, year=0.05),
        match_boosts=MatchBoosts(0.15, 0.15, 0.10, 0.25),
    ),
    CategoryId.DESIGNER_CLOTHING: CategoryAttributeWeights(
        category_id=CategoryId.DESIGNER_CLOTHING,
        display_name="Designer Clothing",
        validation_weights=ValidationWeights(0.30, 0.25, 0.20, 0.15, 0.05, 0.05),
        variant_importance=VariantImportance(size=0.35, color=0.25, edition=0.25, material=0.10, year=0.05),
        match_boosts=MatchBoosts(0.20, 0.15, 0.15, 0.15),
    ),
    CategoryId.AUDIO_EQUIPMENT: CategoryAttributeWeights(
        category_id=CategoryId.AUDIO_EQUIPMENT,
        display_name="Audio Equipment",
        validation_weights=ValidationWeights(0.20, 0.35, 0.15, 0.20, 0.05, 0.05),
        variant_importance=VariantImportance(color=0.30, edition=0.30, material=0.20, size=0.15, year=0.05),
        match_boosts=MatchBoosts(0.15, 0.20, 0.20, 0.10),
    ),
    CategoryId.GENERAL: CategoryAttributeWeights(
        category_id=CategoryId.GENERAL,
        display_name="General",
        validation_weights=ValidationWeights(0.25, 0.30, 0.15, 0.15, 0.10, 0.05),
        variant_importance=VariantImportance(color=0.25, size=0.25, edition=0.20, material=0.15, year=0.15),
        match_boosts=MatchBoosts(0.15, 0.15, 0.10, 0.10),
    ),
}

# Table order matters: ties in keyword scoring keep the earlier category
CATEGORY_KEYWORDS: Dict[CategoryId, List[str]] = {
    CategoryId.LUXURY_HANDBAGS: [
        "handbag", "purse", "tote", "clutch", "shoulder bag", "crossbody",
        "louis vuitton", "lv", "chanel", "hermes", "gucci", "prada", "celine",
        "fendi", "dior", "balenciaga", "bottega veneta", "ysl", "saint laurent",
        "coach", "michael kors", "kate spade", "marc jacobs",
    ],
    CategoryId.SNEAKERS: [
        "sneakers", "shoes", "kicks", "trainers", "runners", "basketball shoes",
        "nike", "air jordan", "jordan", "adidas", "yeezy", "new balance", "asics",
        "puma", "reebok", "converse", "vans", "air max", "dunk", "force",
    ],
    CategoryId.WATCHES: [
        "watch", "timepiece", "wristwatch", "chronograph", "automatic", "quartz",
        "rolex", "omega", "seiko", "casio", "tag heuer", "breitling", "cartier",
        "patek philippe", "audemars piguet", "iwc", "tissot", "citizen", "timex",
    ],
    CategoryId.ELECTRONICS_PHONES: [
        "phone", "smartphone", "iphone", "samsung", "galaxy", "pixel", "android",
        "cell phone", "mobile", "oneplus", "xiaomi", "huawei",
    ],
    CategoryId.ELECTRONICS_GAMING: [
        "console", "gaming", "playstation", "ps5", "ps4", "xbox", "nintendo",
        "switch", "game console", "gaming system", "series x", "series s", "wii",
        "handheld",
    ],
    CategoryId.VINTAGE_DENIM: [
        "jeans", "denim", "vintage jeans", "levis", "levi's", "lee", "wrangler",
        "501", "505", "selvedge", "big e", "redline", "vintage denim",
    ],
    CategoryId.DESIGNER_CLOTHING: [
        "designer", "luxury", "gucci", "prada", "versace", "balenciaga",
        "off-white", "supreme", "bape", "burberry", "fendi", "givenchy", "ysl",
        "dior", "valentino",
    ],
    CategoryId.TRADING_CARDS: [
        "card", "trading card", "pokemon", "baseball", "basketball", "football",
        "magic", "mtg", "yugioh", "sports card", "psa", "bgs", "graded",
    ],
    CategoryId.AUDIO_EQUIPMENT: [
        "speaker", "headphones", "amplifier", "receiver", "turntable",
        "record player", "bose", "sonos", "jbl", "sony", "sennheiser",
        "audio technica", "pioneer", "vintage audio", "stereo", "subwoofer",
        "soundbar",
    ],
}

# Shared keywords ("gucci", "prada", "basketball") belong to the last category listing them
KEYWORD_CATEGORY_MAP: Dict[str, CategoryId] = {
    keyword: category
    for category, keywords in CATEGORY_KEYWORDS.items()
    for keyword in keywords
}

CATEGORY_ALIASES: Dict[str, CategoryId] = {
    "phones": CategoryId.ELECTRONICS_PHONES,
    "phone": CategoryId.ELECTRONICS_PHONES,
    "smartphones": CategoryId.ELECTRONICS_PHONES,
    "gaming": CategoryId.ELECTRONICS_GAMING,
    "consoles": CategoryId.ELECTRONICS_GAMING,
    "video games": CategoryId.ELECTRONICS_GAMING,
    "handbags": CategoryId.LUXURY_HANDBAGS,
    "bags": CategoryId.LUXURY_HANDBAGS,
    "shoes": CategoryId.SNEAKERS,
    "watch": CategoryId.WATCHES,
    "cards": CategoryId.TRADING_CARDS,
    "denim": CategoryId.VINTAGE_DENIM,
    "jeans": CategoryId.VINTAGE_DENIM,
    "clothing": CategoryId.DESIGNER_CLOTHING,
    "apparel": CategoryId.DESIGNER_CLOTHING,
    "audio": CategoryId.AUDIO_EQUIPMENT,
}


def _as_category_id(category) -> CategoryId:
    if isinstance(category, CategoryId):
        return category
    try:
        return CategoryId(str(category))
    except ValueError:
        return CategoryId.GENERAL


def get_category_attribute_weights(category) -> CategoryAttributeWeights:
    """Weights for a category id; unknown ids fall back to general."""
    return CATEGORY_WEIGHTS[_as_category_id(category)]


def get_validation_weights(category) -> ValidationWeights:
    return get_category_attribute_weights(category).validation_weights


def get_variant_importance(category) -> VariantImportance:
    return get_category_attribute_weights(category).variant_importance


def get_match_boosts(category) -> MatchBoosts:
    return get_category_attribute_weights(category).match_boosts


def has_specific_weights(category) -> bool:
    """True when the category resolves to something other than general."""
    return _as_category_id(category) != CategoryId.GENERAL


# =============================================================================
# Category resolution
# =============================================================================

def _keyword_in(keyword: str, text: str) -> bool:
    # Short keywords ("lv", "ps5", "501") must stand alone to avoid noise
    if len(keyword) <= 3:
        return keyword in text.split()
    return keyword in text


def detect_category_from_text(text: Optional[str]) -> Optional[CategoryId]:
    """
    Score each category by keyword hits in free text.

    Keywords longer than five characters weigh 2, shorter ones 1. The highest
    score wins; ties keep the first category in table order.

    Args:
        text: Title or description

    Returns:
        Best matching category, or None when nothing matched
    """
    normalized = normalize_string(text)
    if not normalized:
        return None

    scores: Dict[CategoryId, int] = {}
    for keyword, category in KEYWORD_CATEGORY_MAP.items():
        if _keyword_in(keyword, normalized):
            scores[category] = scores.get(category, 0) + (2 if len(keyword) > 5 else 1)

    best: Optional[CategoryId] = None
    best_score = 0
    for category in CATEGORY_KEYWORDS:
        if scores.get(category, 0) > best_score:
            best, best_score = category, scores[category]
    return best


def match_category_id(value: Optional[str]) -> Optional[CategoryId]:
    """Match an explicit category string against known ids and aliases."""
    normalized = normalize_string(value)
    if not normalized:
        return None
    key = normalized.replace("-", "_").replace(" ", "_")
    try:
        return CategoryId(key)
    except ValueError:
        pass
    return CATEGORY_ALIASES.get(normalized) or CATEGORY_ALIASES.get(key.replace("_", " "))


def _from_explicit(explicit: Optional[str], identified: Sequence[str], title: Optional[str]) -> Optional[CategoryId]:
    return match_category_id(explicit)


def _from_identification(explicit: Optional[str], identified: Sequence[str], title: Optional[str]) -> Optional[CategoryId]:
    for entry in identified or []:
        match = match_category_id(entry) or detect_category_from_text(entry)
        if match is not None:
            return match
    return None


def _from_title(explicit: Optional[str], identified: Sequence[str], title: Optional[str]) -> Optional[CategoryId]:
    return detect_category_from_text(title)


CategoryResolver = Callable[[Optional[str], Sequence[str], Optional[str]], Optional[CategoryId]]

# First non-None wins
CATEGORY_RESOLVERS: List[CategoryResolver] = [
    _from_explicit,
    _from_identification,
    _from_title,
]


def resolve_category(
    explicit: Optional[str] = None,
    identified: Optional[Iterable[str]] = None,
    title: Optional[str] = None,
    resolvers: Optional[List[CategoryResolver]] = None,
) -> CategoryId:
    """
    Resolve the category used to pick weights.

    Args:
        explicit: Category field on the item, if any
        identified: Category list from product identification
        title: Item title for keyword detection

    Returns:
        Resolved category; general when no resolver produced one
    """
    identified_list = list(identified or [])
    for resolver in resolvers or CATEGORY_RESOLVERS:
        category = resolver(explicit, identified_list, title)
        if category is not None:
            logger.debug(f"Resolved category {category.value} via {resolver.__name__}")
            return category
    return CategoryId.GENERAL
