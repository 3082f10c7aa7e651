"""Domain records for comp validation and identification checks."""

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from compscore.exceptions import InvalidCandidateError


class ListingType(str, Enum):
    """Kind of marketplace listing a comp came from."""

    SOLD_LISTING = "sold_listing"
    ACTIVE_LISTING = "active_listing"


class MatchType(str, Enum):
    """How a comp was discovered."""

    UPC_EXACT = "UPC_EXACT"
    ASIN_EXACT = "ASIN_EXACT"
    EBAY_ITEM_ID = "EBAY_ITEM_ID"
    BRAND_MODEL_IMAGE = "BRAND_MODEL_IMAGE"  # keyword match verified by image
    BRAND_MODEL_KEYWORD = "BRAND_MODEL_KEYWORD"
    IMAGE_SIMILARITY = "IMAGE_SIMILARITY"
    GENERIC_KEYWORD = "GENERIC_KEYWORD"


# Prior confidence for each discovery method
MATCH_TYPE_WEIGHTS: Dict[MatchType, float] = {
    MatchType.UPC_EXACT: 0.95,
    MatchType.ASIN_EXACT: 0.90,
    MatchType.EBAY_ITEM_ID: 0.90,
    MatchType.BRAND_MODEL_IMAGE: 0.85,
    MatchType.BRAND_MODEL_KEYWORD: 0.60,
    MatchType.IMAGE_SIMILARITY: 0.55,
    MatchType.GENERIC_KEYWORD: 0.30,
}

DEFAULT_MATCH_TYPE = MatchType.GENERIC_KEYWORD

# Keyword matches carry no verified identity signal
KEYWORD_MATCH_TYPES = frozenset({MatchType.BRAND_MODEL_KEYWORD, MatchType.GENERIC_KEYWORD})

HIGH_CONFIDENCE_MATCH_TYPES = frozenset(
    match_type for match_type, weight in MATCH_TYPE_WEIGHTS.items() if weight >= 0.85
)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a score into [low, high]."""
    return max(low, min(high, value))


def match_type_weight(match_type: Optional[MatchType]) -> float:
    """Base confidence for a match type, falling back to the keyword default."""
    if match_type is None:
        return MATCH_TYPE_WEIGHTS[DEFAULT_MATCH_TYPE]
    return MATCH_TYPE_WEIGHTS.get(match_type, MATCH_TYPE_WEIGHTS[DEFAULT_MATCH_TYPE])


# =============================================================================
# Validation results
# =============================================================================

@dataclass(frozen=True)
class BrandMatch:
    matches: bool
    confidence: float
    item_brand: Optional[str] = None
    comp_brand: Optional[str] = None


@dataclass(frozen=True)
class ModelMatch:
    matches: bool
    confidence: float
    item_model: Optional[str] = None
    comp_model: Optional[str] = None


@dataclass(frozen=True)
class VariantMatch:
    matches: bool
    confidence: float
    details: str = ""


@dataclass(frozen=True)
class ConditionMatch:
    matches: bool
    within_grade: int
    item_condition: Optional[str] = None
    comp_condition: Optional[str] = None


@dataclass(frozen=True)
class RecencyCheck:
    valid: bool
    days_since_sold: Optional[int]
    threshold: int


@dataclass(frozen=True)
class PriceOutlierCheck:
    """
    Outlier verdict for one comp.

    ``z_score`` is None when the population is too small to judge, which
    callers must read as "no opinion" rather than "not an outlier".
    """

    is_outlier: bool
    z_score: Optional[float] = None


@dataclass(frozen=True)
class ValidationCriteria:
    brand_match: BrandMatch
    model_match: ModelMatch
    variant_match: VariantMatch
    condition_match: ConditionMatch
    recency: RecencyCheck
    price_outlier: PriceOutlierCheck


@dataclass(frozen=True)
class ValidationResult:
    """Structured validation verdict attached to a comp."""

    is_valid: bool
    overall_score: float
    criteria: ValidationCriteria
    reasoning: str


@dataclass
class ValidationSummary:
    total: int
    passed: int
    failed: int
    criteria_breakdown: Dict[str, int] = field(default_factory=dict)


# =============================================================================
# Comps and item context
# =============================================================================

@dataclass(frozen=True)
class CandidateRecord:
    """
    A comparable marketplace listing.

    Records are never mutated in place: each pipeline stage returns a new
    record through ``with_updates``.
    """

    id: str
    title: str
    source: str = "ebay"
    type: ListingType = ListingType.SOLD_LISTING
    price: Optional[float] = None
    condition: Optional[str] = None
    sold_date: Optional[str] = None
    image_url: Optional[str] = None
    url: Optional[str] = None
    currency: str = "USD"
    extracted_data: Dict[str, Any] = field(default_factory=dict)
    match_type: MatchType = DEFAULT_MATCH_TYPE
    base_confidence: Optional[float] = None
    relevance_score: Optional[float] = None
    validation: Optional[ValidationResult] = None

    def __post_init__(self):
        if self.base_confidence is None:
            object.__setattr__(self, "base_confidence", match_type_weight(self.match_type))
        if self.relevance_score is None:
            object.__setattr__(self, "relevance_score", self.base_confidence)
        object.__setattr__(self, "relevance_score", clamp(float(self.relevance_score)))

    @property
    def valid_price(self) -> Optional[float]:
        """Price usable for statistics, or None for missing, NaN or non-positive prices."""
        if self.price is None:
            return None
        try:
            price = float(self.price)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(price) or price <= 0:
            return None
        return price

    @property
    def is_sold(self) -> bool:
        return self.type == ListingType.SOLD_LISTING

    def with_updates(self, **changes) -> "CandidateRecord":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def with_extracted(self, **data) -> "CandidateRecord":
        """Return a copy with keys merged into extracted_data."""
        merged = dict(self.extracted_data)
        merged.update(data)
        return replace(self, extracted_data=merged)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateRecord":
        """
        Build a record from an upstream payload.

        Accepts both snake_case and the camelCase keys emitted by the
        discovery stage (soldDate, imageUrl, extractedData, matchType, ...).

        Raises:
            InvalidCandidateError: If id or title is missing, or the listing type is unknown
        """
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        comp_id = pick("id", "sourceId", "source_id")
        title = pick("title")
        if comp_id is None or title is None:
            raise InvalidCandidateError(f"Comp payload missing id or title: {data!r}")

        sold_date = pick("soldDate", "sold_date")
        if isinstance(sold_date, (datetime, date)):
            sold_date = sold_date.isoformat()

        listing_type = pick("type", default=ListingType.SOLD_LISTING.value)
        try:
            listing_type = ListingType(listing_type)
        except ValueError as e:
            raise InvalidCandidateError(f"Unknown listing type for comp {comp_id}: {listing_type!r}") from e

        match_type_value = pick("matchType", "match_type")
        try:
            match_type = MatchType(match_type_value) if match_type_value else DEFAULT_MATCH_TYPE
        except ValueError:
            match_type = DEFAULT_MATCH_TYPE

        return cls(
            id=str(comp_id),
            title=str(title),
            source=pick("source", default="ebay"),
            type=listing_type,
            price=pick("price"),
            condition=pick("condition"),
            sold_date=sold_date,
            image_url=pick("imageUrl", "image_url"),
            url=pick("url"),
            currency=pick("currency", default="USD"),
            extracted_data=dict(pick("extractedData", "extracted_data", default={})),
            match_type=match_type,
            base_confidence=pick("baseConfidence", "base_confidence"),
            relevance_score=pick("relevanceScore", "relevance_score"),
        )


@dataclass(frozen=True)
class VariantContext:
    color: Optional[str] = None
    size: Optional[str] = None
    edition: Optional[str] = None
    material: Optional[str] = None
    storage: Optional[str] = None
    grade: Optional[str] = None

    def values(self) -> List[str]:
        return [v for v in (self.color, self.size, self.edition, self.material, self.storage, self.grade) if v]


@dataclass(frozen=True)
class ProductIdentification:
    """Output of the upstream identification stage."""

    brand: Optional[str] = None
    model: Optional[str] = None
    category: List[str] = field(default_factory=list)
    expected_price: Optional[float] = None
    confidence: Optional[float] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ItemContext:
    """Description of the item being priced. Every field is optional."""

    brand: Optional[str] = None
    model: Optional[str] = None
    condition: Optional[str] = None
    variant: VariantContext = field(default_factory=VariantContext)
    category: Optional[str] = None
    title: Optional[str] = None

    def merged_with(self, product_id: Optional[ProductIdentification]) -> "ItemContext":
        """Fill brand/model gaps from product identification."""
        if product_id is None:
            return self
        return replace(
            self,
            brand=self.brand or product_id.brand,
            model=self.model or product_id.model,
        )


# =============================================================================
# Identification re-validation
# =============================================================================

class IssueType(str, Enum):
    PRICE_MISMATCH = "price_mismatch"
    NO_MATCHING_COMPS = "no_matching_comps"
    LOW_COMP_QUALITY = "low_comp_quality"
    ATTRIBUTE_INCONSISTENCY = "attribute_inconsistency"
    VISUAL_MISMATCH = "visual_mismatch"
    CATEGORY_MISMATCH = "category_mismatch"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class HintType(str, Enum):
    USE_COMP_SUGGESTION = "use_comp_suggestion"
    SEARCH_DIFFERENT = "search_different"
    EXCLUDE_BRAND = "exclude_brand"
    EXCLUDE_MODEL = "exclude_model"
    TRY_CATEGORY = "try_category"


@dataclass(frozen=True)
class IdentificationIssue:
    type: IssueType
    severity: Severity
    message: str
    evidence: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReidentificationHint:
    type: HintType
    value: str
    reason: str
    confidence: float


@dataclass(frozen=True)
class ValidationStats:
    total_checks: int
    passed_checks: int
    warning_count: int
    error_count: int


@dataclass(frozen=True)
class ValidationCheckResult:
    """Identification-level verdict handed back to orchestration."""

    is_valid: bool
    confidence: float
    issues: List[IdentificationIssue]
    should_reidentify: bool
    reidentification_hints: List[ReidentificationHint]
    stats: ValidationStats
