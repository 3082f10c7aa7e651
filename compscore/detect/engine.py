"""Comp-set analysis engine.

Chains the stages that turn a raw comp set into a filtered, ranked set:

1. Title attribute extraction (fills extracted_data gaps)
2. Heuristic relevance scoring from match type plus category boosts
3. Optional Keepa enrichment of Amazon comps
4. Image cross-validation of keyword-sourced comps
5. Structured validation against the item
6. Scarcity-aware filtering and ranking

Every stage returns new records; input lists are never modified.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from compscore.ai.attribute_extractor import AttributeExtractor, attribute_extractor
from compscore.ai.image_comparison import ImageComparer, ImageComparisonResult, ImageComparisonService
from compscore.ai.text_processor import normalize_string
from compscore.config import DEFAULT_VALIDATION_CONFIG, ValidationConfig, settings
from compscore.detect.category_weights import CategoryId, get_match_boosts, resolve_category
from compscore.detect.comp_validator import get_validation_summary, validate_all_comps
from compscore.detect.conditions import normalize_condition
from compscore.logging_config import get_logger
from compscore.metrics import comps_filtered_total, image_comparisons_total
from compscore.models import (
    HIGH_CONFIDENCE_MATCH_TYPES,
    KEYWORD_MATCH_TYPES,
    CandidateRecord,
    ItemContext,
    MatchType,
    ProductIdentification,
    ValidationSummary,
    clamp,
    match_type_weight,
)

logger = logging.getLogger(__name__)

KeepaLookup = Callable[[List[str]], Awaitable[Dict[str, Dict[str, Any]]]]

HIGH_CONFIDENCE_BOOST_FACTOR = 0.5


# =============================================================================
# Heuristic relevance
# =============================================================================

def _variant_hit(item: ItemContext, comp: CandidateRecord, title: str) -> bool:
    extracted = {normalize_string(str(v)) for v in comp.extracted_data.values() if isinstance(v, str)}
    for value in item.variant.values():
        norm = normalize_string(value)
        if norm and (norm in title or norm in extracted):
            return True
    return False


def score_comp_relevance(comps: Sequence[CandidateRecord],
                         item: ItemContext,
                         category: Optional[CategoryId] = None,
                         config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> List[CandidateRecord]:
    """
    Assign each comp a starting relevance from its match type plus textual boosts.

    Boosts come from the category's match boosts and are halved for
    match types that already carry high confidence.

    Args:
        comps: Comps to score
        item: Item context
        category: Category for boosts (general when None)
        config: Thresholds

    Returns:
        New records with base_confidence and relevance_score set
    """
    boosts = get_match_boosts(category or CategoryId.GENERAL)
    brand = normalize_string(item.brand)
    model = normalize_string(item.model)
    item_grade = normalize_condition(item.condition) if item.condition else None

    scored = []
    for comp in comps:
        base = match_type_weight(comp.match_type)
        factor = HIGH_CONFIDENCE_BOOST_FACTOR if comp.match_type in HIGH_CONFIDENCE_MATCH_TYPES else 1.0
        title = normalize_string(comp.title)

        score = base
        if brand and brand in title:
            score += boosts.brand_match * factor
        if model and model in title:
            score += boosts.model_match * factor
        if item_grade and comp.condition and normalize_condition(comp.condition) == item_grade:
            score += boosts.condition_match * factor
        if _variant_hit(item, comp, title):
            score += boosts.variant_match * factor

        scored.append(comp.with_updates(base_confidence=base, relevance_score=clamp(score)))

    return scored


# =============================================================================
# Image cross-validation
# =============================================================================

def apply_image_result(comp: CandidateRecord, result: ImageComparisonResult,
                       config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> CandidateRecord:
    """Up- or downgrade a comp from an image comparison outcome."""
    image_data = {"imageSimilarity": result.similarity_score, "imageReasoning": result.reasoning}

    if result.similarity_score >= config.image_same_product_threshold and result.is_same_product:
        image_comparisons_total.labels(status="verified").inc()
        return comp.with_extracted(**image_data).with_updates(
            match_type=MatchType.BRAND_MODEL_IMAGE,
            base_confidence=config.image_verified_score,
            relevance_score=config.image_verified_score,
        )

    if result.similarity_score >= config.image_partial_threshold:
        image_comparisons_total.labels(status="partial").inc()
        return comp.with_extracted(**image_data).with_updates(
            relevance_score=clamp(comp.base_confidence * result.similarity_score),
        )

    image_comparisons_total.labels(status="failed").inc()
    return comp.with_extracted(imageValidationFailed=True, **image_data).with_updates(
        relevance_score=config.image_failed_score,
    )


async def validate_comp_images(comps: Sequence[CandidateRecord],
                               item_image_urls: Sequence[str],
                               comparer: Optional[ImageComparer],
                               config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> List[CandidateRecord]:
    """
    Verify keyword-sourced comps by comparing their photo with the item's.

    Comparisons run in batches of config.image_batch_size. A failed
    comparison is logged and leaves that comp unchanged.

    Args:
        comps: Scored comps
        item_image_urls: Item photo URLs
        comparer: Image comparison collaborator (skipped when None)
        config: Thresholds

    Returns:
        New list with verified comps upgraded and mismatches downgraded
    """
    result = list(comps)
    if comparer is None or not item_image_urls:
        return result

    targets = [
        index for index, comp in enumerate(result)
        if comp.match_type in KEYWORD_MATCH_TYPES and comp.image_url
    ]
    if not targets:
        return result

    batch_size = max(1, config.image_batch_size)
    for start in range(0, len(targets), batch_size):
        batch = targets[start:start + batch_size]
        outcomes = await asyncio.gather(
            *[comparer.compare_images(list(item_image_urls), [result[i].image_url]) for i in batch],
            return_exceptions=True,
        )

        for index, outcome in zip(batch, outcomes):
            comp = result[index]
            if isinstance(outcome, Exception):
                image_comparisons_total.labels(status="error").inc()
                logger.warning(f"Image comparison failed for comp {comp.id}: {outcome}")
                continue
            if outcome.cached:
                image_comparisons_total.labels(status="cached").inc()
            result[index] = apply_image_result(comp, outcome, config)

    logger.debug(f"Image-validated {len(targets)} keyword comps")
    return result


# =============================================================================
# Keepa enrichment
# =============================================================================

def _keepa_fields(keepa: Dict[str, Any]) -> Dict[str, Any]:
    buy_box = keepa.get("buyBoxPrice")
    rating = keepa.get("rating")
    history = (keepa.get("priceHistory") or {}).get("new") or []
    return {
        "keepaSalesRank": keepa.get("salesRank"),
        "keepaBuyBoxPrice": buy_box / 100 if buy_box else None,
        "keepaNewOfferCount": keepa.get("newOfferCount"),
        "keepaUsedOfferCount": keepa.get("usedOfferCount"),
        "keepaReviewCount": keepa.get("reviewCount"),
        "keepaRating": rating / 10 if rating else None,
        "keepaLastUpdate": keepa.get("lastUpdate"),
        "hasKeepaHistory": len(history) > 0,
    }


async def enrich_with_keepa(comps: Sequence[CandidateRecord],
                            lookup: Optional[KeepaLookup]) -> List[CandidateRecord]:
    """
    Attach Keepa history fields to Amazon comps that carry an ASIN.

    Lookup failures are logged and the comps are returned unchanged.
    """
    result = list(comps)
    if lookup is None:
        return result

    asins = sorted({
        comp.extracted_data["asin"] for comp in result
        if comp.source == "amazon" and comp.extracted_data.get("asin")
    })
    if not asins:
        return result

    try:
        keepa_data = await lookup(asins)
    except Exception as e:
        logger.warning(f"Keepa enrichment failed for {len(asins)} ASINs: {e}")
        return result

    enriched = []
    for comp in result:
        asin = comp.extracted_data.get("asin")
        if comp.source == "amazon" and asin and keepa_data.get(asin):
            comp = comp.with_extracted(**_keepa_fields(keepa_data[asin]))
        enriched.append(comp)
    return enriched


# =============================================================================
# Validation and filtering
# =============================================================================

def apply_validation(comps: Sequence[CandidateRecord],
                     item: ItemContext,
                     product_id: Optional[ProductIdentification] = None,
                     config: ValidationConfig = DEFAULT_VALIDATION_CONFIG,
                     category: Optional[CategoryId] = None,
                     now: Optional[datetime] = None) -> List[CandidateRecord]:
    """
    Run structured validation and adopt its score as the final relevance.

    The heuristic relevance is replaced by the validation overall score.
    """
    validated = validate_all_comps(comps, item, product_id, config, category, now)
    return [comp.with_updates(relevance_score=comp.validation.overall_score) for comp in validated]


def filter_and_rank(comps: Sequence[CandidateRecord],
                    config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> List[CandidateRecord]:
    """
    Keep validated comps and, when they are scarce, discounted marginal ones.

    Comps at or above config.validated_comp_threshold are kept as-is. When
    fewer than config.min_validated_comps qualify, comps scoring in
    [marginal_comp_floor, validated_comp_threshold) are kept with their
    score multiplied by marginal_comp_discount and flagged
    marginalCompDiscounted.

    Returns:
        Kept comps sorted by relevance, highest first (ties keep input order)
    """
    kept = [c for c in comps if c.relevance_score >= config.validated_comp_threshold]
    marginal = []

    if len(kept) < config.min_validated_comps:
        marginal = [
            c.with_extracted(marginalCompDiscounted=True).with_updates(
                relevance_score=c.relevance_score * config.marginal_comp_discount,
            )
            for c in comps
            if config.marginal_comp_floor <= c.relevance_score < config.validated_comp_threshold
        ]
        if marginal:
            logger.info(
                f"Only {len(kept)} validated comps; keeping {len(marginal)} marginal comps at "
                f"{config.marginal_comp_discount:.0%} weight"
            )

    dropped = len(comps) - len(kept) - len(marginal)
    comps_filtered_total.labels(outcome="kept").inc(len(kept))
    comps_filtered_total.labels(outcome="marginal").inc(len(marginal))
    comps_filtered_total.labels(outcome="dropped").inc(dropped)

    return sorted(kept + marginal, key=lambda c: c.relevance_score, reverse=True)


def count_comps_by_match_type(comps: Sequence[CandidateRecord]) -> Dict[str, int]:
    """Number of comps per match type value."""
    return dict(Counter(comp.match_type.value for comp in comps))


# =============================================================================
# Orchestration
# =============================================================================

@dataclass
class CompAnalysisResult:
    """Outcome of analyzing one comp set."""

    comps: List[CandidateRecord]
    summary: ValidationSummary
    category: CategoryId
    score_distribution: Dict[str, int] = field(default_factory=dict)
    match_types: Dict[str, int] = field(default_factory=dict)
    total_scored: int = 0

    @property
    def relevant_count(self) -> int:
        return len(self.comps)

    @property
    def dropped_count(self) -> int:
        return self.total_scored - len(self.comps)


class CompAnalysisEngine:
    """
    Runs the full comp analysis pipeline for one item.

    Collaborators (image comparer, Keepa lookup) are optional; a missing
    collaborator skips its stage.
    """

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        comparer: Optional[ImageComparer] = None,
        keepa_lookup: Optional[KeepaLookup] = None,
        extractor: Optional[AttributeExtractor] = None,
    ):
        self.config = config or DEFAULT_VALIDATION_CONFIG
        self.comparer = comparer
        self.keepa_lookup = keepa_lookup
        self.extractor = extractor or attribute_extractor

    @classmethod
    def from_settings(cls, keepa_lookup: Optional[KeepaLookup] = None) -> "CompAnalysisEngine":
        """Build an engine from environment settings and feature flags."""
        comparer = ImageComparisonService() if settings.image_validation_enabled else None
        return cls(
            config=settings.validation_config(),
            comparer=comparer,
            keepa_lookup=keepa_lookup if settings.keepa_enrichment_enabled else None,
        )

    def _score_distribution(self, kept: List[CandidateRecord], total: int) -> Dict[str, int]:
        high = sum(1 for c in kept if c.relevance_score >= self.config.min_relevance_score)
        return {
            "high": high,
            "medium": len(kept) - high,
            "low": total - len(kept),
        }

    async def analyze(
        self,
        comps: Sequence[CandidateRecord],
        item: ItemContext,
        product_id: Optional[ProductIdentification] = None,
        item_image_urls: Optional[Sequence[str]] = None,
        category: Optional[CategoryId] = None,
        now: Optional[datetime] = None,
    ) -> CompAnalysisResult:
        """
        Analyze a comp set against an item.

        Args:
            comps: Raw comps from discovery
            item: Item context
            product_id: Identification used to fill item brand/model
            item_image_urls: Item photos for image cross-validation
            category: Category override (resolved from item/identification when None)
            now: Reference time for recency

        Returns:
            CompAnalysisResult with filtered, ranked comps
        """
        item = item.merged_with(product_id)
        if category is None:
            category = resolve_category(
                explicit=item.category,
                identified=product_id.category if product_id else None,
                title=item.title,
            )
        log = get_logger(__name__, category=category.value, brand=item.brand, model=item.model)

        if not comps:
            log.info("No comps to analyze")
            return CompAnalysisResult(
                comps=[],
                summary=get_validation_summary([]),
                category=category,
                score_distribution={"high": 0, "medium": 0, "low": 0},
            )

        working = self.extractor.enrich_comps(comps)
        working = score_comp_relevance(working, item, category, self.config)
        working = await enrich_with_keepa(working, self.keepa_lookup)
        working = await validate_comp_images(working, item_image_urls or [], self.comparer, self.config)
        working = apply_validation(working, item, product_id, self.config, category, now)

        summary = get_validation_summary(working)
        kept = filter_and_rank(working, self.config)

        log.info(
            f"Analyzed {len(working)} comps: {summary.passed} validated, {summary.failed} failed, "
            f"{len(kept)} kept"
        )

        return CompAnalysisResult(
            comps=kept,
            summary=summary,
            category=category,
            score_distribution=self._score_distribution(kept, len(working)),
            match_types=count_comps_by_match_type(working),
            total_scored=len(working),
        )
