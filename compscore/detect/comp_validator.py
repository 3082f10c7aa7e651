"""Aggregate per-criterion checks into a validation verdict for each comp."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from compscore.config import DEFAULT_VALIDATION_CONFIG, ValidationConfig
from compscore.detect.anomaly_detector import PriceOutlierDetector, validate_price_outlier
from compscore.detect.category_weights import CategoryId, get_validation_weights, resolve_category
from compscore.detect.validators import run_criteria
from compscore.metrics import comp_validation_score, comps_validated_total
from compscore.models import (
    CandidateRecord,
    ItemContext,
    ProductIdentification,
    ValidationCriteria,
    ValidationResult,
    ValidationSummary,
    clamp,
)

logger = logging.getLogger(__name__)


def calculate_overall_score(criteria: ValidationCriteria,
                            category: Optional[CategoryId] = None,
                            config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> float:
    """
    Weighted sum of criterion results using the category's validation weights.

    Brand, model and variant contribute confidence × weight when they match.
    Condition contributes its weight reduced by 20% per grade of distance.
    A price outlier subtracts its weight; anything else adds it.

    Args:
        criteria: Criterion results
        category: Category for weight lookup (general when None)
        config: Thresholds

    Returns:
        Score clamped to [0, 1]
    """
    weights = get_validation_weights(category or CategoryId.GENERAL)
    score = 0.0

    if criteria.brand_match.matches:
        score += criteria.brand_match.confidence * weights.brand
    if criteria.model_match.matches:
        score += criteria.model_match.confidence * weights.model
    if criteria.variant_match.matches:
        score += criteria.variant_match.confidence * weights.variant

    condition = criteria.condition_match
    if condition.matches:
        penalty = condition.within_grade * config.condition_grade_penalty
        score += max(0.0, weights.condition * (1 - penalty))

    if criteria.recency.valid:
        score += weights.recency

    if criteria.price_outlier.is_outlier:
        score -= weights.price_outlier
    else:
        score += weights.price_outlier

    return clamp(score)


def generate_reasoning(criteria: ValidationCriteria) -> str:
    """Human-readable explanation, one phrase per notable criterion."""
    reasons: List[str] = []

    brand = criteria.brand_match
    if brand.matches:
        reasons.append(f"Brand match: {brand.item_brand or 'Unknown'}")
    elif brand.item_brand:
        reasons.append(f'Brand mismatch: expected "{brand.item_brand}", found "{brand.comp_brand or "unknown"}"')

    model = criteria.model_match
    if model.matches:
        reasons.append(f"Model match: {model.item_model or 'Unknown'}")
    elif model.item_model:
        reasons.append(f'Model mismatch: expected "{model.item_model}", found "{model.comp_model or "unknown"}"')

    if criteria.variant_match.details:
        reasons.append(criteria.variant_match.details)

    condition = criteria.condition_match
    if condition.within_grade == 0:
        reasons.append(f"Condition: exact match ({condition.item_condition or 'unknown'})")
    elif condition.matches:
        reasons.append(
            f"Condition: within {condition.within_grade} grade(s) "
            f"({condition.item_condition} vs {condition.comp_condition or 'used'})"
        )
    else:
        reasons.append(f"Condition: too different ({condition.within_grade} grades apart)")

    recency = criteria.recency
    if not recency.valid:
        reasons.append(f"Too old: {recency.days_since_sold} days since sold (threshold: {recency.threshold})")

    outlier = criteria.price_outlier
    if outlier.is_outlier:
        reasons.append(f"Price outlier: z-score {outlier.z_score:.2f} (unusual price)")

    return ". ".join(reasons)


def _resolve(item: ItemContext, product_id: Optional[ProductIdentification],
             category: Optional[CategoryId]) -> CategoryId:
    if category is not None:
        return category
    return resolve_category(
        explicit=item.category,
        identified=product_id.category if product_id else None,
        title=item.title,
    )


def _build_result(criteria: ValidationCriteria, category: CategoryId,
                  config: ValidationConfig) -> ValidationResult:
    overall = calculate_overall_score(criteria, category, config)
    return ValidationResult(
        is_valid=overall >= config.min_validation_score,
        overall_score=overall,
        criteria=criteria,
        reasoning=generate_reasoning(criteria),
    )


def validate_comp(comp: CandidateRecord,
                  item: ItemContext,
                  population: Sequence[CandidateRecord],
                  product_id: Optional[ProductIdentification] = None,
                  config: Optional[ValidationConfig] = None,
                  category: Optional[CategoryId] = None,
                  now: Optional[datetime] = None) -> ValidationResult:
    """
    Validate a single comp against the item.

    Args:
        comp: Comp to validate
        item: Item context
        population: All comps in the set, used for outlier statistics
        product_id: Identification used to fill missing brand/model
        config: Thresholds (defaults when None)
        category: Category for weights; resolved from the item when None
        now: Reference time for recency

    Returns:
        ValidationResult
    """
    config = config or DEFAULT_VALIDATION_CONFIG
    enriched = item.merged_with(product_id)
    resolved = _resolve(enriched, product_id, category)

    brand, model, variant, condition, recency = run_criteria(enriched, comp, resolved, config, now)
    criteria = ValidationCriteria(
        brand_match=brand,
        model_match=model,
        variant_match=variant,
        condition_match=condition,
        recency=recency,
        price_outlier=validate_price_outlier(comp, population, config),
    )
    return _build_result(criteria, resolved, config)


def validate_all_comps(comps: Sequence[CandidateRecord],
                       item: ItemContext,
                       product_id: Optional[ProductIdentification] = None,
                       config: Optional[ValidationConfig] = None,
                       category: Optional[CategoryId] = None,
                       now: Optional[datetime] = None) -> List[CandidateRecord]:
    """
    Validate every comp against the full list and attach the results.

    Returns new records; the input list and its records are left untouched.
    Running it twice on the same input yields identical results.
    """
    config = config or DEFAULT_VALIDATION_CONFIG
    enriched = item.merged_with(product_id)
    resolved = _resolve(enriched, product_id, category)
    detector = PriceOutlierDetector(comps, config)

    validated = []
    for comp in comps:
        brand, model, variant, condition, recency = run_criteria(enriched, comp, resolved, config, now)
        criteria = ValidationCriteria(
            brand_match=brand,
            model_match=model,
            variant_match=variant,
            condition_match=condition,
            recency=recency,
            price_outlier=detector.detect(comp),
        )
        result = _build_result(criteria, resolved, config)

        comps_validated_total.labels(result="passed" if result.is_valid else "failed").inc()
        comp_validation_score.observe(result.overall_score)
        logger.debug(f"Comp {comp.id}: score={result.overall_score:.2f} valid={result.is_valid} ({result.reasoning})")

        validated.append(comp.with_updates(validation=result))

    return validated


def get_validation_summary(comps: Sequence[CandidateRecord]) -> ValidationSummary:
    """
    Count passed/failed comps and per-criterion matches.

    Comps without a validation result are ignored.
    """
    validated = [c.validation for c in comps if c.validation is not None]
    passed = sum(1 for v in validated if v.is_valid)

    breakdown: Dict[str, int] = {
        "brand": sum(1 for v in validated if v.criteria.brand_match.matches),
        "model": sum(1 for v in validated if v.criteria.model_match.matches),
        "condition": sum(1 for v in validated if v.criteria.condition_match.matches),
        "recency": sum(1 for v in validated if v.criteria.recency.valid),
        "variant": sum(1 for v in validated if v.criteria.variant_match.matches),
    }

    return ValidationSummary(
        total=len(validated),
        passed=passed,
        failed=len(validated) - passed,
        criteria_breakdown=breakdown,
    )
