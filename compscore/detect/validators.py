"""
Per-criterion comp validators.

Each validator compares one aspect of a comp against the item being priced.
Missing item attributes never fail a comp: an unknown brand, model or
condition gets the benefit of the doubt with a low confidence.
"""

import logging
import math
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from compscore.ai.text_processor import normalize_string, similarity
from compscore.config import DEFAULT_VALIDATION_CONFIG, ValidationConfig
from compscore.detect.category_weights import CategoryId, get_variant_importance
from compscore.detect.conditions import DEFAULT_GRADE, grade_distance
from compscore.models import (
    BrandMatch,
    CandidateRecord,
    ConditionMatch,
    ItemContext,
    ModelMatch,
    RecencyCheck,
    VariantMatch,
)

logger = logging.getLogger(__name__)

UNKNOWN_ATTRIBUTE_CONFIDENCE = 0.3
MISSING_COMP_BRAND_CONFIDENCE = 0.5
TITLE_MODEL_CONFIDENCE = 0.85
TITLE_VARIANT_FACTOR = 0.8
VARIANT_MATCH_RATIO = 0.5


def _first_title_word(title: Optional[str]) -> Optional[str]:
    words = normalize_string(title).split(' ')
    return words[0] if words and words[0] else None


def validate_brand(item: ItemContext, comp: CandidateRecord,
                   config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> BrandMatch:
    """
    Compare the item brand with the comp's extracted brand or first title word.

    Args:
        item: Item context
        comp: Comp under validation
        config: Thresholds

    Returns:
        BrandMatch with similarity as confidence
    """
    item_brand = normalize_string(item.brand)
    comp_brand = normalize_string(comp.extracted_data.get("brand") or _first_title_word(comp.title))

    if not item_brand:
        return BrandMatch(
            matches=True,
            confidence=UNKNOWN_ATTRIBUTE_CONFIDENCE,
            item_brand=item.brand,
            comp_brand=comp_brand or None,
        )

    if not comp_brand:
        return BrandMatch(
            matches=False,
            confidence=MISSING_COMP_BRAND_CONFIDENCE,
            item_brand=item.brand,
        )

    score = similarity(item_brand, comp_brand)
    return BrandMatch(
        matches=score >= config.brand_match_threshold,
        confidence=score,
        item_brand=item.brand,
        comp_brand=comp_brand,
    )


def validate_model(item: ItemContext, comp: CandidateRecord,
                   config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> ModelMatch:
    """Compare the item model with the comp's model field, falling back to the title."""
    item_model = normalize_string(item.model)
    comp_model = normalize_string(comp.extracted_data.get("model"))

    if not item_model:
        return ModelMatch(
            matches=True,
            confidence=UNKNOWN_ATTRIBUTE_CONFIDENCE,
            item_model=item.model,
            comp_model=comp_model or None,
        )

    score = similarity(item_model, comp_model) if comp_model else 0.0

    # Model numbers are often only present in the title
    if score < 0.8 and item_model in normalize_string(comp.title):
        score = max(score, TITLE_MODEL_CONFIDENCE)

    return ModelMatch(
        matches=score >= config.model_match_threshold,
        confidence=score,
        item_model=item.model,
        comp_model=comp_model or None,
    )


def validate_variant(item: ItemContext, comp: CandidateRecord,
                     category: Optional[CategoryId] = None,
                     config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> VariantMatch:
    """
    Weighted variant comparison using the category's variant importance.

    Each item attribute the category cares about contributes its weight to
    the total. A field match (similarity >= threshold) earns the full weight,
    a title hit earns 80% of it.

    Args:
        item: Item context with variant info
        comp: Comp under validation
        category: Category used for variant weights (general when None)
        config: Thresholds

    Returns:
        VariantMatch; passes by default when nothing can be compared
    """
    weights = get_variant_importance(category or CategoryId.GENERAL)
    data = comp.extracted_data
    title = normalize_string(comp.title)
    details: List[str] = []
    total_weight = 0.0
    matched_weight = 0.0

    def check(label: str, item_value, comp_value, weight: float):
        nonlocal total_weight, matched_weight
        if not item_value or weight <= 0:
            return
        total_weight += weight
        item_norm = normalize_string(str(item_value))
        comp_norm = normalize_string(str(comp_value)) if comp_value else ""

        if comp_norm and similarity(item_norm, comp_norm) >= config.variant_similarity_threshold:
            matched_weight += weight
            details.append(f"{label}: {item_value} matches {comp_value}")
        elif item_norm in title:
            matched_weight += weight * TITLE_VARIANT_FACTOR
            details.append(f"{label}: {item_value} found in title")
        else:
            details.append(f"{label}: {item_value} not found")

    variant = item.variant
    if weights.colorway > 0:
        check("Colorway", variant.color, data.get("colorway") or data.get("color"), weights.colorway)
    else:
        check("Color", variant.color, data.get("colorway") or data.get("color"), weights.color)

    check("Size", variant.size, data.get("size"), weights.size)
    check("Edition", variant.edition, data.get("edition"), weights.edition)
    check("Material", variant.material, data.get("material"), weights.material)
    check("Storage", variant.storage or data.get("itemStorage"), data.get("storage"), weights.storage)
    check("Grade", variant.grade or data.get("itemGrade"), data.get("grade"), weights.grade)
    check("Reference", item.model, data.get("refNumber"), weights.ref_number if data.get("refNumber") else 0)

    if total_weight == 0:
        return VariantMatch(matches=True, confidence=1.0, details="No variant attributes to validate")

    confidence = matched_weight / total_weight
    return VariantMatch(
        matches=confidence >= VARIANT_MATCH_RATIO,
        confidence=confidence,
        details="; ".join(details),
    )


def validate_condition(item: ItemContext, comp: CandidateRecord,
                       config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> ConditionMatch:
    """Grade-distance comparison; a comp without condition is treated as used."""
    if not item.condition:
        return ConditionMatch(
            matches=True,
            within_grade=0,
            comp_condition=comp.condition or None,
        )

    distance = grade_distance(item.condition, comp.condition or DEFAULT_GRADE)
    return ConditionMatch(
        matches=distance <= config.max_condition_grade_distance,
        within_grade=distance,
        item_condition=item.condition,
        comp_condition=comp.condition or None,
    )


def parse_sold_date(value) -> Optional[datetime]:
    """Parse an ISO date/datetime into an aware UTC datetime, or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable sold date: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_recency(comp: CandidateRecord,
                     config: ValidationConfig = DEFAULT_VALIDATION_CONFIG,
                     now: Optional[datetime] = None) -> RecencyCheck:
    """
    Check that a sold comp is recent enough to price against.

    Active listings and sold listings without a usable date are always valid.

    Args:
        comp: Comp under validation
        config: Thresholds
        now: Reference time (defaults to the current UTC time)

    Returns:
        RecencyCheck with whole days since sale
    """
    threshold = config.recency_threshold_days
    if not comp.is_sold:
        return RecencyCheck(valid=True, days_since_sold=None, threshold=threshold)

    sold_at = parse_sold_date(comp.sold_date)
    if sold_at is None:
        return RecencyCheck(valid=True, days_since_sold=None, threshold=threshold)

    reference = now or datetime.now(timezone.utc)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    days = math.floor((reference - sold_at).total_seconds() / 86400)
    return RecencyCheck(valid=days <= threshold, days_since_sold=days, threshold=threshold)


def run_criteria(item: ItemContext, comp: CandidateRecord, category: Optional[CategoryId],
                 config: ValidationConfig, now: Optional[datetime] = None
                 ) -> Tuple[BrandMatch, ModelMatch, VariantMatch, ConditionMatch, RecencyCheck]:
    """Run the five comp-local validators in reasoning order."""
    return (
        validate_brand(item, comp, config),
        validate_model(item, comp, config),
        validate_variant(item, comp, category, config),
        validate_condition(item, comp, config),
        validate_recency(comp, config, now),
    )
