"""
Identification re-validation against market evidence.

After comps have been analyzed, checks whether the evidence still supports
the product identification. When it does not, the result carries hints for
a second identification attempt. Re-identification is a verdict, never an
exception: the caller decides whether to loop back.

Checks:
1. Price sanity - comp prices should make sense for the identified product
2. Comp matching - at least some comps should match the identification well
3. Attribute consistency - brand/model from independent sources should agree
4. Visual consistency - top comps should not fail image validation
5. Category consistency - comp titles should point at the item's category
"""

import logging
import math
import re
import statistics
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from compscore.ai.text_processor import tokenize_title
from compscore.detect.category_weights import (
    CategoryId,
    detect_category_from_text,
    has_specific_weights,
    resolve_category,
)
from compscore.metrics import identification_checks_total
from compscore.models import (
    CandidateRecord,
    HintType,
    IdentificationIssue,
    IssueType,
    ProductIdentification,
    ReidentificationHint,
    Severity,
    ValidationCheckResult,
    ValidationStats,
    clamp,
)

logger = logging.getLogger(__name__)

PRICE_RELEVANCE_FLOOR = 0.5
PRICE_STD_RATIO = 0.8
EXPECTED_PRICE_RATIO = 2.0
VALID_COMP_RELEVANCE = 0.6
HIGH_COMP_RELEVANCE = 0.8
MIN_VALID_COMPS = 3
TOP_COMPS = 5
CATEGORY_MAJORITY = 0.6

BRAND_FAMILIES = [
    ["nike", "jordan", "air jordan"],
    ["adidas", "yeezy"],
    ["apple", "iphone", "ipad", "macbook"],
    ["samsung", "galaxy"],
    ["sony", "playstation", "ps5", "ps4"],
    ["microsoft", "xbox"],
    ["louis vuitton", "lv"],
    ["gucci", "gc"],
]

COMMON_TERM_STOPWORDS = {
    "the", "and", "for", "with", "new", "free", "ship", "fast", "box",
    "size", "color", "mens", "womens", "kids", "adult", "brand", "authentic",
    "original", "genuine", "rare", "vintage", "used", "like", "good", "great",
}

AMAZON_MODEL_PATTERN = re.compile(r'\b([A-Z]{1,3}-?\d{2,}[A-Z0-9]*)\b')


@dataclass
class IdentificationEvidence:
    """Everything known about the item after comp analysis."""

    comps: List[CandidateRecord] = field(default_factory=list)
    product_identification: Optional[ProductIdentification] = None
    media_brand: Optional[str] = None
    media_model: Optional[str] = None
    ocr_brand: Optional[str] = None
    ocr_model_number: Optional[str] = None
    upc_brand: Optional[str] = None
    amazon_top_brand: Optional[str] = None
    amazon_top_title: Optional[str] = None
    item_category: Optional[str] = None

    @property
    def expected_price(self) -> Optional[float]:
        product_id = self.product_identification
        if product_id is None:
            return None
        if product_id.expected_price:
            return product_id.expected_price
        value = product_id.attributes.get("expectedPrice")
        if not value:
            return None
        try:
            return float(str(value).replace("$", "").replace(",", "").strip())
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparseable expected price: {value!r}")
            return None

    def brand_sources(self) -> List[str]:
        product_id = self.product_identification
        brands = [
            product_id.brand if product_id else None,
            self.media_brand,
            self.ocr_brand,
            self.upc_brand,
            self.amazon_top_brand,
        ]
        return [b for b in brands if b and b.strip()]

    def model_sources(self) -> List[str]:
        product_id = self.product_identification
        models = [
            product_id.model if product_id else None,
            self.media_model,
            self.ocr_model_number,
        ]
        if self.amazon_top_title:
            match = AMAZON_MODEL_PATTERN.search(self.amazon_top_title)
            if match:
                models.append(match.group(1))
        return [m for m in models if m and m.strip()]


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(v.lower().strip() for v in values))


def are_brands_related(brands: List[str]) -> bool:
    """True when brands contain one another or share a known family."""
    if len(brands) < 2:
        return True

    for i, first in enumerate(brands):
        for second in brands[i + 1:]:
            if first in second or second in first:
                return True

    lower = [b.lower() for b in brands]
    for family in BRAND_FAMILIES:
        members = [b for b in lower if any(name in b for name in family)]
        if len(members) >= 2:
            return True
    return False


def are_models_related(models: List[str]) -> bool:
    """True when models share an alphabetic prefix or differ only in digits."""
    if len(models) < 2:
        return True

    prefixes = set()
    for model in models:
        match = re.match(r'^([a-z]+)', model, re.IGNORECASE)
        prefixes.add(match.group(1).lower() if match else model.lower())
    if len(prefixes) == 1:
        return True

    masked = {re.sub(r'\d+', 'N', model).lower() for model in models}
    return len(masked) == 1


def extract_common_terms(titles: List[str], max_terms: int = 5) -> List[str]:
    """
    Terms that occur at least ceil(0.6 × n) times across n titles.

    Args:
        titles: Comp titles
        max_terms: Maximum number of terms returned

    Returns:
        Terms in first-seen order with stopwords removed
    """
    if not titles:
        return []

    counts: Counter = Counter()
    for title in titles:
        counts.update(tokenize_title(title))

    threshold = math.ceil(len(titles) * 0.6)
    common = [word for word, count in counts.items() if count >= threshold]
    return [w for w in common if w not in COMMON_TERM_STOPWORDS][:max_terms]


class IdentificationValidator:
    """
    Validates a product identification against comp evidence.

    Re-identification is triggered when:
    - there are two or more errors
    - no_matching_comps is reported as an error
    - price_mismatch is reported as an error
    """

    def validate(self, evidence: IdentificationEvidence) -> ValidationCheckResult:
        """
        Run all checks and decide whether to re-identify.

        Args:
            evidence: Comps and identification sources

        Returns:
            ValidationCheckResult with issues, hints and stats
        """
        issues: List[IdentificationIssue] = []
        checks = [
            lambda: self.check_price_sanity(evidence),
            lambda: self.check_comp_matching(evidence),
            lambda: self.check_attribute_consistency(evidence),
            lambda: self.check_visual_consistency(evidence),
            lambda: self.check_category_consistency(evidence),
        ]
        for check in checks:
            found = check()
            if isinstance(found, list):
                issues.extend(found)
            elif found is not None:
                issues.append(found)

        error_count = sum(1 for i in issues if i.severity == Severity.ERROR)
        warning_count = sum(1 for i in issues if i.severity == Severity.WARNING)
        should_reidentify = self.should_trigger_reidentification(issues)

        result = ValidationCheckResult(
            is_valid=error_count == 0,
            confidence=clamp(1.0 - error_count * 0.3 - warning_count * 0.1),
            issues=issues,
            should_reidentify=should_reidentify,
            reidentification_hints=self.generate_hints(evidence, issues) if should_reidentify else [],
            stats=ValidationStats(
                total_checks=len(checks),
                passed_checks=max(0, len(checks) - len(issues)),
                warning_count=warning_count,
                error_count=error_count,
            ),
        )

        if should_reidentify:
            outcome = "reidentify"
        elif issues:
            outcome = "warnings"
        else:
            outcome = "valid"
        identification_checks_total.labels(outcome=outcome).inc()

        logger.info(
            f"Identification validation {'PASSED' if result.is_valid else 'FAILED'} "
            f"({error_count} errors, {warning_count} warnings, should_reidentify={should_reidentify})"
        )
        return result

    def check_price_sanity(self, evidence: IdentificationEvidence) -> Optional[IdentificationIssue]:
        """Flag high price variance or an expected price far from the comp average."""
        priced = [
            c for c in evidence.comps
            if c.valid_price is not None and c.relevance_score >= PRICE_RELEVANCE_FLOOR
        ]
        if not priced:
            return None

        prices = [c.valid_price for c in priced]
        avg_price = statistics.fmean(prices)
        std_dev = statistics.pstdev(prices) if len(prices) >= 2 else 0.0

        if std_dev > avg_price * PRICE_STD_RATIO and len(priced) >= 3:
            return IdentificationIssue(
                type=IssueType.PRICE_MISMATCH,
                severity=Severity.WARNING,
                message=f"High price variance in comps (std dev ${std_dev:.2f} vs avg ${avg_price:.2f})",
                evidence={
                    "expected": {"std_dev_ratio": PRICE_STD_RATIO},
                    "actual": {"avg_price": avg_price, "std_dev": std_dev, "ratio": std_dev / avg_price},
                    "price_range": {"min": min(prices), "max": max(prices)},
                },
            )

        expected = evidence.expected_price
        if expected and abs(expected - avg_price) > avg_price * EXPECTED_PRICE_RATIO:
            difference = abs(expected - avg_price)
            return IdentificationIssue(
                type=IssueType.PRICE_MISMATCH,
                severity=Severity.ERROR,
                message=f"Expected price (${expected}) differs significantly from comp average (${avg_price:.2f})",
                evidence={
                    "expected": expected,
                    "actual": avg_price,
                    "difference": difference,
                    "percent_diff": round(difference / avg_price * 100, 1),
                },
            )

        return None

    def check_comp_matching(self, evidence: IdentificationEvidence) -> Optional[IdentificationIssue]:
        """Flag an empty comp set or one with no well-matching comps."""
        comps = evidence.comps
        if not comps:
            return IdentificationIssue(
                type=IssueType.NO_MATCHING_COMPS,
                severity=Severity.ERROR,
                message="No comparable listings found for identification",
                evidence={"total_comps": 0},
            )

        valid = [c for c in comps if c.relevance_score >= VALID_COMP_RELEVANCE]
        high = [c for c in comps if c.relevance_score >= HIGH_COMP_RELEVANCE]

        if not valid:
            return IdentificationIssue(
                type=IssueType.NO_MATCHING_COMPS,
                severity=Severity.ERROR,
                message=(
                    f"Found {len(comps)} comps but none match identification well "
                    f"(all < {VALID_COMP_RELEVANCE} relevance)"
                ),
                evidence={
                    "expected": {"min_relevance": VALID_COMP_RELEVANCE},
                    "actual": {
                        "total_comps": len(comps),
                        "valid_comps": 0,
                        "top_scores": [c.relevance_score for c in comps[:TOP_COMPS]],
                    },
                },
            )

        if not high and len(valid) < MIN_VALID_COMPS:
            avg_relevance = statistics.fmean(c.relevance_score for c in valid)
            return IdentificationIssue(
                type=IssueType.LOW_COMP_QUALITY,
                severity=Severity.WARNING,
                message=f"Only {len(valid)} marginal comps found (none > {HIGH_COMP_RELEVANCE} relevance)",
                evidence={
                    "valid_comps": len(valid),
                    "high_confidence_comps": 0,
                    "avg_relevance": round(avg_relevance, 2),
                },
            )

        return None

    def check_attribute_consistency(self, evidence: IdentificationEvidence) -> List[IdentificationIssue]:
        """Flag unrelated brands or models reported by independent sources."""
        issues: List[IdentificationIssue] = []
        if evidence.product_identification is None:
            return issues

        brands = _unique(evidence.brand_sources())
        if len(brands) > 1 and not are_brands_related(brands):
            issues.append(IdentificationIssue(
                type=IssueType.ATTRIBUTE_INCONSISTENCY,
                severity=Severity.WARNING,
                message=f"Conflicting brands detected: {', '.join(brands)}",
                evidence={"brand_sources": brands},
            ))

        models = _unique(evidence.model_sources())
        if len(models) > 1 and not are_models_related(models):
            issues.append(IdentificationIssue(
                type=IssueType.ATTRIBUTE_INCONSISTENCY,
                severity=Severity.WARNING,
                message=f"Conflicting models detected: {', '.join(models)}",
                evidence={"model_sources": models},
            ))

        return issues

    def check_visual_consistency(self, evidence: IdentificationEvidence) -> Optional[IdentificationIssue]:
        """Flag when the top comps with images failed image validation."""
        with_images = [
            c for c in evidence.comps
            if c.image_url and c.relevance_score >= VALID_COMP_RELEVANCE
        ][:TOP_COMPS]
        if not with_images:
            return None

        failed = [c for c in with_images if c.extracted_data.get("imageValidationFailed") is True]
        details = {"comps_checked": len(with_images), "failed_count": len(failed)}

        if len(failed) == len(with_images) and len(with_images) >= 2:
            return IdentificationIssue(
                type=IssueType.VISUAL_MISMATCH,
                severity=Severity.ERROR,
                message="All top comps failed image validation - item may be misidentified",
                evidence=details,
            )

        if len(failed) > len(with_images) / 2:
            return IdentificationIssue(
                type=IssueType.VISUAL_MISMATCH,
                severity=Severity.WARNING,
                message=f"{len(failed)}/{len(with_images)} top comps failed image validation",
                evidence=details,
            )

        return None

    def check_category_consistency(self, evidence: IdentificationEvidence) -> Optional[IdentificationIssue]:
        """Flag when most top comp titles point at a different specific category."""
        product_id = evidence.product_identification
        item_category = resolve_category(
            explicit=evidence.item_category,
            identified=product_id.category if product_id else None,
        )
        if not has_specific_weights(item_category):
            return None

        top = sorted(evidence.comps, key=lambda c: c.relevance_score, reverse=True)[:TOP_COMPS]
        if len(top) < 3:
            return None

        detected = [detect_category_from_text(c.title) for c in top]
        counts = Counter(c for c in detected if c is not None and c != CategoryId.GENERAL)
        if not counts:
            return None

        dominant, count = counts.most_common(1)[0]
        if dominant == item_category or count / len(top) <= CATEGORY_MAJORITY:
            return None

        return IdentificationIssue(
            type=IssueType.CATEGORY_MISMATCH,
            severity=Severity.WARNING,
            message=(
                f"{count}/{len(top)} top comps look like {dominant.value}, "
                f"not {item_category.value}"
            ),
            evidence={"expected": item_category.value, "actual": dominant.value},
        )

    def should_trigger_reidentification(self, issues: List[IdentificationIssue]) -> bool:
        errors = [i for i in issues if i.severity == Severity.ERROR]
        if len(errors) >= 2:
            return True
        return any(i.type in (IssueType.NO_MATCHING_COMPS, IssueType.PRICE_MISMATCH) for i in errors)

    def generate_hints(self, evidence: IdentificationEvidence,
                       issues: List[IdentificationIssue]) -> List[ReidentificationHint]:
        """
        Suggestions for the next identification attempt.

        Returns:
            Hints ordered by confidence, highest first
        """
        hints: List[ReidentificationHint] = []
        product_id = evidence.product_identification

        def has_issue(issue_type: IssueType, severity: Optional[Severity] = None) -> Optional[IdentificationIssue]:
            for issue in issues:
                if issue.type == issue_type and (severity is None or issue.severity == severity):
                    return issue
            return None

        if has_issue(IssueType.PRICE_MISMATCH, Severity.ERROR):
            terms = extract_common_terms([c.title for c in evidence.comps[:TOP_COMPS]])
            if terms:
                hints.append(ReidentificationHint(
                    type=HintType.USE_COMP_SUGGESTION,
                    value=" ".join(terms),
                    reason="Comp titles suggest different product terms",
                    confidence=0.7,
                ))

        if has_issue(IssueType.NO_MATCHING_COMPS):
            hints.append(ReidentificationHint(
                type=HintType.SEARCH_DIFFERENT,
                value="broader_search",
                reason="No matching comps found - try broader identification",
                confidence=0.6,
            ))
            if product_id and product_id.brand:
                hints.append(ReidentificationHint(
                    type=HintType.EXCLUDE_BRAND,
                    value=product_id.brand,
                    reason="Current brand identification may be incorrect",
                    confidence=0.5,
                ))
            if product_id and product_id.model:
                hints.append(ReidentificationHint(
                    type=HintType.EXCLUDE_MODEL,
                    value=product_id.model,
                    reason="Current model identification may be incorrect",
                    confidence=0.5,
                ))

        category_issue = has_issue(IssueType.CATEGORY_MISMATCH)
        if category_issue and category_issue.evidence.get("actual"):
            hints.append(ReidentificationHint(
                type=HintType.TRY_CATEGORY,
                value=str(category_issue.evidence["actual"]),
                reason="Comps suggest different product category",
                confidence=0.8,
            ))

        if has_issue(IssueType.VISUAL_MISMATCH):
            hints.append(ReidentificationHint(
                type=HintType.SEARCH_DIFFERENT,
                value="visual_reanalysis",
                reason="Item visuals do not match comps - may need different identification approach",
                confidence=0.65,
            ))

        return sorted(hints, key=lambda h: h.confidence, reverse=True)


# Global identification validator instance
identification_validator = IdentificationValidator()
