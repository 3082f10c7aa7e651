"""Tests for identification re-validation."""

import pytest

from compscore.detect.identification_validator import (
    IdentificationEvidence,
    are_brands_related,
    are_models_related,
    extract_common_terms,
    identification_validator,
)
from compscore.models import (
    CandidateRecord,
    HintType,
    IssueType,
    ProductIdentification,
    Severity,
)


def comp(comp_id, title="Nike Air Max 90", price=100.0, relevance=0.9, **kwargs):
    return CandidateRecord(id=comp_id, title=title, price=price, relevance_score=relevance, **kwargs)


def issue_types(result):
    return [(issue.type, issue.severity) for issue in result.issues]


class TestCompMatching:
    """Comp quality checks."""

    def test_no_comps_triggers_reidentification(self):
        evidence = IdentificationEvidence(
            comps=[],
            product_identification=ProductIdentification(brand="Nike", model="Air Max 90"),
        )

        result = identification_validator.validate(evidence)

        assert issue_types(result) == [(IssueType.NO_MATCHING_COMPS, Severity.ERROR)]
        assert result.is_valid is False
        assert result.should_reidentify is True
        assert result.confidence == pytest.approx(0.7)
        assert [(h.type, h.value) for h in result.reidentification_hints] == [
            (HintType.SEARCH_DIFFERENT, "broader_search"),
            (HintType.EXCLUDE_BRAND, "Nike"),
            (HintType.EXCLUDE_MODEL, "Air Max 90"),
        ]
        assert result.stats.total_checks == 5
        assert result.stats.passed_checks == 4

    def test_all_low_relevance(self):
        evidence = IdentificationEvidence(comps=[comp("1", relevance=0.3), comp("2", relevance=0.4)])

        issue = identification_validator.check_comp_matching(evidence)

        assert issue.type == IssueType.NO_MATCHING_COMPS
        assert issue.severity == Severity.ERROR
        assert issue.evidence["actual"]["total_comps"] == 2

    def test_few_marginal_comps_is_warning(self):
        evidence = IdentificationEvidence(comps=[comp("1", relevance=0.65), comp("2", relevance=0.7)])

        result = identification_validator.validate(evidence)

        assert issue_types(result) == [(IssueType.LOW_COMP_QUALITY, Severity.WARNING)]
        assert result.is_valid is True
        assert result.should_reidentify is False
        assert result.reidentification_hints == []
        assert result.confidence == pytest.approx(0.9)

    def test_healthy_comp_set_passes(self):
        evidence = IdentificationEvidence(
            comps=[comp(str(i), price=100 + i) for i in range(5)],
            product_identification=ProductIdentification(brand="Nike", model="Air Max 90", expected_price=110),
        )

        result = identification_validator.validate(evidence)

        assert result.issues == []
        assert result.confidence == 1.0
        assert result.stats.passed_checks == 5


class TestPriceSanity:
    """Price checks against comps and expectation."""

    def test_expected_price_far_from_comps(self):
        titles = ["Nike Air Max 90 Black", "Nike Air Max 90 White", "Nike Air Max 90 Infrared"]
        evidence = IdentificationEvidence(
            comps=[comp(str(i), title=t, price=p) for i, (t, p) in enumerate(zip(titles, [100, 110, 90]))],
            product_identification=ProductIdentification(brand="Nike", expected_price=500),
        )

        result = identification_validator.validate(evidence)

        assert issue_types(result) == [(IssueType.PRICE_MISMATCH, Severity.ERROR)]
        assert result.issues[0].evidence["expected"] == 500
        assert result.issues[0].evidence["actual"] == pytest.approx(100.0)
        assert result.should_reidentify is True
        hint = result.reidentification_hints[0]
        assert hint.type == HintType.USE_COMP_SUGGESTION
        assert hint.value == "nike air max"

    def test_expected_price_from_attributes(self):
        evidence = IdentificationEvidence(
            comps=[comp("1", price=100), comp("2", price=100)],
            product_identification=ProductIdentification(attributes={"expectedPrice": "450"}),
        )
        issue = identification_validator.check_price_sanity(evidence)
        assert issue.severity == Severity.ERROR

    def test_expected_price_attribute_formats(self):
        def evidence(value):
            return IdentificationEvidence(product_identification=ProductIdentification(attributes={"expectedPrice": value}))

        assert evidence("$1,450").expected_price == 1450.0
        assert evidence(450).expected_price == 450.0
        assert evidence("about four hundred").expected_price is None
        assert evidence(["450"]).expected_price is None
        assert evidence("").expected_price is None

    def test_high_variance_is_warning(self):
        evidence = IdentificationEvidence(comps=[comp("1", price=10), comp("2", price=10), comp("3", price=500)])

        issue = identification_validator.check_price_sanity(evidence)

        assert issue.type == IssueType.PRICE_MISMATCH
        assert issue.severity == Severity.WARNING
        assert issue.evidence["price_range"] == {"min": 10, "max": 500}

    def test_low_relevance_comps_ignored(self):
        evidence = IdentificationEvidence(
            comps=[comp("1", price=100, relevance=0.2)],
            product_identification=ProductIdentification(expected_price=10000),
        )
        assert identification_validator.check_price_sanity(evidence) is None


class TestAttributeConsistency:
    """Brand and model agreement across sources."""

    def test_conflicting_brands(self):
        evidence = IdentificationEvidence(
            comps=[comp("1")],
            product_identification=ProductIdentification(brand="Nike"),
            media_brand="Adidas",
        )

        issues = identification_validator.check_attribute_consistency(evidence)

        assert [i.type for i in issues] == [IssueType.ATTRIBUTE_INCONSISTENCY]
        assert issues[0].evidence["brand_sources"] == ["nike", "adidas"]

    def test_brand_family_is_consistent(self):
        evidence = IdentificationEvidence(
            product_identification=ProductIdentification(brand="Nike"),
            ocr_brand="Jordan",
            upc_brand="NIKE",
        )
        assert identification_validator.check_attribute_consistency(evidence) == []

    def test_conflicting_models(self):
        evidence = IdentificationEvidence(
            product_identification=ProductIdentification(model="Air Max 90"),
            media_model="Dunk Low",
        )
        issues = identification_validator.check_attribute_consistency(evidence)
        assert issues[0].message == "Conflicting models detected: air max 90, dunk low"

    def test_requires_identification(self):
        evidence = IdentificationEvidence(media_brand="Nike", ocr_brand="Sony")
        assert identification_validator.check_attribute_consistency(evidence) == []

    def test_amazon_title_model(self):
        evidence = IdentificationEvidence(
            product_identification=ProductIdentification(model="WH-1000XM4"),
            amazon_top_title="Sony WH-1000XM5 Wireless Noise Canceling Headphones",
        )
        assert evidence.model_sources() == ["WH-1000XM4", "WH-1000XM5"]
        assert identification_validator.check_attribute_consistency(evidence) == []


def test_brand_relations():
    assert are_brands_related(["nike"]) is True
    assert are_brands_related(["apple", "iphone"]) is True
    assert are_brands_related(["louis vuitton", "louis vuitton paris"]) is True
    assert are_brands_related(["nike", "adidas"]) is False


def test_model_relations():
    assert are_models_related(["ps5", "ps4"]) is True
    assert are_models_related(["90", "95"]) is True
    assert are_models_related(["air max 90", "dunk low"]) is False


class TestVisualConsistency:
    """Image validation failures among top comps."""

    def failed(self, comp_id, relevance=0.8):
        return comp(
            comp_id,
            relevance=relevance,
            image_url=f"https://img.example.com/{comp_id}.jpg",
            extracted_data={"imageValidationFailed": True},
        )

    def test_all_failed_is_error(self):
        evidence = IdentificationEvidence(comps=[self.failed("1"), self.failed("2")])

        result = identification_validator.validate(evidence)

        assert (IssueType.VISUAL_MISMATCH, Severity.ERROR) in issue_types(result)
        assert result.is_valid is False
        # a single visual error is not enough to re-identify
        assert result.should_reidentify is False

    def test_majority_failed_is_warning(self):
        ok = comp("3", image_url="https://img.example.com/3.jpg")
        evidence = IdentificationEvidence(comps=[self.failed("1"), self.failed("2"), ok])

        issue = identification_validator.check_visual_consistency(evidence)

        assert issue.severity == Severity.WARNING
        assert issue.evidence == {"comps_checked": 3, "failed_count": 2}

    def test_single_comp_with_image(self):
        evidence = IdentificationEvidence(comps=[self.failed("1")])
        assert identification_validator.check_visual_consistency(evidence).severity == Severity.WARNING

    def test_low_relevance_comps_not_checked(self):
        evidence = IdentificationEvidence(comps=[self.failed("1", relevance=0.3), self.failed("2", relevance=0.3)])
        assert identification_validator.check_visual_consistency(evidence) is None


class TestCategoryConsistency:
    """Comp titles pointing at a different category."""

    WATCH_TITLES = ["Rolex Submariner Watch", "Omega Speedmaster Watch", "Seiko Automatic Watch"]

    def test_mismatch_warning(self):
        evidence = IdentificationEvidence(
            comps=[comp(str(i), title=t) for i, t in enumerate(self.WATCH_TITLES)],
            item_category="sneakers",
        )

        issue = identification_validator.check_category_consistency(evidence)

        assert issue.type == IssueType.CATEGORY_MISMATCH
        assert issue.severity == Severity.WARNING
        assert issue.evidence == {"expected": "sneakers", "actual": "watches"}

    def test_matching_category(self):
        evidence = IdentificationEvidence(
            comps=[comp(str(i), title=t) for i, t in enumerate(self.WATCH_TITLES)],
            product_identification=ProductIdentification(category=["Watches"]),
        )
        assert identification_validator.check_category_consistency(evidence) is None

    def test_general_item_category_skipped(self):
        evidence = IdentificationEvidence(comps=[comp(str(i), title=t) for i, t in enumerate(self.WATCH_TITLES)])
        assert identification_validator.check_category_consistency(evidence) is None

    def test_too_few_comps(self):
        evidence = IdentificationEvidence(
            comps=[comp("1", title="Rolex Submariner Watch")],
            item_category="sneakers",
        )
        assert identification_validator.check_category_consistency(evidence) is None


def test_hints_ordered_by_confidence():
    """Multiple errors produce hints, highest confidence first."""
    comps = [
        comp(
            str(i),
            title=title,
            image_url=f"https://img.example.com/{i}.jpg",
            extracted_data={"imageValidationFailed": True},
        )
        for i, title in enumerate(TestCategoryConsistency.WATCH_TITLES)
    ]
    evidence = IdentificationEvidence(
        comps=comps,
        product_identification=ProductIdentification(expected_price=1000),
        item_category="sneakers",
    )

    result = identification_validator.validate(evidence)

    assert result.stats.error_count == 2
    assert result.stats.warning_count == 1
    assert result.stats.passed_checks == 2
    assert result.confidence == pytest.approx(0.3)
    assert result.should_reidentify is True
    assert [h.type for h in result.reidentification_hints] == [
        HintType.TRY_CATEGORY,
        HintType.USE_COMP_SUGGESTION,
        HintType.SEARCH_DIFFERENT,
    ]
    assert result.reidentification_hints[0].value == "watches"
    assert result.reidentification_hints[1].value == "watch"


def test_extract_common_terms():
    titles = ["Nike Air Max 90 Black", "Nike Air Max 90 White", "Nike Air Max 95 Neon", "Adidas Samba OG"]
    assert extract_common_terms(titles) == ["nike", "air", "max"]
    assert extract_common_terms([]) == []
