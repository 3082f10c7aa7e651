"""Tests for attribute extractor."""

from compscore.ai.attribute_extractor import attribute_extractor
from compscore.models import CandidateRecord


def test_extract_with_rules_phone():
    """Storage and color from a phone title."""
    attributes = attribute_extractor.extract_with_rules("Apple iPhone 14 Pro 256GB Space Gray Unlocked")

    assert attributes["storage"] == "256GB"
    assert attributes["edition"] == "pro"
    assert attributes["color"] == "space gray"


def test_extract_grade():
    """Card grade keeps the grading company."""
    attributes = attribute_extractor.extract_with_rules("1999 Pokemon Base Set Charizard Holo psa 9")

    assert attributes["grade"] == "PSA 9"
    assert attributes["year"] == "1999"


def test_extract_size_variants():
    assert attribute_extractor._extract_size("Air Jordan 1 Bred Size 10.5") == "10.5"
    assert attribute_extractor._extract_size("Levi's 501 Jeans W32 L34") == "W32 L34"
    assert attribute_extractor._extract_size("Yeezy 350 Zebra 9.5 M") == "9.5"
    assert attribute_extractor._extract_size("Supreme Box Logo Hoodie XL") == "XL"
    assert attribute_extractor._extract_size("Sony WH-1000XM4 Headphones") is None


def test_extract_ref_number():
    assert attribute_extractor._extract_ref_number("Rolex Submariner Ref. 116610LN Box Papers") == "116610LN"


def test_empty_title():
    assert attribute_extractor.extract_with_rules("") == {}


class TestEnrichComp:
    """Filling extracted_data gaps on comps."""

    def test_existing_values_are_kept(self):
        comp = CandidateRecord(
            id="1",
            title="iPhone 14 Pro 256GB Black",
            extracted_data={"storage": "128GB"},
        )

        enriched = attribute_extractor.enrich_comp(comp)

        assert enriched.extracted_data["storage"] == "128GB"
        assert enriched.extracted_data["color"] == "black"
        assert comp.extracted_data == {"storage": "128GB"}

    def test_condition_not_taken_from_title(self):
        """Brand words like "New" never become a listing condition."""
        comp = CandidateRecord(id="1", title="New Balance 990v5 Grey Mens Running Shoe")

        enriched = attribute_extractor.enrich_comp(comp)

        assert enriched.condition is None
        assert enriched.extracted_data == {"color": "grey"}

    def test_listing_condition_is_kept(self):
        comp = CandidateRecord(id="1", title="Galaxy S23 Brand New Sealed", condition="used")
        assert attribute_extractor.enrich_comp(comp).condition == "used"

    def test_nothing_found_returns_same_record(self):
        comp = CandidateRecord(id="1", title="ceramic flower pot", condition="good")
        assert attribute_extractor.enrich_comp(comp) is comp

    def test_enrich_comps_keeps_order(self):
        comps = [
            CandidateRecord(id="a", title="Steam Deck OLED 512GB"),
            CandidateRecord(id="b", title="flower pot"),
        ]
        enriched = attribute_extractor.enrich_comps(comps)
        assert [c.id for c in enriched] == ["a", "b"]
        assert enriched[0].extracted_data["storage"] == "512GB"
