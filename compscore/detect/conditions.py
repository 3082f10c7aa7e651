"""Condition grade normalization for marketplace listings."""

from typing import Optional

from compscore.ai.text_processor import normalize_string

# Best to worst
CONDITION_GRADES = [
    "new",
    "new with tags",
    "new with box",
    "new without tags",
    "new without box",
    "open box",
    "like new",
    "excellent",
    "very good",
    "good",
    "acceptable",
    "fair",
    "used",
    "for parts",
    "for parts or not working",
]

CONDITION_ALIASES = {
    "brand new": "new",
    "mint": "like new",
    "mint condition": "like new",
    "near mint": "like new",
    "nm": "like new",
    "exc": "excellent",
    "exc+": "excellent",
    "vg": "very good",
    "vg+": "very good",
    "g": "good",
    "g+": "good",
    "acc": "acceptable",
    "poor": "for parts",
    "broken": "for parts or not working",
    "not working": "for parts or not working",
    "parts only": "for parts",
    "pre-owned": "used",
    "pre owned": "used",
    "preowned": "used",
    "refurbished": "very good",
    "seller refurbished": "very good",
    "manufacturer refurbished": "like new",
    "certified refurbished": "like new",
}

DEFAULT_GRADE = "used"

# Longest first so "new without box" wins over "new"
_GRADES_BY_LENGTH = sorted(CONDITION_GRADES, key=len, reverse=True)


def normalize_condition(condition: Optional[str]) -> str:
    """
    Map free-text condition to a grade from CONDITION_GRADES.

    Args:
        condition: Raw condition text (may be None)

    Returns:
        Canonical grade; "used" when nothing matches
    """
    text = normalize_string(condition)
    if not text:
        return DEFAULT_GRADE

    if text in CONDITION_ALIASES:
        return CONDITION_ALIASES[text]
    if text in CONDITION_GRADES:
        return text

    for grade in _GRADES_BY_LENGTH:
        if grade in text:
            return grade

    return DEFAULT_GRADE


def grade_index(condition: Optional[str]) -> int:
    """Position of the normalized condition in the grade list (0 = best)."""
    return CONDITION_GRADES.index(normalize_condition(condition))


def grade_distance(a: Optional[str], b: Optional[str]) -> int:
    """Absolute distance between two conditions on the grade list."""
    return abs(grade_index(a) - grade_index(b))
