"""Tests for text normalization and similarity."""

import pytest

from compscore.ai.text_processor import levenshtein, normalize_string, similarity, tokenize_title


def test_normalize_string():
    """Lowercases, trims and collapses whitespace."""
    assert normalize_string("  Air   Jordan\t1 ") == "air jordan 1"
    assert normalize_string(None) == ""
    assert normalize_string("") == ""


def test_similarity_identical_after_normalization():
    """Case and spacing differences are ignored."""
    assert similarity("Louis  Vuitton", "louis vuitton") == 1.0


def test_similarity_empty_side_is_zero():
    """An empty string never matches anything."""
    assert similarity("", "nike") == 0.0
    assert similarity("nike", None) == 0.0
    assert similarity(None, None) == 0.0


def test_similarity_containment_ratio():
    """Substring containment scores shorter/longer length."""
    assert similarity("nike", "nike air") == pytest.approx(4 / 8)
    assert similarity("nike air", "nike") == pytest.approx(4 / 8)


def test_similarity_edit_distance():
    """Accented brand differs by one substitution out of six characters."""
    assert similarity("Hermes", "Hermès") == pytest.approx(1 - 1 / 6)


def test_similarity_bounds():
    """Scores stay within [0, 1]."""
    pairs = [("abc", "xyz"), ("rolex", "role"), ("ps5 digital", "ps5 disc"), ("a", "bcdef")]
    for a, b in pairs:
        assert 0.0 <= similarity(a, b) <= 1.0


def test_levenshtein():
    """Classic edit distance examples."""
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("same", "same") == 0
    assert similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)


def test_tokenize_title():
    """Punctuation splits tokens and short tokens are dropped."""
    tokens = tokenize_title("Nike Air-Max 90 (Black/White) sz 10")
    assert tokens == ["nike", "air", "max", "black", "white"]
    assert tokenize_title(None) == []
