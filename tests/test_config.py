"""Tests for engine configuration."""

import dataclasses

import pytest

from compscore.config import DEFAULT_VALIDATION_CONFIG, Settings, ValidationConfig


def test_default_thresholds():
    config = ValidationConfig()
    assert config.recency_threshold_days == 90
    assert config.min_validation_score == 0.70
    assert config.outlier_z_score_threshold == 2.5
    assert config.validated_comp_threshold == 0.60
    assert config.marginal_comp_floor == 0.25
    assert config.marginal_comp_discount == 0.50
    assert config.min_validated_comps == 5
    assert config.image_batch_size == 5


def test_with_overrides_returns_new_config():
    """Overrides never touch the original instance."""
    custom = DEFAULT_VALIDATION_CONFIG.with_overrides(recency_threshold_days=30)
    assert custom.recency_threshold_days == 30
    assert DEFAULT_VALIDATION_CONFIG.recency_threshold_days == 90
    assert custom.min_validation_score == DEFAULT_VALIDATION_CONFIG.min_validation_score


def test_with_overrides_rejects_unknown_fields():
    with pytest.raises(TypeError):
        DEFAULT_VALIDATION_CONFIG.with_overrides(not_a_threshold=1)


def test_config_is_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_VALIDATION_CONFIG.min_validation_score = 0.1


def test_settings_build_validation_config(monkeypatch):
    """Environment values flow into the immutable config."""
    monkeypatch.setenv("RECENCY_THRESHOLD_DAYS", "45")
    monkeypatch.setenv("MIN_VALIDATED_COMPS", "3")

    config = Settings().validation_config()

    assert config.recency_threshold_days == 45
    assert config.min_validated_comps == 3
    assert config.brand_match_threshold == 0.80
