"""Engine configuration using Pydantic settings."""

from dataclasses import dataclass, fields, replace

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ValidationConfig:
    """
    Immutable thresholds passed explicitly to every engine entry point.

    Use ``with_overrides`` to derive a variant; instances are never mutated.
    """

    # Per-comp validation
    recency_threshold_days: int = 90
    min_validation_score: float = 0.70
    outlier_z_score_threshold: float = 2.5
    min_relevance_score: float = 0.70

    # Comp-set filtering
    validated_comp_threshold: float = 0.60
    marginal_comp_floor: float = 0.25
    marginal_comp_discount: float = 0.50
    min_validated_comps: int = 5

    # Image verification
    image_same_product_threshold: float = 0.80
    image_partial_threshold: float = 0.50
    image_verified_score: float = 0.85
    image_failed_score: float = 0.20
    image_batch_size: int = 5

    # Criterion thresholds
    brand_match_threshold: float = 0.80
    model_match_threshold: float = 0.70
    variant_similarity_threshold: float = 0.80
    max_condition_grade_distance: int = 2
    condition_grade_penalty: float = 0.20

    def with_overrides(self, **overrides) -> "ValidationConfig":
        """
        Return a new config with the given fields replaced.

        Raises:
            TypeError: If an override names an unknown field
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown ValidationConfig fields: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)


DEFAULT_VALIDATION_CONFIG = ValidationConfig()


class Settings(BaseSettings):
    """Engine settings."""

    # App Settings
    log_level: str = "INFO"
    log_dir: str = ""  # empty = current working directory
    log_json: bool = True

    # Redis (image comparison cache)
    redis_url: str = "redis://localhost:6379/0"
    image_comparison_cache_ttl_seconds: int = 7 * 24 * 3600

    # OpenAI vision (image comparison)
    openai_api_key: str = ""
    image_comparison_model: str = "gpt-4o-mini"
    image_comparison_timeout: float = 30.0
    image_comparison_max_tokens: int = 300
    image_comparison_local_cache_size: int = 1000

    # Feature flags
    image_validation_enabled: bool = True
    keepa_enrichment_enabled: bool = False

    # Validation thresholds (see ValidationConfig)
    recency_threshold_days: int = 90
    min_validation_score: float = 0.70
    outlier_z_score_threshold: float = 2.5
    min_relevance_score: float = 0.70
    validated_comp_threshold: float = 0.60
    marginal_comp_floor: float = 0.25
    marginal_comp_discount: float = 0.50
    min_validated_comps: int = 5
    image_batch_size: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def validation_config(self) -> ValidationConfig:
        """Build an immutable ValidationConfig from the environment-backed settings."""
        return DEFAULT_VALIDATION_CONFIG.with_overrides(
            recency_threshold_days=self.recency_threshold_days,
            min_validation_score=self.min_validation_score,
            outlier_z_score_threshold=self.outlier_z_score_threshold,
            min_relevance_score=self.min_relevance_score,
            validated_comp_threshold=self.validated_comp_threshold,
            marginal_comp_floor=self.marginal_comp_floor,
            marginal_comp_discount=self.marginal_comp_discount,
            min_validated_comps=self.min_validated_comps,
            image_batch_size=self.image_batch_size,
        )


settings = Settings()
