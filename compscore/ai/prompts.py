"""Prompt templates and response schemas for vision LLM calls."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ImageComparisonPrompt(BaseModel):
    """Prompt schema for same-product image comparison."""

    strict: bool = True

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        parts = [
            "You are a product matching expert. Compare these two product images and "
            "determine if they show the SAME product (not just similar products).",
            "",
            "Consider:",
            "1. Is it the exact same product model?",
            "2. Are the brand, color, size variants the same?",
            "3. Minor differences in angle/lighting are OK - focus on whether it's the same product SKU.",
        ]

        if self.strict:
            parts.append("\nIMPORTANT: Be strict. Two similar products from the same brand are NOT the same product.")

        parts.extend([
            "",
            "Respond in JSON format:",
            '{"similarityScore": <number 0.0-1.0>, "isSameProduct": <boolean>, "reasoning": "<brief explanation>"}',
            "",
            "Scoring guide:",
            "- 0.95-1.0: Definitely same product (exact match)",
            "- 0.80-0.94: Very likely same product (same model, minor variant differences)",
            "- 0.50-0.79: Possibly same product (needs verification)",
            "- 0.20-0.49: Probably different products (same category but different model)",
            "- 0.0-0.19: Definitely different products",
        ])

        return "\n".join(parts)


class ImageComparisonResponse(BaseModel):
    """Structured response expected from the vision model."""

    similarity_score: float = Field(default=0.0, alias="similarityScore")
    is_same_product: Optional[bool] = Field(default=None, alias="isSameProduct")
    reasoning: str = "No reasoning provided"

    @field_validator("similarity_score", mode="before")
    @classmethod
    def clamp_score(cls, value):
        try:
            score = float(value or 0)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(1.0, score))

    @field_validator("reasoning", mode="before")
    @classmethod
    def default_reasoning(cls, value):
        return value or "No reasoning provided"
