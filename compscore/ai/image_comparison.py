"""Image comparison service using OpenAI vision with Redis caching."""

import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import List, Optional, Protocol, Sequence

import redis.asyncio as redis
from openai import AsyncOpenAI
from pydantic import ValidationError

from compscore.ai.prompts import ImageComparisonPrompt, ImageComparisonResponse
from compscore.config import settings
from compscore.exceptions import ImageComparisonError

logger = logging.getLogger(__name__)

SAME_PRODUCT_THRESHOLD = 0.80
NEUTRAL_SCORE = 0.5


@dataclass(frozen=True)
class ImageComparisonResult:
    """Outcome of comparing an item image with a comp image."""

    similarity_score: float
    is_same_product: bool
    reasoning: str
    cached: bool = False


class ImageComparer(Protocol):
    """Anything that can compare item images with comp images."""

    async def compare_images(self, item_urls: Sequence[str], comp_urls: Sequence[str]) -> ImageComparisonResult:
        ...


def _http_urls(urls: Sequence[Optional[str]]) -> List[str]:
    return [url for url in urls if url and url.startswith("http")]


def comparison_cache_key(url_a: str, url_b: str) -> str:
    """Order-independent cache key for an image pair."""
    combined = "|".join(sorted([url_a, url_b]))
    return f"image_cmp:{hashlib.md5(combined.encode('utf-8')).hexdigest()}"


class ImageComparisonService:
    """
    Compares product photos with a vision model to verify keyword-matched comps.

    Features:
    - OpenAI vision call with low-detail images and JSON output
    - Redis cache keyed by the image pair, with a bounded in-process LRU in front
    - Neutral result (0.5, not same product) when the API call fails
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        redis_client: Optional[redis.Redis] = None,
        model: Optional[str] = None,
        use_redis: bool = True,
        local_cache_size: Optional[int] = None,
    ):
        self._client = client
        self._redis = redis_client
        self._use_redis = use_redis
        self._local_cache: "OrderedDict[str, ImageComparisonResult]" = OrderedDict()
        self._local_cache_size = local_cache_size or settings.image_comparison_local_cache_size
        self.model = model or settings.image_comparison_model

    async def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            if not settings.openai_api_key:
                raise ValueError("OpenAI API key not configured")
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    async def _get_redis(self) -> Optional[redis.Redis]:
        """Get or create Redis connection for the comparison cache."""
        if not self._use_redis:
            return None

        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis for image cache: {e}")
                self._use_redis = False
                return None
        return self._redis

    async def _cache_get(self, key: str) -> Optional[ImageComparisonResult]:
        if key in self._local_cache:
            self._local_cache.move_to_end(key)
            return self._local_cache[key]

        redis_client = await self._get_redis()
        if redis_client is None:
            return None
        try:
            raw = await redis_client.get(key)
        except Exception as e:
            logger.warning(f"Image cache read failed: {e}")
            return None
        if not raw:
            return None
        try:
            parsed = ImageComparisonResponse.model_validate_json(raw)
        except ValidationError:
            return None
        return self._to_result(parsed)

    async def _cache_set(self, key: str, result: ImageComparisonResult):
        self._local_cache[key] = result
        self._local_cache.move_to_end(key)
        while len(self._local_cache) > self._local_cache_size:
            self._local_cache.popitem(last=False)

        redis_client = await self._get_redis()
        if redis_client is None:
            return
        payload = ImageComparisonResponse(
            similarityScore=result.similarity_score,
            isSameProduct=result.is_same_product,
            reasoning=result.reasoning,
        ).model_dump_json(by_alias=True)
        try:
            await redis_client.setex(key, settings.image_comparison_cache_ttl_seconds, payload)
        except Exception as e:
            logger.warning(f"Image cache write failed: {e}")

    @staticmethod
    def _to_result(parsed: ImageComparisonResponse, cached: bool = False) -> ImageComparisonResult:
        score = parsed.similarity_score
        same = parsed.is_same_product if parsed.is_same_product is not None else score >= SAME_PRODUCT_THRESHOLD
        return ImageComparisonResult(
            similarity_score=score,
            is_same_product=same,
            reasoning=parsed.reasoning,
            cached=cached,
        )

    async def compare_images(self, item_urls: Sequence[str], comp_urls: Sequence[str]) -> ImageComparisonResult:
        """
        Compare the primary item image with the primary comp image.

        Args:
            item_urls: Item image URLs (non-http entries are ignored)
            comp_urls: Comp image URLs (non-http entries are ignored)

        Returns:
            ImageComparisonResult; neutral 0.5 when the vision call fails
        """
        item_images = _http_urls(item_urls)
        comp_images = _http_urls(comp_urls)

        if not item_images or not comp_images:
            logger.debug("Missing images for comparison")
            return ImageComparisonResult(
                similarity_score=0.0,
                is_same_product=False,
                reasoning="Missing images for comparison",
            )

        key = comparison_cache_key(item_images[0], comp_images[0])
        cached = await self._cache_get(key)
        if cached is not None:
            logger.debug(f"Image comparison cache hit: {key[-8:]}")
            return replace(cached, cached=True)

        try:
            result = await self._perform_comparison(item_images[0], comp_images[0])
        except Exception as e:
            logger.error(f"Image comparison failed: {e}")
            return ImageComparisonResult(
                similarity_score=NEUTRAL_SCORE,
                is_same_product=False,
                reasoning=f"Comparison failed: {e}",
            )

        await self._cache_set(key, result)
        return result

    async def _perform_comparison(self, item_url: str, comp_url: str) -> ImageComparisonResult:
        client = await self._get_client()
        prompt = ImageComparisonPrompt().to_prompt()

        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": item_url, "detail": "low"}},
                        {"type": "image_url", "image_url": {"url": comp_url, "detail": "low"}},
                    ],
                }
            ],
            max_tokens=settings.image_comparison_max_tokens,
            response_format={"type": "json_object"},
            timeout=settings.image_comparison_timeout,
        )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ImageComparisonError(comp_url, "No response from vision model")

        try:
            parsed = ImageComparisonResponse.model_validate_json(content)
        except ValidationError as e:
            raise ImageComparisonError(comp_url, f"Malformed vision response: {e}") from e

        return self._to_result(parsed)
