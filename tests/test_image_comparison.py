"""Tests for the vision image comparison service."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from compscore.ai.image_comparison import ImageComparisonService, comparison_cache_key
from compscore.ai.prompts import ImageComparisonPrompt, ImageComparisonResponse

ITEM = ["https://img.example.com/item.jpg"]
COMP = ["https://img.example.com/comp.jpg"]


def vision_client(payload):
    """AsyncOpenAI stand-in whose completion returns the given content."""
    content = payload if isinstance(payload, str) or payload is None else json.dumps(payload)
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl


@pytest.mark.asyncio
async def test_missing_images():
    client = vision_client({"similarityScore": 1.0})
    service = ImageComparisonService(client=client, use_redis=False)

    result = await service.compare_images([], COMP)

    assert result.similarity_score == 0.0
    assert result.is_same_product is False
    assert result.reasoning == "Missing images for comparison"
    client.chat.completions.create.assert_not_called()


@pytest.mark.asyncio
async def test_non_http_urls_are_ignored():
    service = ImageComparisonService(client=vision_client({}), use_redis=False)
    result = await service.compare_images(["data:image/png;base64,AAAA", "/tmp/item.jpg"], COMP)
    assert result.reasoning == "Missing images for comparison"


def test_cache_key_is_order_independent():
    key = comparison_cache_key(ITEM[0], COMP[0])
    assert key == comparison_cache_key(COMP[0], ITEM[0])
    assert key.startswith("image_cmp:")
    assert key != comparison_cache_key(ITEM[0], "https://img.example.com/other.jpg")


@pytest.mark.asyncio
async def test_compare_images_calls_vision_model():
    client = vision_client({"similarityScore": 0.93, "isSameProduct": True, "reasoning": "Same colorway and logo"})
    service = ImageComparisonService(client=client, model="gpt-4o-mini", use_redis=False)

    result = await service.compare_images(ITEM, COMP)

    assert result.similarity_score == pytest.approx(0.93)
    assert result.is_same_product is True
    assert result.reasoning == "Same colorway and logo"
    assert result.cached is False

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["response_format"] == {"type": "json_object"}
    images = [part for part in kwargs["messages"][0]["content"] if part["type"] == "image_url"]
    assert [part["image_url"]["url"] for part in images] == [ITEM[0], COMP[0]]
    assert all(part["image_url"]["detail"] == "low" for part in images)


@pytest.mark.asyncio
async def test_second_call_is_cached():
    client = vision_client({"similarityScore": 0.4, "isSameProduct": False, "reasoning": "Different model"})
    service = ImageComparisonService(client=client, use_redis=False)

    await service.compare_images(ITEM, COMP)
    again = await service.compare_images(COMP, ITEM)

    assert again.cached is True
    assert again.similarity_score == pytest.approx(0.4)
    assert client.chat.completions.create.await_count == 1
    assert len(service._local_cache) == 1


@pytest.mark.asyncio
async def test_local_cache_is_bounded():
    """Oldest pair is evicted once the in-process cache is full."""
    client = vision_client({"similarityScore": 0.9, "isSameProduct": True, "reasoning": "Match"})
    service = ImageComparisonService(client=client, use_redis=False, local_cache_size=2)
    comps = [f"https://img.example.com/comp-{i}.jpg" for i in range(3)]

    for url in comps:
        await service.compare_images(ITEM, [url])

    assert len(service._local_cache) == 2
    assert comparison_cache_key(ITEM[0], comps[0]) not in service._local_cache

    again = await service.compare_images(ITEM, [comps[0]])
    assert again.cached is False
    assert client.chat.completions.create.await_count == 4
    assert len(service._local_cache) == 2


def test_local_cache_size_from_settings():
    service = ImageComparisonService(client=vision_client({}), use_redis=False)
    assert service._local_cache_size == 1000


@pytest.mark.asyncio
async def test_redis_cache_shared_between_instances():
    redis_client = FakeRedis()
    first = ImageComparisonService(
        client=vision_client({"similarityScore": 0.88, "isSameProduct": True, "reasoning": "Match"}),
        redis_client=redis_client,
    )
    await first.compare_images(ITEM, COMP)

    second_client = vision_client({})
    second = ImageComparisonService(client=second_client, redis_client=redis_client)
    result = await second.compare_images(ITEM, COMP)

    assert result.cached is True
    assert result.is_same_product is True
    assert result.similarity_score == pytest.approx(0.88)
    second_client.chat.completions.create.assert_not_called()
    assert list(redis_client.ttls.values()) == [7 * 24 * 3600]


@pytest.mark.asyncio
async def test_api_failure_returns_neutral_result():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
    service = ImageComparisonService(client=client, use_redis=False)

    result = await service.compare_images(ITEM, COMP)

    assert result.similarity_score == 0.5
    assert result.is_same_product is False
    assert result.reasoning == "Comparison failed: rate limited"
    assert len(service._local_cache) == 0


@pytest.mark.asyncio
async def test_empty_response_is_failure():
    service = ImageComparisonService(client=vision_client(None), use_redis=False)
    result = await service.compare_images(ITEM, COMP)
    assert result.similarity_score == 0.5
    assert result.reasoning.startswith("Comparison failed:")


@pytest.mark.asyncio
async def test_same_product_derived_from_score():
    """Missing isSameProduct falls back to the 0.80 threshold."""
    service = ImageComparisonService(client=vision_client({"similarityScore": 0.85}), use_redis=False)
    result = await service.compare_images(ITEM, COMP)
    assert result.is_same_product is True
    assert result.reasoning == "No reasoning provided"


def test_response_score_is_clamped():
    assert ImageComparisonResponse.model_validate({"similarityScore": 1.7}).similarity_score == 1.0
    assert ImageComparisonResponse.model_validate({"similarityScore": -2}).similarity_score == 0.0
    assert ImageComparisonResponse.model_validate({"similarityScore": "n/a"}).similarity_score == 0.0


def test_prompt_wording():
    prompt = ImageComparisonPrompt().to_prompt()
    assert "SAME product" in prompt
    assert "Be strict" in prompt
    assert "similarityScore" in prompt
    assert "Be strict" not in ImageComparisonPrompt(strict=False).to_prompt()
