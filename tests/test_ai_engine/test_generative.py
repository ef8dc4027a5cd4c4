"""Tests for the generative fallback strategy and its response schema."""

import asyncio
import json

import pytest

from cookbook.ai_engine.engine import (
    GenerativeStrategy,
    ProviderUnavailable,
    SchemaViolation,
    VertexCompletionProvider,
    build_prompt,
    parse_response,
)
from cookbook.config.settings import CompletionConfig
from cookbook.pipeline.models import Segment
from cookbook.pipeline.strategies import ExtractionContext

VALID = json.dumps(
    {
        "title": "Kuchen",
        "servings": 4,
        "cook_time": None,
        "ingredients": [{"amount": 200, "unit": "g", "name": "Mehl"}],
        "steps": ["Backen.", "  "],
    }
)


class ScriptedProvider:
    """Replays canned outcomes: a string is returned, an exception raised."""

    def __init__(self, *outcomes, delay=0.0):
        self._outcomes = list(outcomes)
        self._delay = delay
        self.prompts = []
        self.active = 0
        self.max_active = 0

    async def complete(self, prompt, response_schema):
        self.prompts.append(prompt)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1


@pytest.fixture
def segment():
    text = "Kuchen\n200 g Mehl\nBacken."
    return Segment(index=0, offset_range=(0, len(text)), raw_text=text)


@pytest.fixture
def context():
    return ExtractionContext(document_id="doc", fingerprint="fp")


class TestResponseSchema:
    def test_valid_response(self):
        recipe = parse_response(VALID)
        assert recipe.title == "Kuchen"
        assert recipe.ingredients[0].amount == 200.0

    def test_not_json(self):
        with pytest.raises(SchemaViolation):
            parse_response("Here is your recipe: ...")

    def test_unknown_key_rejected(self):
        with pytest.raises(SchemaViolation):
            parse_response(json.dumps({"ingredients": [], "steps": [], "calories": 300}))

    def test_required_lists(self):
        with pytest.raises(SchemaViolation):
            parse_response(json.dumps({"title": "Kuchen", "ingredients": []}))

    def test_wrong_type_rejected(self):
        with pytest.raises(SchemaViolation):
            parse_response(json.dumps({"servings": "vier", "ingredients": [], "steps": []}))

    def test_prompt_names_fields(self):
        prompt = build_prompt("Kuchen", ("servings", "steps"))
        assert "servings, steps" in prompt
        assert prompt.endswith("Kuchen")


class TestGenerativeStrategy:
    @pytest.mark.asyncio
    async def test_candidates_for_requested_fields_only(self, segment, context):
        strategy = GenerativeStrategy(ScriptedProvider(VALID))
        candidates = await strategy.extract(segment, context, ("title", "steps", "cook_time"))
        by_field = {c.field_name: c for c in candidates}

        assert set(by_field) == {"title", "steps", "cook_time"}
        assert by_field["title"].value == "Kuchen"
        assert by_field["title"].confidence == 0.7
        assert by_field["title"].strategy_id == "generative"
        assert by_field["steps"].value == [{"text": "Backen.", "confidence": 0.7}]
        assert by_field["cook_time"].value is None
        assert by_field["cook_time"].confidence == 0.0

    @pytest.mark.asyncio
    async def test_ingredient_entries_carry_confidence(self, segment, context):
        strategy = GenerativeStrategy(ScriptedProvider(VALID))
        (candidate,) = await strategy.extract(segment, context, ("ingredients",))
        assert candidate.value == [
            {"amount": 200.0, "unit": "g", "name": "Mehl", "confidence": 0.7}
        ]

    @pytest.mark.asyncio
    async def test_schema_violation_yields_nothing(self, segment, context):
        provider = ScriptedProvider('{"steps": "Backen"}')
        strategy = GenerativeStrategy(provider)
        assert await strategy.extract(segment, context, ("steps",)) == []
        assert strategy.calls == 2

    @pytest.mark.asyncio
    async def test_retry_recovers(self, segment, context):
        provider = ScriptedProvider("not json", VALID)
        strategy = GenerativeStrategy(provider)
        candidates = await strategy.extract(segment, context, ("title",))
        assert candidates[0].value == "Kuchen"
        assert strategy.calls == 2

    @pytest.mark.asyncio
    async def test_timeout_yields_nothing(self, segment, context):
        config = CompletionConfig(timeout_s=0.05, max_attempts=1)
        strategy = GenerativeStrategy(ScriptedProvider(VALID, delay=1.0), config)
        assert await strategy.extract(segment, context, ("title",)) == []
        assert strategy.calls == 1

    @pytest.mark.asyncio
    async def test_provider_exception_becomes_unavailable(self, segment):
        strategy = GenerativeStrategy(
            ScriptedProvider(RuntimeError("quota exceeded")), CompletionConfig(max_attempts=1)
        )
        with pytest.raises(ProviderUnavailable, match="quota exceeded"):
            await strategy.complete_recipe(segment, ("title",))

    @pytest.mark.asyncio
    async def test_no_fields_no_call(self, segment, context):
        provider = ScriptedProvider(VALID)
        strategy = GenerativeStrategy(provider)
        assert await strategy.extract(segment, context, ()) == []
        assert provider.prompts == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, segment, context):
        provider = ScriptedProvider(VALID, delay=0.02)
        strategy = GenerativeStrategy(provider, CompletionConfig(max_concurrent_calls=2))
        await asyncio.gather(*(strategy.extract(segment, context, ("title",)) for _ in range(6)))
        assert provider.max_active == 2
        assert strategy.calls == 6

    @pytest.mark.asyncio
    async def test_prompt_is_truncated(self, context):
        text = "x" * 500
        segment = Segment(index=0, offset_range=(0, 500), raw_text=text)
        provider = ScriptedProvider(VALID)
        strategy = GenerativeStrategy(provider, CompletionConfig(max_prompt_chars=100))
        await strategy.extract(segment, context, ("title",))
        assert "x" * 100 in provider.prompts[0]
        assert "x" * 101 not in provider.prompts[0]


class TestVertexCompletionProvider:
    @pytest.mark.asyncio
    async def test_unconfigured_provider_is_unavailable(self):
        provider = VertexCompletionProvider(CompletionConfig(project_id=""))
        assert await provider.initialize() is False
        assert provider.is_available is False
        with pytest.raises(ProviderUnavailable):
            await provider.complete("prompt", {})
