"""Generative fallback: completion-provider backed recipe field extraction.

The generative strategy is the last, most expensive layer of the chain. It is
only asked about fields the pattern and heuristic strategies could not fill
with enough confidence, and its answers never outrank a local candidate of
equal confidence.

Provider contract:
- ``complete(prompt, response_schema)`` returns the raw JSON text
- responses are validated against a fixed, strict schema; any violation
  rejects the whole response
- calls are bounded by a shared semaphore and a per-call timeout, with one
  retry before the fields are given up
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from cookbook.config.settings import CompletionConfig
from cookbook.pipeline.models import ALL_FIELDS, LIST_FIELDS, ParseCandidate, Segment, StrategyKind
from cookbook.pipeline.strategies import ExtractionContext
from cookbook.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class GenerativeError(Exception):
    """Base class for recoverable generative failures."""


class GenerativeTimeout(GenerativeError):
    """The provider did not answer within the per-call timeout."""


class SchemaViolation(GenerativeError):
    """The provider answered with text that does not fit the recipe schema."""


class ProviderUnavailable(GenerativeError):
    """The provider failed or was never initialized."""


# --- Response schema ---


class GenerativeIngredient(BaseModel):
    amount: float | None = None
    unit: str = ""
    name: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


class GenerativeRecipe(BaseModel):
    """The only shape a provider response may take."""

    title: str | None = None
    servings: int | None = Field(default=None, ge=1)
    prep_time: int | None = Field(default=None, ge=0)
    cook_time: int | None = Field(default=None, ge=0)
    ingredients: list[GenerativeIngredient]
    steps: list[str]

    model_config = {"extra": "forbid"}


RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "nullable": True},
        "servings": {"type": "integer", "nullable": True},
        "prep_time": {"type": "integer", "nullable": True},
        "cook_time": {"type": "integer", "nullable": True},
        "ingredients": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "amount": {"type": "number", "nullable": True},
                    "unit": {"type": "string"},
                    "name": {"type": "string"},
                },
                "required": ["name"],
            },
        },
        "steps": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["ingredients", "steps"],
}


def parse_response(raw: str) -> GenerativeRecipe:
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise SchemaViolation(f"response is not JSON: {exc}") from exc
    try:
        return GenerativeRecipe.model_validate(data)
    except ValidationError as exc:
        raise SchemaViolation(f"response violates recipe schema: {exc.error_count()} errors") from exc


def build_prompt(text: str, fields: tuple[str, ...]) -> str:
    return (
        "You are an expert cookbook transcriber. Extract the recipe from the text "
        "below, which was OCR'd or decoded from a printed cookbook.\n\n"
        f"Fields needed: {', '.join(fields)}\n\n"
        "Rules:\n"
        "  1. servings is the number of people or portions as an integer.\n"
        "  2. prep_time and cook_time are whole minutes.\n"
        "  3. Each ingredient is {amount, unit, name}; amount is a JSON number or "
        "null, unit is an empty string when the text gives none.\n"
        "  4. steps are the instructions in order, one string per step, without "
        "their numbering.\n"
        "  5. Use null for a field the text does not contain. Never guess.\n\n"
        f"Text:\n{text}"
    )


# --- Providers ---


class CompletionProvider(Protocol):
    async def complete(self, prompt: str, response_schema: dict[str, Any]) -> str: ...


class VertexCompletionProvider:
    """Completion provider backed by Vertex AI Gemini.

    Optional: without a project id the pipeline runs pattern and heuristic only.
    """

    def __init__(self, config: CompletionConfig) -> None:
        self._config = config
        self._client: Any = None
        self._initialized = False

    async def initialize(self) -> bool:
        if not self._config.project_id:
            return False

        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel

            vertexai.init(
                project=self._config.project_id,
                location=self._config.location,
            )
            self._client = GenerativeModel(self._config.model)
            self._initialized = True
            return True
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.PROVIDER_INITIALIZATION_FAILED,
                message=str(exc),
                suppressed=True,
            )
            self._initialized = False
            return False

    @property
    def is_available(self) -> bool:
        return self._initialized and self._client is not None

    async def complete(self, prompt: str, response_schema: dict[str, Any]) -> str:
        if not self.is_available:
            raise ProviderUnavailable("Vertex AI provider is not initialized")

        from vertexai.generative_models import GenerationConfig

        response = await self._client.generate_content_async(
            prompt,
            generation_config=GenerationConfig(
                response_mime_type="application/json",
                response_schema=response_schema,
            ),
        )
        return response.text


# --- Strategy ---

_ERROR_CODES: dict[type[GenerativeError], ErrorCode] = {
    GenerativeTimeout: ErrorCode.GENERATIVE_TIMEOUT,
    SchemaViolation: ErrorCode.GENERATIVE_SCHEMA_VIOLATION,
    ProviderUnavailable: ErrorCode.GENERATIVE_PROVIDER_FAILED,
}


class GenerativeStrategy:
    """Asks the completion provider for the fields the local strategies missed."""

    strategy_id = "generative"
    kind = StrategyKind.GENERATIVE

    def __init__(self, provider: CompletionProvider, config: CompletionConfig | None = None) -> None:
        self._provider = provider
        self._config = config or CompletionConfig()
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_calls)
        self._calls = 0

    @property
    def calls(self) -> int:
        """Number of provider calls made, retries included."""
        return self._calls

    async def extract(
        self,
        segment: Segment,
        context: ExtractionContext,
        fields: tuple[str, ...] = ALL_FIELDS,
    ) -> list[ParseCandidate]:
        if not fields:
            return []
        try:
            recipe = await self.complete_recipe(segment, fields)
        except GenerativeError as exc:
            emit_structured_error(
                logger,
                code=_ERROR_CODES.get(type(exc), ErrorCode.GENERATIVE_PROVIDER_FAILED),
                message=str(exc),
                suppressed=True,
                document_id=context.document_id,
                segment_id=segment.segment_id,
                details={"fields": list(fields)},
            )
            return []

        confidence = context.config.generative_confidence
        values = recipe.model_dump()
        candidates = []
        for field_name in fields:
            value = values.get(field_name)
            if field_name == "ingredients":
                value = [dict(entry, confidence=confidence) for entry in value]
            elif field_name == "steps":
                value = [{"text": text, "confidence": confidence} for text in value if text.strip()]
            empty = value is None or value == "" or (field_name in LIST_FIELDS and not value)
            candidates.append(
                ParseCandidate(
                    segment_id=segment.segment_id,
                    strategy_id=self.strategy_id,
                    field_name=field_name,
                    value=value,
                    confidence=0.0 if empty else confidence,
                )
            )
        return candidates

    async def complete_recipe(self, segment: Segment, fields: tuple[str, ...]) -> GenerativeRecipe:
        """Call the provider with retry; raises the last GenerativeError on failure."""
        prompt = build_prompt(segment.raw_text[: self._config.max_prompt_chars], fields)
        last_error: GenerativeError = ProviderUnavailable("no attempt made")

        for attempt in range(self._config.max_attempts):
            try:
                async with self._semaphore:
                    self._calls += 1
                    raw = await asyncio.wait_for(
                        self._provider.complete(prompt, RESPONSE_SCHEMA),
                        timeout=self._config.timeout_s,
                    )
                return parse_response(raw)
            except asyncio.TimeoutError:
                last_error = GenerativeTimeout(
                    f"no response within {self._config.timeout_s}s"
                )
            except GenerativeError as exc:
                last_error = exc
            except Exception as exc:
                last_error = ProviderUnavailable(str(exc))
            logger.warning(
                "generative attempt %d/%d for %s failed: %s",
                attempt + 1,
                self._config.max_attempts,
                segment.segment_id,
                last_error,
            )

        raise last_error
