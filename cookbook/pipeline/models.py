"""Extraction data models: segments, field candidates and merged drafts with confidence."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

SCALAR_FIELDS: tuple[str, ...] = ("title", "servings", "prep_time", "cook_time")
LIST_FIELDS: tuple[str, ...] = ("ingredients", "steps")
ALL_FIELDS: tuple[str, ...] = SCALAR_FIELDS + LIST_FIELDS
REQUIRED_FIELDS: tuple[str, ...] = ("title", "ingredients", "steps")

# Document ids name a directory under the data dir.
DOCUMENT_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


def is_valid_document_id(document_id: str) -> bool:
    return re.fullmatch(DOCUMENT_ID_PATTERN, document_id) is not None


class StrategyKind(str, Enum):
    """Strategy families in merge priority order."""

    PATTERN = "pattern"
    HEURISTIC = "heuristic"
    GENERATIVE = "generative"


# Lower value wins a confidence tie.
KIND_PRIORITY: dict[StrategyKind, int] = {
    StrategyKind.PATTERN: 0,
    StrategyKind.HEURISTIC: 1,
    StrategyKind.GENERATIVE: 2,
}


class DraftState(str, Enum):
    COMPLETE = "complete"
    NEEDS_REVIEW = "needs_review"
    INCOMPLETE = "incomplete"


class DocumentInput(BaseModel):
    """Raw document text handed over by the external extractor."""

    document_id: str = Field(pattern=DOCUMENT_ID_PATTERN)
    text: str
    boundary_hints: list[int] = Field(default_factory=list)
    fingerprint: str | None = None

    @model_validator(mode="after")
    def _validate_hints(self) -> "DocumentInput":
        previous = -1
        for hint in self.boundary_hints:
            if hint <= previous:
                raise ValueError("boundary_hints must be strictly increasing")
            if hint < 0 or hint > len(self.text):
                raise ValueError(f"boundary hint {hint} outside document text")
            previous = hint
        return self


class Segment(BaseModel):
    """A contiguous span of document text treated as one candidate recipe."""

    index: int = Field(ge=0)
    offset_range: tuple[int, int]
    raw_text: str
    heading_guess: str | None = None

    model_config = {"frozen": True}

    @field_validator("offset_range")
    @classmethod
    def _validate_range(cls, value: tuple[int, int]) -> tuple[int, int]:
        start, end = value
        if start < 0 or end < start:
            raise ValueError(f"invalid offset range {value}")
        return value

    @property
    def segment_id(self) -> str:
        return f"seg-{self.index:04d}-{self.offset_range[0]}"


class ParseCandidate(BaseModel):
    """One strategy's proposal for one field of one segment."""

    segment_id: str
    strategy_id: str
    field_name: str
    value: Any
    confidence: float = Field(ge=0.0, le=1.0)

    model_config = {"frozen": True}

    @field_validator("field_name")
    @classmethod
    def _validate_field(cls, value: str) -> str:
        if value not in ALL_FIELDS:
            raise ValueError(f"Unknown field: {value}")
        return value

    @property
    def is_empty(self) -> bool:
        return self.value is None or self.value == [] or self.value == ""


class IngredientEntry(BaseModel):
    amount: float | None = None
    unit: str = ""
    name: str
    confidence: float = Field(ge=0.0, le=1.0)


class StepEntry(BaseModel):
    text: str
    confidence: float = Field(ge=0.0, le=1.0)


class FieldValue(BaseModel):
    """A single merged scalar field with confidence and provenance."""

    value: Any = None
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    strategy_id: str | None = None


class MergedRecipeDraft(BaseModel):
    """A merged, not-yet-committed recipe record.

    Every draft has:
    - Scalar fields with their own confidence and the strategy that produced them
    - Ingredient and step entries, each with an explicit confidence
    - The list of fields that fell below the review floor
    - An overall state derived from the required fields
    """

    draft_id: str
    segment_id: str
    document_fingerprint: str
    library_version: int
    title: FieldValue = Field(default_factory=FieldValue)
    servings: FieldValue = Field(default_factory=FieldValue)
    prep_time: FieldValue = Field(default_factory=FieldValue)
    cook_time: FieldValue = Field(default_factory=FieldValue)
    ingredients: list[IngredientEntry] = Field(default_factory=list)
    steps: list[StepEntry] = Field(default_factory=list)
    field_confidence: dict[str, float] = Field(default_factory=dict)
    field_sources: dict[str, str | None] = Field(default_factory=dict)
    review_fields: list[str] = Field(default_factory=list)
    overall_state: DraftState = DraftState.NEEDS_REVIEW

    @model_validator(mode="after")
    def _title_or_incomplete(self) -> "MergedRecipeDraft":
        title = self.title.value
        if (not isinstance(title, str) or not title.strip()) and (
            self.overall_state != DraftState.INCOMPLETE
        ):
            raise ValueError("a draft without a title must be flagged incomplete")
        return self

    def field_values(self) -> dict[str, Any]:
        """Plain field values, the shape compared when learning from corrections."""
        return {
            "title": self.title.value,
            "servings": self.servings.value,
            "prep_time": self.prep_time.value,
            "cook_time": self.cook_time.value,
            "ingredients": [
                {"amount": i.amount, "unit": i.unit, "name": i.name} for i in self.ingredients
            ],
            "steps": [s.text for s in self.steps],
        }
