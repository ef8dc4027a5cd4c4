"""Learning store: append-only log of human-corrected drafts.

Each correction becomes one immutable TrainingExample holding the source
segment text, the draft as the pipeline produced it, the draft after the
human edit, and the field-level diff between the two. The diff is computed
once, at append time. A review that changes nothing is still recorded: it
confirms the pipeline got the segment right.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from cookbook.config.settings import LearningConfig
from cookbook.pipeline.models import (
    ALL_FIELDS,
    SCALAR_FIELDS,
    DraftState,
    FieldValue,
    IngredientEntry,
    MergedRecipeDraft,
    StepEntry,
)
from cookbook.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

HUMAN_SOURCE = "human"


class LearningPersistenceError(Exception):
    """Raised when a training example cannot be written to the log."""


class FieldDelta(BaseModel):
    field: str
    before: Any = None
    after: Any = None

    model_config = {"frozen": True}


class CorrectedIngredient(BaseModel):
    """An ingredient as a reviewer writes it back; confidence is not theirs to set."""

    amount: float | None = Field(default=None, ge=0.0)
    unit: str = ""
    name: str = Field(min_length=1)

    model_config = {"extra": "ignore"}


class CorrectedFields(BaseModel):
    """Value types a reviewer may write into each draft field."""

    title: str | None = None
    servings: int | None = Field(default=None, ge=1)
    prep_time: int | None = Field(default=None, ge=0)
    cook_time: int | None = Field(default=None, ge=0)
    ingredients: list[CorrectedIngredient | str] | None = None
    steps: list[str] | None = None

    model_config = {"extra": "forbid"}


class Correction(BaseModel):
    """A reviewer's edit to one draft. Fields left out are accepted as-is."""

    draft_id: str
    corrected_fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("corrected_fields")
    @classmethod
    def _validate_fields(cls, value: dict[str, Any]) -> dict[str, Any]:
        unknown = set(value) - set(ALL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown fields: {sorted(unknown)}")
        if not value:
            return {}
        typed = CorrectedFields.model_validate(value)
        return typed.model_dump(include=set(value))


class TrainingExample(BaseModel):
    example_id: str
    document_fingerprint: str
    draft_id: str
    source_text: str
    original_draft: MergedRecipeDraft
    corrected_draft: MergedRecipeDraft
    diff: list[FieldDelta] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}

    @property
    def is_confirmation(self) -> bool:
        return not self.diff


def _ingredient(value: Any) -> IngredientEntry:
    if isinstance(value, str):
        return IngredientEntry(name=value, confidence=1.0)
    data = dict(value)
    data["confidence"] = 1.0
    return IngredientEntry(**data)


def apply_correction(draft: MergedRecipeDraft, correction: Correction) -> MergedRecipeDraft:
    """The reviewed draft: edited fields at confidence 1.0 from the human source."""
    update: dict[str, Any] = {}
    field_confidence = dict(draft.field_confidence)
    field_sources = dict(draft.field_sources)

    for field_name, value in correction.corrected_fields.items():
        if field_name in SCALAR_FIELDS:
            update[field_name] = FieldValue(value=value, confidence=1.0, strategy_id=HUMAN_SOURCE)
        elif field_name == "ingredients":
            update[field_name] = [_ingredient(v) for v in value or []]
        else:
            update[field_name] = [StepEntry(text=v, confidence=1.0) for v in value or []]
        field_confidence[field_name] = 1.0
        field_sources[field_name] = HUMAN_SOURCE

    title = update.get("title", draft.title).value
    has_title = isinstance(title, str) and bool(title.strip())
    update.update(
        field_confidence=field_confidence,
        field_sources=field_sources,
        review_fields=[],
        overall_state=DraftState.COMPLETE if has_title else DraftState.INCOMPLETE,
    )
    return MergedRecipeDraft.model_validate({**draft.model_dump(), **_dump(update)})


def _dump(update: dict[str, Any]) -> dict[str, Any]:
    dumped: dict[str, Any] = {}
    for key, value in update.items():
        if isinstance(value, BaseModel):
            dumped[key] = value.model_dump()
        elif isinstance(value, list):
            dumped[key] = [v.model_dump() if isinstance(v, BaseModel) else v for v in value]
        else:
            dumped[key] = value
    return dumped


def diff_drafts(original: MergedRecipeDraft, corrected: MergedRecipeDraft) -> list[FieldDelta]:
    """True value changes only; confidence and provenance are not deltas."""
    before = original.field_values()
    after = corrected.field_values()
    return [
        FieldDelta(field=f, before=before[f], after=after[f])
        for f in ALL_FIELDS
        if before[f] != after[f]
    ]


class LearningStore:
    """JSONL-backed, append-only training example log."""

    def __init__(self, path: Path, config: LearningConfig | None = None) -> None:
        self._path = path
        self._config = config or LearningConfig()
        self._lock = threading.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def for_data_dir(cls, data_dir: Path, config: LearningConfig | None = None) -> "LearningStore":
        return cls(data_dir / "learning" / "training_examples.jsonl", config)

    @property
    def path(self) -> Path:
        return self._path

    def build_example(
        self, draft: MergedRecipeDraft, correction: Correction, source_text: str
    ) -> TrainingExample:
        if correction.draft_id != draft.draft_id:
            raise ValueError(f"Correction for {correction.draft_id} applied to {draft.draft_id}")
        corrected = apply_correction(draft, correction)
        return TrainingExample(
            example_id=f"ex_{uuid.uuid4().hex[:12]}",
            document_fingerprint=draft.document_fingerprint,
            draft_id=draft.draft_id,
            source_text=source_text,
            original_draft=draft,
            corrected_draft=corrected,
            diff=diff_drafts(draft, corrected),
        )

    async def append(self, example: TrainingExample) -> TrainingExample | None:
        """Append with bounded retry. Returns None if the example was dropped."""
        attempts = self._config.persistence_retries
        for attempt in range(attempts):
            try:
                self._write(example)
                logger.info(
                    "recorded training example %s for draft %s (%d deltas)",
                    example.example_id,
                    example.draft_id,
                    len(example.diff),
                )
                return example
            except LearningPersistenceError as exc:
                if attempt + 1 < attempts:
                    logger.warning("learning append attempt %d failed: %s", attempt + 1, exc)
                    await self._backoff(attempt)
                    continue
                emit_structured_error(
                    logger,
                    code=ErrorCode.LEARNING_PERSISTENCE_FAILED,
                    message=str(exc),
                    suppressed=True,
                    details={"example_id": example.example_id, "attempts": attempts},
                )
        return None

    def _write(self, example: TrainingExample) -> None:
        line = example.model_dump_json() + "\n"
        with self._lock:
            try:
                with open(self._path, "a") as f:
                    f.write(line)
            except OSError as exc:
                raise LearningPersistenceError(str(exc)) from exc

    async def _backoff(self, attempt: int) -> None:
        """Exponential backoff with jitter."""
        base = self._config.backoff_base_ms / 1000.0
        max_delay = self._config.backoff_max_ms / 1000.0
        delay = min(base * (2 ** attempt), max_delay)
        if self._config.jitter:
            delay += random.uniform(0, base)
        await asyncio.sleep(delay)

    def snapshot(self) -> list[TrainingExample]:
        """All examples recorded so far, in append order."""
        examples = []
        with self._lock:
            if not self._path.exists():
                return examples
            with open(self._path) as f:
                for line in f:
                    line = line.strip()
                    if line:
                        examples.append(TrainingExample.model_validate_json(line))
        return examples
