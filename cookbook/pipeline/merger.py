"""Confidence merger: field-level argmax over all candidates for one segment.

Ties go to the cheaper, more predictable strategy kind:
pattern over heuristic over generative.
"""

from __future__ import annotations

import hashlib

from cookbook.config.settings import ExtractionConfig
from cookbook.pipeline.models import (
    ALL_FIELDS,
    KIND_PRIORITY,
    REQUIRED_FIELDS,
    SCALAR_FIELDS,
    DraftState,
    FieldValue,
    IngredientEntry,
    MergedRecipeDraft,
    ParseCandidate,
    Segment,
    StepEntry,
    StrategyKind,
)


def strategy_kind(strategy_id: str) -> StrategyKind:
    """Kind from a strategy id such as ``pattern:rule-ab12`` or ``heuristic.v2``."""
    for kind in StrategyKind:
        if strategy_id.startswith(kind.value):
            return kind
    raise ValueError(f"Unknown strategy id: {strategy_id}")


def compute_draft_id(segment: Segment, fingerprint: str, library_version: int) -> str:
    digest = hashlib.sha256()
    for part in (segment.segment_id, segment.raw_text, fingerprint, str(library_version)):
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return f"draft-{digest.hexdigest()[:16]}"


def _rank(candidate: ParseCandidate) -> tuple:
    return (
        -candidate.confidence,
        candidate.is_empty,
        KIND_PRIORITY[strategy_kind(candidate.strategy_id)],
        candidate.strategy_id,
    )


def select_best(candidates: list[ParseCandidate]) -> dict[str, ParseCandidate]:
    """The winning candidate per field; fields without candidates are absent."""
    winners: dict[str, ParseCandidate] = {}
    for candidate in sorted(candidates, key=_rank):
        winners.setdefault(candidate.field_name, candidate)
    return winners


class ConfidenceMerger:
    """Builds one MergedRecipeDraft from the candidates of one segment."""

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self._config = config or ExtractionConfig()

    def merge(
        self,
        segment: Segment,
        candidates: list[ParseCandidate],
        fingerprint: str,
        library_version: int,
    ) -> MergedRecipeDraft:
        floor = self._config.review_floor
        winners = select_best(candidates)

        scalars: dict[str, FieldValue] = {}
        for field_name in SCALAR_FIELDS:
            winner = winners.get(field_name)
            if winner is None or winner.is_empty:
                scalars[field_name] = FieldValue()
            else:
                scalars[field_name] = FieldValue(
                    value=winner.value,
                    confidence=winner.confidence,
                    strategy_id=winner.strategy_id,
                )

        ingredients_winner = winners.get("ingredients")
        steps_winner = winners.get("steps")
        ingredients = [
            IngredientEntry(**entry)
            for entry in (ingredients_winner.value if ingredients_winner else None) or []
        ]
        steps = [
            StepEntry(**entry) for entry in (steps_winner.value if steps_winner else None) or []
        ]

        field_confidence: dict[str, float] = {}
        field_sources: dict[str, str | None] = {}
        for field_name in ALL_FIELDS:
            winner = winners.get(field_name)
            if winner is None or winner.is_empty:
                field_confidence[field_name] = 0.0
                field_sources[field_name] = None
            else:
                field_confidence[field_name] = winner.confidence
                field_sources[field_name] = winner.strategy_id

        # Optional fields no strategy found stay off the review list.
        review_fields = [
            f
            for f in ALL_FIELDS
            if field_confidence[f] < floor
            and (f in REQUIRED_FIELDS or field_sources[f] is not None)
        ]

        title = scalars["title"].value
        if not isinstance(title, str) or not title.strip():
            state = DraftState.INCOMPLETE
        elif all(field_confidence[f] >= floor for f in REQUIRED_FIELDS) and ingredients and steps:
            state = DraftState.COMPLETE
        else:
            state = DraftState.NEEDS_REVIEW

        return MergedRecipeDraft(
            draft_id=compute_draft_id(segment, fingerprint, library_version),
            segment_id=segment.segment_id,
            document_fingerprint=fingerprint,
            library_version=library_version,
            title=scalars["title"],
            servings=scalars["servings"],
            prep_time=scalars["prep_time"],
            cook_time=scalars["cook_time"],
            ingredients=ingredients,
            steps=steps,
            field_confidence=field_confidence,
            field_sources=field_sources,
            review_fields=review_fields,
            overall_state=state,
        )
