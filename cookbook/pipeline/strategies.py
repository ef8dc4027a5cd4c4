"""Extraction strategies: one capability interface, several named implementations.

Every strategy turns a Segment into ParseCandidates for the fields it was
asked about. A strategy emits a candidate for every field it attempted (an
empty value at confidence 0.0 when it found nothing) and none for fields it
did not attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from cookbook.config.settings import ExtractionConfig
from cookbook.patterns.library import PatternLibraryVersion, PatternRule
from cookbook.patterns.rules import PATTERN_FIELDS, apply_rule
from cookbook.pipeline.heuristic import HeuristicParserV1, HeuristicParserV2
from cookbook.pipeline.models import (
    ALL_FIELDS,
    LIST_FIELDS,
    ParseCandidate,
    Segment,
    StrategyKind,
)
from cookbook.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionContext:
    """Per-document inputs shared by every strategy invocation."""

    document_id: str
    fingerprint: str
    library: PatternLibraryVersion = field(default_factory=PatternLibraryVersion)
    config: ExtractionConfig = field(default_factory=ExtractionConfig)


class ExtractionStrategy(Protocol):
    strategy_id: str
    kind: StrategyKind

    async def extract(
        self,
        segment: Segment,
        context: ExtractionContext,
        fields: tuple[str, ...] = ALL_FIELDS,
    ) -> list[ParseCandidate]: ...


class PatternMatchMiss(Exception):
    """No active rule for the fingerprint, or the top rule's layout is absent."""


class PatternStrategy:
    """Applies the best learned rule for the document's fingerprint.

    Confidence is the rule's historical success rate scaled by how much of
    the rule's expected structure the segment actually shows.
    """

    strategy_id = "pattern"
    kind = StrategyKind.PATTERN

    async def extract(
        self,
        segment: Segment,
        context: ExtractionContext,
        fields: tuple[str, ...] = ALL_FIELDS,
    ) -> list[ParseCandidate]:
        attempted = tuple(f for f in fields if f in PATTERN_FIELDS)
        if not attempted:
            return []
        try:
            rule, values, score = self.match(segment, context)
        except PatternMatchMiss as exc:
            logger.debug("pattern miss on %s: %s", segment.segment_id, exc)
            return []
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.PATTERN_APPLY_FAILED,
                message=str(exc),
                suppressed=True,
                document_id=context.document_id,
                segment_id=segment.segment_id,
            )
            return []

        confidence = round(rule.success_rate * score, 4)
        strategy_id = f"{self.strategy_id}:{rule.rule_id}"
        candidates = []
        for field_name in attempted:
            value = values.get(field_name)
            if field_name == "ingredients":
                value = [dict(entry, confidence=confidence) for entry in value or []]
            elif field_name == "steps":
                value = [{"text": text, "confidence": confidence} for text in value or []]
            empty = value is None or (field_name in LIST_FIELDS and not value)
            candidates.append(
                ParseCandidate(
                    segment_id=segment.segment_id,
                    strategy_id=strategy_id,
                    field_name=field_name,
                    value=value,
                    confidence=0.0 if empty else confidence,
                )
            )
        return candidates

    def match(
        self, segment: Segment, context: ExtractionContext
    ) -> tuple[PatternRule, dict[str, Any], float]:
        rules = context.library.lookup(context.fingerprint)
        if not rules:
            raise PatternMatchMiss(f"no active rule for fingerprint {context.fingerprint}")
        rule = rules[0]
        result = apply_rule(rule.rule_definition, segment.raw_text)
        if result.structural_score <= 0.0:
            raise PatternMatchMiss(f"rule {rule.rule_id} does not fit segment layout")
        return rule, result.values, result.structural_score


StrategyFactory = Callable[[str], ExtractionStrategy]

STRATEGY_REGISTRY: dict[str, StrategyFactory] = {
    "pattern": lambda locale: PatternStrategy(),
    "heuristic.v1": lambda locale: HeuristicParserV1(locale),
    "heuristic.v2": lambda locale: HeuristicParserV2(locale),
}


def create_strategy(name: str, locale: str = "de") -> ExtractionStrategy:
    try:
        factory = STRATEGY_REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown extraction strategy: {name}") from None
    return factory(locale)


def heuristic_for(config: ExtractionConfig) -> ExtractionStrategy:
    return create_strategy(f"heuristic.{config.heuristic_version}", config.locale)


async def compare_strategies(
    segment: Segment,
    context: ExtractionContext,
    baseline: str = "heuristic.v1",
    candidate: str = "heuristic.v2",
) -> dict[str, dict[str, Any]]:
    """Field-level differences between two strategy generations on one segment.

    Returns ``{field: {"baseline": ..., "candidate": ...}}`` for every field
    whose value or confidence differs.
    """
    locale = context.config.locale
    left = await create_strategy(baseline, locale).extract(segment, context)
    right = await create_strategy(candidate, locale).extract(segment, context)
    left_by_field = {c.field_name: c for c in left}
    right_by_field = {c.field_name: c for c in right}

    differences: dict[str, dict[str, Any]] = {}
    for field_name in ALL_FIELDS:
        a = left_by_field.get(field_name)
        b = right_by_field.get(field_name)
        a_view = (a.value, a.confidence) if a else None
        b_view = (b.value, b.confidence) if b else None
        if a_view != b_view:
            differences[field_name] = {"baseline": a_view, "candidate": b_view}
    return differences
