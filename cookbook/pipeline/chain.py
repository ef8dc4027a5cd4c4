"""Strategy chain: local strategies first, the generative fallback only for weak fields."""

from __future__ import annotations

import logging

from cookbook.config.settings import ExtractionConfig
from cookbook.pipeline.models import ALL_FIELDS, ParseCandidate, Segment
from cookbook.pipeline.strategies import (
    ExtractionContext,
    ExtractionStrategy,
    PatternStrategy,
    heuristic_for,
)
from cookbook.signals.emitter import SignalEmitter
from cookbook.signals.types import SignalType

logger = logging.getLogger(__name__)


def best_confidence(candidates: list[ParseCandidate]) -> dict[str, float]:
    """Highest confidence seen per field; fields nobody attempted map to 0.0."""
    best = {field_name: 0.0 for field_name in ALL_FIELDS}
    for candidate in candidates:
        if candidate.confidence > best[candidate.field_name]:
            best[candidate.field_name] = candidate.confidence
    return best


def fields_needing_fallback(candidates: list[ParseCandidate], threshold: float) -> tuple[str, ...]:
    best = best_confidence(candidates)
    return tuple(f for f in ALL_FIELDS if best[f] < threshold)


class StrategyChain:
    """Runs the strategies for one segment and collects every candidate."""

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        generative: ExtractionStrategy | None = None,
        pattern: ExtractionStrategy | None = None,
        heuristic: ExtractionStrategy | None = None,
        emitter: SignalEmitter | None = None,
    ) -> None:
        self._config = config or ExtractionConfig()
        self._pattern = pattern or PatternStrategy()
        self._heuristic = heuristic or heuristic_for(self._config)
        self._generative = generative
        self._emitter = emitter

    @property
    def heuristic_id(self) -> str:
        return self._heuristic.strategy_id

    async def run(self, segment: Segment, context: ExtractionContext) -> list[ParseCandidate]:
        candidates = await self._pattern.extract(segment, context, ALL_FIELDS)
        candidates += await self._heuristic.extract(segment, context, ALL_FIELDS)

        weak = fields_needing_fallback(candidates, self._config.generative_threshold)
        if not weak or self._generative is None:
            return candidates

        if self._emitter:
            await self._emitter.emit(
                SignalType.GENERATIVE_INVOKED,
                {"segment_id": segment.segment_id, "fields": list(weak)},
            )
        generated = await self._generative.extract(segment, context, weak)
        if not generated and self._emitter:
            await self._emitter.emit(
                SignalType.GENERATIVE_FAILED,
                {"segment_id": segment.segment_id, "fields": list(weak)},
            )
        logger.debug(
            "segment %s: generative fallback for %s returned %d candidates",
            segment.segment_id,
            ",".join(weak),
            len(generated),
        )
        return candidates + generated
