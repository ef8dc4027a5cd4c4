"""Learning statistics: how far the pattern library is from running on its own."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from cookbook.config.settings import LearningConfig
from cookbook.learning.store import TrainingExample
from cookbook.patterns.library import PatternLibraryVersion


class LearningPhase(str, Enum):
    TRAINING = "training"
    HYBRID = "hybrid"
    AUTONOMOUS = "autonomous"


class ReadinessReport(BaseModel):
    phase: LearningPhase
    total_examples: int
    confirmations: int
    corrections: int
    fingerprints: int
    library_version: int
    active_rules: int
    hybrid_readiness: float
    autonomous_readiness: float
    examples_to_next_phase: int


def learning_phase(count: int, config: LearningConfig) -> LearningPhase:
    if count >= config.autonomous_milestone:
        return LearningPhase.AUTONOMOUS
    if count >= config.hybrid_milestone:
        return LearningPhase.HYBRID
    return LearningPhase.TRAINING


def _percent(count: int, milestone: int) -> float:
    return round(min(100.0, count / milestone * 100.0), 1)


def assess_readiness(
    examples: list[TrainingExample],
    library: PatternLibraryVersion,
    config: LearningConfig | None = None,
) -> ReadinessReport:
    config = config or LearningConfig()
    total = len(examples)
    confirmations = sum(1 for ex in examples if ex.is_confirmation)
    phase = learning_phase(total, config)
    if phase == LearningPhase.TRAINING:
        remaining = config.hybrid_milestone - total
    elif phase == LearningPhase.HYBRID:
        remaining = config.autonomous_milestone - total
    else:
        remaining = 0

    return ReadinessReport(
        phase=phase,
        total_examples=total,
        confirmations=confirmations,
        corrections=total - confirmations,
        fingerprints=len({ex.document_fingerprint for ex in examples}),
        library_version=library.version,
        active_rules=library.active_count,
        hybrid_readiness=_percent(total, config.hybrid_milestone),
        autonomous_readiness=_percent(total, config.autonomous_milestone),
        examples_to_next_phase=remaining,
    )
