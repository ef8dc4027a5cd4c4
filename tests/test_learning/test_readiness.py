"""Tests for learning-phase statistics."""

import pytest

from cookbook.config.settings import LearningConfig
from cookbook.learning.readiness import LearningPhase, assess_readiness, learning_phase
from cookbook.learning.store import Correction, LearningStore
from cookbook.patterns.library import PatternLibraryVersion, PatternRule
from cookbook.patterns.rules import RuleDefinition
from cookbook.pipeline.models import DraftState, FieldValue, MergedRecipeDraft

CONFIG = LearningConfig(hybrid_milestone=2, autonomous_milestone=4)


def _draft(fingerprint):
    return MergedRecipeDraft(
        draft_id=f"draft-{fingerprint}",
        segment_id="seg-0000-0",
        document_fingerprint=fingerprint,
        library_version=0,
        title=FieldValue(value="Brot", confidence=0.7, strategy_id="heuristic.v2"),
    )


def _examples(tmp_path, *cases):
    store = LearningStore(tmp_path / "examples.jsonl")
    examples = []
    for fingerprint, fields in cases:
        draft = _draft(fingerprint)
        examples.append(
            store.build_example(
                draft, Correction(draft_id=draft.draft_id, corrected_fields=fields), "Brot"
            )
        )
    return examples


class TestLearningPhase:
    @pytest.mark.parametrize(
        "count,phase",
        [
            (0, LearningPhase.TRAINING),
            (1, LearningPhase.TRAINING),
            (2, LearningPhase.HYBRID),
            (3, LearningPhase.HYBRID),
            (4, LearningPhase.AUTONOMOUS),
            (40, LearningPhase.AUTONOMOUS),
        ],
    )
    def test_milestones(self, count, phase):
        assert learning_phase(count, CONFIG) == phase

    def test_milestones_must_increase(self):
        with pytest.raises(ValueError):
            LearningConfig(hybrid_milestone=10, autonomous_milestone=10)


class TestAssessReadiness:
    def test_empty(self):
        report = assess_readiness([], PatternLibraryVersion(), CONFIG)
        assert report.phase == LearningPhase.TRAINING
        assert report.total_examples == 0
        assert report.examples_to_next_phase == 2
        assert report.hybrid_readiness == 0.0

    def test_counts_and_progress(self, tmp_path):
        examples = _examples(
            tmp_path,
            ("fp1", {}),
            ("fp1", {"servings": 2}),
            ("fp2", {"title": "Weißbrot"}),
        )
        library = PatternLibraryVersion(
            version=3,
            rules=(
                PatternRule(
                    rule_id="rule-fp1",
                    fingerprint="fp1",
                    rule_definition=RuleDefinition(),
                    success_rate=0.8,
                ),
                PatternRule(
                    rule_id="rule-fp2",
                    fingerprint="fp2",
                    rule_definition=RuleDefinition(),
                    success_rate=0.1,
                    active=False,
                ),
            ),
        )
        report = assess_readiness(examples, library, CONFIG)

        assert report.phase == LearningPhase.HYBRID
        assert report.confirmations == 1
        assert report.corrections == 2
        assert report.fingerprints == 2
        assert report.library_version == 3
        assert report.active_rules == 1
        assert report.hybrid_readiness == 100.0
        assert report.autonomous_readiness == 75.0
        assert report.examples_to_next_phase == 1

    def test_unchanged_review_counts_as_confirmation(self, tmp_path):
        (example,) = _examples(tmp_path, ("fp1", {}))
        assert example.original_draft.overall_state == DraftState.NEEDS_REVIEW
        assert assess_readiness([example], PatternLibraryVersion(), CONFIG).confirmations == 1
