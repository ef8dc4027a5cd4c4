"""Tests for corrections, training examples and the append-only learning store."""

import pytest
from pydantic import ValidationError

from cookbook.config.settings import LearningConfig
from cookbook.learning.store import (
    HUMAN_SOURCE,
    Correction,
    LearningStore,
    apply_correction,
    diff_drafts,
)
from cookbook.pipeline.models import (
    DraftState,
    FieldValue,
    IngredientEntry,
    MergedRecipeDraft,
    StepEntry,
)

SOURCE = "Salat\nFür 2 Personen\nZutaten:\n1 Kopf Salat\n2 EL Öl"


def _draft(**overrides):
    data = dict(
        draft_id="draft-0001",
        segment_id="seg-0000-0",
        document_fingerprint="fp",
        library_version=0,
        title=FieldValue(value="Salat", confidence=0.7, strategy_id="heuristic.v2"),
        servings=FieldValue(value=2, confidence=0.9, strategy_id="heuristic.v2"),
        ingredients=[
            IngredientEntry(amount=1, unit="", name="Kopf Salat", confidence=0.7),
            IngredientEntry(amount=2, unit="el", name="Öl", confidence=0.85),
        ],
        field_confidence={"title": 0.7, "servings": 0.9, "ingredients": 0.775, "steps": 0.0},
        field_sources={"title": "heuristic.v2", "steps": None},
        review_fields=["prep_time", "cook_time", "steps"],
        overall_state=DraftState.NEEDS_REVIEW,
    )
    data.update(overrides)
    return MergedRecipeDraft(**data)


@pytest.fixture
def store(tmp_path):
    config = LearningConfig(backoff_base_ms=1, backoff_max_ms=2, jitter=False)
    return LearningStore.for_data_dir(tmp_path, config)


class TestApplyCorrection:
    def test_corrected_fields_become_human_and_certain(self):
        corrected = apply_correction(
            _draft(), Correction(draft_id="draft-0001", corrected_fields={"steps": ["Waschen."]})
        )
        assert corrected.steps == [StepEntry(text="Waschen.", confidence=1.0)]
        assert corrected.field_confidence["steps"] == 1.0
        assert corrected.field_sources["steps"] == HUMAN_SOURCE
        assert corrected.overall_state == DraftState.COMPLETE
        assert corrected.review_fields == []

    def test_untouched_fields_keep_provenance(self):
        corrected = apply_correction(
            _draft(), Correction(draft_id="draft-0001", corrected_fields={"servings": 3})
        )
        assert corrected.title.strategy_id == "heuristic.v2"
        assert corrected.servings == FieldValue(value=3, confidence=1.0, strategy_id=HUMAN_SOURCE)

    def test_clearing_the_title_marks_incomplete(self):
        corrected = apply_correction(
            _draft(), Correction(draft_id="draft-0001", corrected_fields={"title": ""})
        )
        assert corrected.overall_state == DraftState.INCOMPLETE

    def test_ingredient_names_accepted_as_strings(self):
        corrected = apply_correction(
            _draft(),
            Correction(draft_id="draft-0001", corrected_fields={"ingredients": ["Salz"]}),
        )
        assert corrected.field_values()["ingredients"] == [
            {"amount": None, "unit": "", "name": "Salz"}
        ]

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            Correction(draft_id="draft-0001", corrected_fields={"calories": 300})

    @pytest.mark.parametrize(
        "fields",
        [
            {"servings": "vier"},
            {"servings": 0},
            {"cook_time": -5},
            {"title": ["Salat"]},
            {"ingredients": [{"amount": 1}]},
            {"ingredients": "Salz"},
            {"steps": [{"text": "Waschen."}]},
        ],
    )
    def test_mistyped_value_rejected(self, fields):
        with pytest.raises(ValidationError):
            Correction(draft_id="draft-0001", corrected_fields=fields)

    def test_values_normalized_to_field_types(self):
        correction = Correction(
            draft_id="draft-0001",
            corrected_fields={
                "servings": "4",
                "ingredients": [{"amount": 2, "unit": "el", "name": "Öl", "confidence": 0.3}],
            },
        )
        assert correction.corrected_fields == {
            "servings": 4,
            "ingredients": [{"amount": 2.0, "unit": "el", "name": "Öl"}],
        }
        corrected = apply_correction(_draft(), correction)
        assert corrected.ingredients == [
            IngredientEntry(amount=2.0, unit="el", name="Öl", confidence=1.0)
        ]

    def test_explicit_null_clears_a_field(self):
        correction = Correction(draft_id="draft-0001", corrected_fields={"servings": None})
        assert correction.corrected_fields == {"servings": None}


class TestDiffDrafts:
    def test_only_value_changes_count(self):
        draft = _draft()
        reviewed = draft.model_copy(
            update={"title": FieldValue(value="Salat", confidence=1.0, strategy_id=HUMAN_SOURCE)}
        )
        assert diff_drafts(draft, reviewed) == []

    def test_changed_field_recorded(self):
        draft = _draft()
        corrected = apply_correction(
            draft, Correction(draft_id="draft-0001", corrected_fields={"title": "Grüner Salat"})
        )
        (delta,) = diff_drafts(draft, corrected)
        assert delta.field == "title"
        assert delta.before == "Salat"
        assert delta.after == "Grüner Salat"


class TestLearningStore:
    def test_build_example(self, store):
        example = store.build_example(
            _draft(), Correction(draft_id="draft-0001", corrected_fields={"steps": ["Waschen."]}), SOURCE
        )
        assert example.document_fingerprint == "fp"
        assert example.source_text == SOURCE
        assert [d.field for d in example.diff] == ["steps"]
        assert not example.is_confirmation
        assert example.original_draft.overall_state == DraftState.NEEDS_REVIEW

    def test_unchanged_review_is_a_confirmation(self, store):
        example = store.build_example(_draft(), Correction(draft_id="draft-0001"), SOURCE)
        assert example.diff == []
        assert example.is_confirmation

    def test_correction_must_target_the_draft(self, store):
        with pytest.raises(ValueError):
            store.build_example(_draft(), Correction(draft_id="draft-9999"), SOURCE)

    @pytest.mark.asyncio
    async def test_append_and_snapshot(self, store, tmp_path):
        first = store.build_example(_draft(), Correction(draft_id="draft-0001"), SOURCE)
        second = store.build_example(
            _draft(), Correction(draft_id="draft-0001", corrected_fields={"servings": 4}), SOURCE
        )
        assert await store.append(first) is first
        assert await store.append(second) is second

        assert store.path == tmp_path / "learning" / "training_examples.jsonl"
        examples = store.snapshot()
        assert [ex.example_id for ex in examples] == [first.example_id, second.example_id]
        assert examples[1].diff[0].after == 4

    def test_empty_snapshot(self, store):
        assert store.snapshot() == []

    @pytest.mark.asyncio
    async def test_persistent_failure_drops_example(self, tmp_path):
        path = tmp_path / "examples.jsonl"
        store = LearningStore(
            path, LearningConfig(persistence_retries=2, backoff_base_ms=1, jitter=False)
        )
        path.mkdir()
        example = store.build_example(_draft(), Correction(draft_id="draft-0001"), SOURCE)
        assert await store.append(example) is None
