"""Tests for the draft store."""

import pytest
from pydantic import ValidationError

from cookbook.pipeline.manager import DocumentRecord, DraftStore
from cookbook.pipeline.models import DraftState, FieldValue, MergedRecipeDraft


def _draft(index):
    return MergedRecipeDraft(
        draft_id=f"draft-{index}",
        segment_id=f"seg-{index:04d}-0",
        document_fingerprint="fp",
        library_version=0,
        title=FieldValue(value=f"Rezept {index}", confidence=0.7, strategy_id="heuristic.v2"),
        overall_state=DraftState.NEEDS_REVIEW,
    )


@pytest.fixture
def store(tmp_path):
    return DraftStore(tmp_path)


class TestDraftStore:
    def test_persist_and_load(self, store):
        assert store.persist_drafts("doc-1", [_draft(0), _draft(1)]) == 2
        loaded = store.load_drafts("doc-1")
        assert [d.draft_id for d in loaded] == ["draft-0", "draft-1"]
        assert loaded[1].title.value == "Rezept 1"

    def test_persist_replaces_whole_batch(self, store):
        store.persist_drafts("doc-1", [_draft(0), _draft(1)])
        store.persist_drafts("doc-1", [_draft(2)])
        assert [d.draft_id for d in store.load_drafts("doc-1")] == ["draft-2"]

    def test_empty_batch_writes_nothing(self, store):
        assert store.persist_drafts("doc-1", []) == 0
        assert not store.drafts_path("doc-1").exists()
        assert store.load_drafts("doc-1") == []

    def test_no_temp_files_left(self, store):
        store.persist_drafts("doc-1", [_draft(0)])
        store.save_record(DocumentRecord(document_id="doc-1"))
        assert not list(store.document_dir("doc-1").glob("*.tmp"))

    def test_records(self, store):
        store.save_record(DocumentRecord(document_id="doc-b", state="COMMITTED"))
        store.save_record(DocumentRecord(document_id="doc-a", state="FAILED", failure_reason="x"))

        record = store.load_record("doc-a")
        assert record.failure_reason == "x"
        assert record.updated_at is not None
        assert [r.document_id for r in store.list_records()] == ["doc-a", "doc-b"]
        assert store.load_record("missing") is None

    @pytest.mark.parametrize("document_id", ["../../escaped", "a/b", "..", ""])
    def test_paths_stay_inside_the_data_dir(self, store, tmp_path, document_id):
        with pytest.raises(ValueError):
            store.document_dir(document_id)
        with pytest.raises(ValueError):
            store.persist_drafts(document_id, [_draft(0)])
        assert not (tmp_path.parent / "escaped").exists()

    def test_record_rejects_unsafe_id(self):
        with pytest.raises(ValidationError):
            DocumentRecord(document_id="../../escaped")
