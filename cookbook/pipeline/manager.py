"""Draft store: per-document persistence of merged drafts and lifecycle records.

Layout under the data directory::

    documents/<document_id>/document.json   lifecycle record
    documents/<document_id>/drafts.jsonl    merged drafts, one per segment
    documents/<document_id>/signals.jsonl   signal ledger

Contract: persisting drafts is atomic. Either the full batch writes or none
of it does; a cancelled or failed parse never leaves partial drafts behind.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from cookbook.pipeline.models import DOCUMENT_ID_PATTERN, MergedRecipeDraft, is_valid_document_id


class DocumentRecord(BaseModel):
    """Lifecycle metadata for one document, stored alongside its drafts."""

    document_id: str = Field(pattern=DOCUMENT_ID_PATTERN)
    fingerprint: str | None = None
    library_version: int | None = None
    state: str = "UPLOADED"
    segment_count: int = 0
    draft_count: int = 0
    reviewed_drafts: list[str] = Field(default_factory=list)
    failure_reason: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None


class DraftStore:
    """File-backed store for drafts and document records."""

    def __init__(self, data_dir: Path) -> None:
        self._root = data_dir / "documents"
        self._root.mkdir(parents=True, exist_ok=True)

    def document_dir(self, document_id: str) -> Path:
        if not is_valid_document_id(document_id):
            raise ValueError(f"Invalid document id: {document_id!r}")
        return self._root / document_id

    def drafts_path(self, document_id: str) -> Path:
        return self.document_dir(document_id) / "drafts.jsonl"

    def ledger_path(self, document_id: str) -> Path:
        return self.document_dir(document_id) / "signals.jsonl"

    def persist_drafts(self, document_id: str, drafts: list[MergedRecipeDraft]) -> int:
        """Atomically write all drafts for a document. Returns the number written."""
        if not drafts:
            return 0
        self.document_dir(document_id).mkdir(parents=True, exist_ok=True)
        _write_atomic(
            self.drafts_path(document_id),
            "".join(draft.model_dump_json() + "\n" for draft in drafts),
        )
        return len(drafts)

    def load_drafts(self, document_id: str) -> list[MergedRecipeDraft]:
        drafts = []
        path = self.drafts_path(document_id)
        if path.exists():
            with open(path) as f:
                for line in f:
                    line = line.strip()
                    if line:
                        drafts.append(MergedRecipeDraft.model_validate_json(line))
        return drafts

    def save_record(self, record: DocumentRecord) -> None:
        self.document_dir(record.document_id).mkdir(parents=True, exist_ok=True)
        record = record.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        _write_atomic(
            self.document_dir(record.document_id) / "document.json",
            record.model_dump_json(indent=2),
        )

    def load_record(self, document_id: str) -> DocumentRecord | None:
        path = self.document_dir(document_id) / "document.json"
        if not path.exists():
            return None
        return DocumentRecord.model_validate_json(path.read_text())

    def list_records(self) -> list[DocumentRecord]:
        records = []
        for path in sorted(self._root.glob("*/document.json")):
            records.append(DocumentRecord.model_validate_json(path.read_text()))
        return records


def _write_atomic(path: Path, content: str) -> None:
    temp_path = path.with_suffix(".tmp")
    try:
        with open(temp_path, "w") as f:
            f.write(content)
        temp_path.replace(path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise
