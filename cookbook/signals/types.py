"""Signal type definitions for the ingest ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SignalType(str, Enum):
    """All signal types emitted while a document moves through the pipeline."""

    STATE_TRANSITION = "STATE_TRANSITION"
    SEGMENTED = "SEGMENTED"
    GENERATIVE_INVOKED = "GENERATIVE_INVOKED"
    GENERATIVE_FAILED = "GENERATIVE_FAILED"
    DRAFT_MERGED = "DRAFT_MERGED"
    DRAFTS_PERSISTED = "DRAFTS_PERSISTED"
    CORRECTION_RECORDED = "CORRECTION_RECORDED"
    DOCUMENT_FAILED = "DOCUMENT_FAILED"
    LIBRARY_PUBLISHED = "LIBRARY_PUBLISHED"


class Signal(BaseModel):
    """An immutable signal emitted while processing one document.

    Signals are append-only and cannot be modified after emission.
    """

    sequence: int = Field(description="Monotonic sequence number within the document")
    signal_type: SignalType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    document_id: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
