"""Document lifecycle states and the transitions allowed between them."""

from __future__ import annotations

from enum import Enum


class DocumentState(str, Enum):
    """Lifecycle of one uploaded document."""

    UPLOADED = "UPLOADED"
    SEGMENTED = "SEGMENTED"
    PARSED = "PARSED"
    REVIEW_PENDING = "REVIEW_PENDING"
    COMMITTED = "COMMITTED"
    CORRECTED = "CORRECTED"
    ARCHIVED = "ARCHIVED"
    FAILED = "FAILED"


VALID_TRANSITIONS: dict[DocumentState, set[DocumentState]] = {
    DocumentState.UPLOADED: {DocumentState.SEGMENTED, DocumentState.FAILED},
    # FAILED here only when the parse is cancelled mid-flight.
    DocumentState.SEGMENTED: {DocumentState.PARSED, DocumentState.FAILED},
    DocumentState.PARSED: {DocumentState.REVIEW_PENDING, DocumentState.COMMITTED},
    DocumentState.REVIEW_PENDING: {DocumentState.CORRECTED},
    DocumentState.CORRECTED: {DocumentState.ARCHIVED},
    DocumentState.COMMITTED: set(),  # terminal
    DocumentState.ARCHIVED: set(),  # terminal
    DocumentState.FAILED: set(),  # terminal
}

TERMINAL_STATES = {DocumentState.COMMITTED, DocumentState.ARCHIVED, DocumentState.FAILED}


def can_transition(from_state: DocumentState, to_state: DocumentState) -> bool:
    return to_state in VALID_TRANSITIONS[from_state]
