"""Structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Canonical error codes for operational telemetry."""

    SEGMENTATION_FAILED = "SEGMENTATION_FAILED"
    PATTERN_APPLY_FAILED = "PATTERN_APPLY_FAILED"
    PROVIDER_INITIALIZATION_FAILED = "PROVIDER_INITIALIZATION_FAILED"
    GENERATIVE_TIMEOUT = "GENERATIVE_TIMEOUT"
    GENERATIVE_SCHEMA_VIOLATION = "GENERATIVE_SCHEMA_VIOLATION"
    GENERATIVE_PROVIDER_FAILED = "GENERATIVE_PROVIDER_FAILED"
    LEARNING_PERSISTENCE_FAILED = "LEARNING_PERSISTENCE_FAILED"
    MINER_EXAMPLE_SKIPPED = "MINER_EXAMPLE_SKIPPED"
    SIGNAL_SUBSCRIBER_FAILURE = "SIGNAL_SUBSCRIBER_FAILURE"


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    document_id: str | None = None,
    segment_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a structured telemetry event via logging."""
    logger.error(
        "cookbook_error",
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "document_id": document_id,
            "segment_id": segment_id,
            "details": details or {},
        },
    )
