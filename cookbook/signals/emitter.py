"""Signal emitter: sequenced, append-only event ledger for one document."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from cookbook.signals.types import Signal, SignalType
from cookbook.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class SignalEmitter:
    """Emits, persists, and broadcasts signals for a single document.

    Signals are:
    - Immutable once emitted
    - Assigned monotonic sequence numbers
    - Persisted to a JSONL ledger in append-only mode
    """

    def __init__(self, document_id: str, ledger_path: Path | None = None) -> None:
        self._document_id = document_id
        self._sequence = 0
        self._ledger_path = ledger_path
        self._subscribers: list[Callable[[Signal], Any]] = []
        self._signals: list[Signal] = []
        self._lock = asyncio.Lock()

        if self._ledger_path:
            self._ledger_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def document_id(self) -> str:
        return self._document_id

    @property
    def signals(self) -> list[Signal]:
        return list(self._signals)

    def subscribe(self, callback: Callable[[Signal], Any]) -> None:
        self._subscribers.append(callback)

    async def emit(self, signal_type: SignalType, payload: dict[str, Any] | None = None) -> Signal:
        """Emit a signal. This is the only way signals are created."""
        async with self._lock:
            self._sequence += 1
            signal = Signal(
                sequence=self._sequence,
                signal_type=signal_type,
                timestamp=datetime.now(timezone.utc),
                document_id=self._document_id,
                payload=payload or {},
            )
            self._signals.append(signal)
            if self._ledger_path:
                self._persist(signal)

        await self._broadcast(signal)
        return signal

    def _persist(self, signal: Signal) -> None:
        with open(self._ledger_path, "a") as f:
            f.write(signal.model_dump_json() + "\n")

    async def _broadcast(self, signal: Signal) -> None:
        for subscriber in self._subscribers:
            try:
                result = subscriber(signal)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                # Subscribers must not break emission.
                emit_structured_error(
                    logger,
                    code=ErrorCode.SIGNAL_SUBSCRIBER_FAILURE,
                    message=str(exc),
                    suppressed=True,
                    document_id=self._document_id,
                    details={"signal_type": signal.signal_type.value},
                )

    async def emit_transition(
        self, from_state: str, to_state: str, context: dict[str, Any] | None = None
    ) -> Signal:
        return await self.emit(
            SignalType.STATE_TRANSITION,
            {"from_state": from_state, "to_state": to_state, **(context or {})},
        )

    async def emit_document_failed(self, reason: str, state_at_failure: str) -> Signal:
        return await self.emit(
            SignalType.DOCUMENT_FAILED,
            {"failure_reason": reason, "state_at_failure": state_at_failure},
        )

    @staticmethod
    def load_ledger(ledger_path: Path) -> list[Signal]:
        """Load all signals from a JSONL ledger file."""
        signals = []
        if ledger_path.exists():
            with open(ledger_path) as f:
                for line in f:
                    line = line.strip()
                    if line:
                        signals.append(Signal.model_validate_json(line))
        return signals
