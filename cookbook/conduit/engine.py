"""Lifecycle controller for one uploaded document.

The Conduit is a finite state machine. It contains no extraction logic of its
own; it binds a library snapshot, drives the segmenter, strategy chain and
merger, and owns every state transition.

Responsibilities:
- Bind one Pattern Library snapshot for the whole parse
- Parse segments concurrently and merge each into a draft
- Persist drafts all-or-nothing, then route to COMMITTED or REVIEW_PENDING
- Record each correction in the learning store before archiving
- Emit a Signal at every transition
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any

from cookbook.conduit.phases import TERMINAL_STATES, VALID_TRANSITIONS, DocumentState
from cookbook.config.settings import CookbookConfig
from cookbook.learning.store import Correction, LearningStore, TrainingExample
from cookbook.patterns.library import PatternLibrary
from cookbook.pipeline.chain import StrategyChain
from cookbook.pipeline.fingerprint import compute_fingerprint
from cookbook.pipeline.manager import DocumentRecord, DraftStore
from cookbook.pipeline.merger import ConfidenceMerger
from cookbook.pipeline.models import DocumentInput, DraftState, MergedRecipeDraft, Segment
from cookbook.pipeline.segmenter import SegmentationError, Segmenter
from cookbook.pipeline.strategies import ExtractionContext, ExtractionStrategy
from cookbook.signals.emitter import SignalEmitter
from cookbook.signals.types import SignalType
from cookbook.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class ConduitError(Exception):
    """Raised on an invalid transition or a correction the document cannot accept."""


class DocumentConduit:
    """Coordinates one document from upload to committed or archived drafts."""

    def __init__(
        self,
        document: DocumentInput,
        *,
        config: CookbookConfig,
        library: PatternLibrary,
        drafts: DraftStore,
        learning: LearningStore,
        generative: ExtractionStrategy | None = None,
    ) -> None:
        self._document = document
        self._config = config
        self._library = library
        self._drafts_store = drafts
        self._learning = learning
        self._generative = generative

        self._state = DocumentState.UPLOADED
        self._fingerprint = document.fingerprint or compute_fingerprint(document.text)
        self._segments: dict[str, Segment] = {}
        self._drafts: dict[str, MergedRecipeDraft] = {}
        self._reviewed: set[str] = set()
        self._task: asyncio.Task | None = None
        self._record = DocumentRecord(
            document_id=document.document_id, fingerprint=self._fingerprint
        )
        self._signals = SignalEmitter(
            document_id=document.document_id,
            ledger_path=drafts.ledger_path(document.document_id),
        )

    @property
    def document_id(self) -> str:
        return self._document.document_id

    @property
    def state(self) -> DocumentState:
        return self._state

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    @property
    def signals(self) -> SignalEmitter:
        return self._signals

    @property
    def drafts(self) -> list[MergedRecipeDraft]:
        return list(self._drafts.values())

    @property
    def record(self) -> DocumentRecord:
        return self._record

    def pending_review(self) -> list[str]:
        """Draft ids that still need a human review before the document can archive."""
        return [
            draft_id
            for draft_id, draft in self._drafts.items()
            if draft.overall_state != DraftState.COMPLETE and draft_id not in self._reviewed
        ]

    # --- State Transition ---

    async def _transition(
        self, to_state: DocumentState, context: dict[str, Any] | None = None
    ) -> None:
        """Every state change goes through this guard."""
        if to_state not in VALID_TRANSITIONS.get(self._state, set()):
            raise ConduitError(f"Invalid transition: {self._state.value} -> {to_state.value}")

        from_state = self._state
        self._state = to_state
        self._record = self._record.model_copy(update={"state": to_state.value})
        self._drafts_store.save_record(self._record)

        await self._signals.emit_transition(
            from_state=from_state.value,
            to_state=to_state.value,
            context=context or {},
        )

    async def _fail(self, reason: str) -> None:
        state_at_failure = self._state.value
        self._record = self._record.model_copy(update={"failure_reason": reason})
        await self._transition(DocumentState.FAILED, {"reason": reason})
        await self._signals.emit_document_failed(reason, state_at_failure)
        logger.warning("document %s failed in %s: %s", self.document_id, state_at_failure, reason)

    # --- Main Run ---

    def start(self) -> asyncio.Task:
        """Run the parse as a task so that it can be cancelled."""
        self._task = asyncio.create_task(self.run())
        return self._task

    async def cancel(self) -> None:
        """Abandon an in-flight parse. Nothing is persisted."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    async def run(self) -> dict[str, Any]:
        """Parse the document. Returns a summary dict."""
        if self._state != DocumentState.UPLOADED:
            raise ConduitError(f"Document {self.document_id} was already parsed")

        start = time.monotonic()
        snapshot = self._library.snapshot()
        self._record = self._record.model_copy(update={"library_version": snapshot.version})
        context = ExtractionContext(
            document_id=self.document_id,
            fingerprint=self._fingerprint,
            library=snapshot,
            config=self._config.extraction,
        )

        segmenter = Segmenter(self._config.segmentation, locale=self._config.extraction.locale)
        try:
            segments = segmenter.segment(self._document)
        except SegmentationError as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.SEGMENTATION_FAILED,
                message=str(exc),
                suppressed=False,
                document_id=self.document_id,
            )
            await self._fail(str(exc))
            return self._summary(start)

        self._record = self._record.model_copy(update={"segment_count": len(segments)})
        await self._transition(DocumentState.SEGMENTED, {"segments": len(segments)})
        await self._signals.emit(
            SignalType.SEGMENTED,
            {"segments": [s.segment_id for s in segments], "fingerprint": self._fingerprint},
        )

        try:
            drafts = await self._parse(segments, context)
            self._drafts_store.persist_drafts(self.document_id, drafts)
        except asyncio.CancelledError:
            await self._fail("cancelled")
            raise
        except Exception as exc:
            await self._fail(f"Unhandled exception: {exc}")
            return self._summary(start)

        self._segments = {s.segment_id: s for s in segments}
        self._drafts = {d.draft_id: d for d in drafts}
        self._record = self._record.model_copy(update={"draft_count": len(drafts)})
        await self._signals.emit(SignalType.DRAFTS_PERSISTED, {"drafts": len(drafts)})
        await self._transition(DocumentState.PARSED, {"drafts": len(drafts)})

        if self.pending_review():
            await self._transition(
                DocumentState.REVIEW_PENDING, {"pending": len(self.pending_review())}
            )
        else:
            await self._transition(DocumentState.COMMITTED)
        return self._summary(start)

    async def _parse(
        self, segments: list[Segment], context: ExtractionContext
    ) -> list[MergedRecipeDraft]:
        chain = StrategyChain(
            self._config.extraction, generative=self._generative, emitter=self._signals
        )
        merger = ConfidenceMerger(self._config.extraction)
        results = await asyncio.gather(*(chain.run(segment, context) for segment in segments))

        drafts = []
        for segment, candidates in zip(segments, results):
            draft = merger.merge(
                segment, candidates, self._fingerprint, context.library.version
            )
            drafts.append(draft)
            await self._signals.emit(
                SignalType.DRAFT_MERGED,
                {
                    "draft_id": draft.draft_id,
                    "segment_id": segment.segment_id,
                    "state": draft.overall_state.value,
                    "review_fields": draft.review_fields,
                },
            )
        return drafts

    def _summary(self, start: float) -> dict[str, Any]:
        drafts = list(self._drafts.values())
        return {
            "document_id": self.document_id,
            "state": self._state.value,
            "fingerprint": self._fingerprint,
            "library_version": self._record.library_version,
            "segments": self._record.segment_count,
            "drafts": len(drafts),
            "needs_review": len(self.pending_review()),
            "generative_calls": sum(
                1 for s in self._signals.signals if s.signal_type == SignalType.GENERATIVE_INVOKED
            ),
            "failure_reason": self._record.failure_reason,
            "duration_s": round(time.monotonic() - start, 3),
            "signals_count": len(self._signals.signals),
        }

    # --- Review ---

    async def submit_correction(self, correction: Correction) -> TrainingExample | None:
        """Record a reviewer's correction as a training example.

        Returns the stored example, or None if the learning store dropped it.
        Once every draft needing review has been reviewed the document moves
        CORRECTED -> ARCHIVED.
        """
        if self._state in TERMINAL_STATES:
            raise ConduitError(
                f"Document {self.document_id} is {self._state.value} and accepts no corrections"
            )
        if self._state != DocumentState.REVIEW_PENDING:
            raise ConduitError(f"Document {self.document_id} is not awaiting review")
        draft = self._drafts.get(correction.draft_id)
        if draft is None:
            raise ConduitError(f"Unknown draft: {correction.draft_id}")
        if correction.draft_id in self._reviewed:
            raise ConduitError(f"Draft {correction.draft_id} was already reviewed")

        source_text = self._segments[draft.segment_id].raw_text
        example = self._learning.build_example(draft, correction, source_text)
        stored = await self._learning.append(example)

        self._reviewed.add(draft.draft_id)
        self._record = self._record.model_copy(
            update={"reviewed_drafts": sorted(self._reviewed)}
        )
        self._drafts_store.save_record(self._record)
        await self._signals.emit(
            SignalType.CORRECTION_RECORDED,
            {
                "draft_id": draft.draft_id,
                "deltas": [d.field for d in example.diff],
                "stored": stored is not None,
            },
        )

        if not self.pending_review():
            await self._transition(DocumentState.CORRECTED, {"reviewed": len(self._reviewed)})
            await self._transition(DocumentState.ARCHIVED)
        return stored
