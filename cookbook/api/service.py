"""Service layer shared by the API routes: one set of stores per process."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import HTTPException

from cookbook.ai_engine.engine import GenerativeStrategy, VertexCompletionProvider
from cookbook.conduit.engine import ConduitError, DocumentConduit
from cookbook.config.settings import CookbookConfig
from cookbook.learning.miner import MiningReport, PatternMiner
from cookbook.learning.readiness import ReadinessReport, assess_readiness
from cookbook.learning.store import Correction, LearningStore, TrainingExample
from cookbook.patterns.library import PatternLibrary
from cookbook.pipeline.manager import DraftStore
from cookbook.pipeline.models import DocumentInput, is_valid_document_id
from cookbook.pipeline.strategies import ExtractionStrategy
from cookbook.signals.emitter import SignalEmitter
from cookbook.signals.types import Signal, SignalType

logger = logging.getLogger(__name__)

LIBRARY_LEDGER_ID = "pattern-library"

_UNSET: Any = object()


class IngestService:
    """Owns the pattern library, stores and live document conduits."""

    def __init__(
        self,
        config: CookbookConfig | None = None,
        generative: ExtractionStrategy | None = _UNSET,
    ) -> None:
        self._config = config or CookbookConfig()
        data_dir = self._config.pipeline.data_dir
        self._library = PatternLibrary.load(data_dir / "patterns")
        self._drafts = DraftStore(data_dir)
        self._learning = LearningStore.for_data_dir(data_dir, self._config.learning)
        self._conduits: dict[str, DocumentConduit] = {}
        self._generative = generative
        self._mine_lock = asyncio.Lock()
        self._library_signals = SignalEmitter(
            document_id=LIBRARY_LEDGER_ID, ledger_path=data_dir / "patterns" / "signals.jsonl"
        )
        self._library_signals.subscribe(self._log_signal)

    @property
    def config(self) -> CookbookConfig:
        return self._config

    @property
    def library(self) -> PatternLibrary:
        return self._library

    @property
    def drafts(self) -> DraftStore:
        return self._drafts

    @property
    def learning(self) -> LearningStore:
        return self._learning

    @property
    def library_signals(self) -> SignalEmitter:
        return self._library_signals

    async def generative(self) -> ExtractionStrategy | None:
        """The generative strategy, initializing Vertex AI on first use."""
        if self._generative is _UNSET:
            provider = VertexCompletionProvider(self._config.completion)
            if await provider.initialize():
                self._generative = GenerativeStrategy(provider, self._config.completion)
            else:
                logger.info("no completion provider configured, running pattern + heuristic only")
                self._generative = None
        return self._generative

    async def submit_document(self, document: DocumentInput, wait: bool = True) -> dict[str, Any]:
        if document.document_id in self._conduits or self._drafts.load_record(
            document.document_id
        ):
            raise HTTPException(
                status_code=409, detail=f"Document {document.document_id} already exists"
            )
        conduit = DocumentConduit(
            document,
            config=self._config,
            library=self._library,
            drafts=self._drafts,
            learning=self._learning,
            generative=await self.generative(),
        )
        conduit.signals.subscribe(self._log_signal)
        self._conduits[document.document_id] = conduit
        if wait:
            return await conduit.run()
        conduit.start()
        return {"document_id": document.document_id, "state": conduit.state.value}

    def get_conduit(self, document_id: str) -> DocumentConduit | None:
        return self._conduits.get(document_id)

    def get_document(self, document_id: str) -> dict[str, Any]:
        conduit = self._conduits.get(document_id)
        if conduit is not None:
            record = conduit.record
            drafts = conduit.drafts
            pending = conduit.pending_review()
        else:
            stored = (
                self._drafts.load_record(document_id)
                if is_valid_document_id(document_id)
                else None
            )
            if stored is None:
                raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
            record = stored
            drafts = self._drafts.load_drafts(document_id)
            pending = []
        return {
            "document_id": document_id,
            "state": record.state,
            "fingerprint": record.fingerprint,
            "library_version": record.library_version,
            "failure_reason": record.failure_reason,
            "pending_review": pending,
            "drafts": [d.model_dump(mode="json") for d in drafts],
        }

    async def submit_correction(
        self, document_id: str, correction: Correction
    ) -> TrainingExample | None:
        conduit = self._conduits.get(document_id)
        if conduit is None:
            raise HTTPException(
                status_code=404, detail=f"Document {document_id} is not open for review"
            )
        if correction.draft_id not in {d.draft_id for d in conduit.drafts}:
            raise HTTPException(status_code=404, detail=f"Draft {correction.draft_id} not found")
        try:
            return await conduit.submit_correction(correction)
        except ConduitError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

    async def mine(self) -> MiningReport:
        """Run the miner off the event loop; live parses keep their snapshots."""
        miner = PatternMiner(
            self._library, self._config.learning, locale=self._config.extraction.locale
        )
        async with self._mine_lock:
            examples = await asyncio.to_thread(self._learning.snapshot)
            report = await asyncio.to_thread(miner.mine, examples)
        if report.published:
            await self._library_signals.emit(
                SignalType.LIBRARY_PUBLISHED, report.model_dump(mode="json")
            )
        return report

    def _log_signal(self, signal: Signal) -> None:
        """Trace signals into the service log; lifecycle transitions at INFO."""
        level = logging.INFO if signal.signal_type == SignalType.STATE_TRANSITION else logging.DEBUG
        logger.log(
            level,
            "signal %s #%d %s %s",
            signal.document_id,
            signal.sequence,
            signal.signal_type.value,
            signal.payload,
        )

    def readiness(self) -> ReadinessReport:
        return assess_readiness(
            self._learning.snapshot(), self._library.snapshot(), self._config.learning
        )
