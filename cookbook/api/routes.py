"""REST API routes for cookbook ingest.

Provides endpoints for:
- Submitting extracted document text for parsing
- Listing documents and reading their state and merged drafts
- Submitting reviewer corrections
- Inspecting and mining the pattern library
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from cookbook.api.service import IngestService
from cookbook.learning.miner import MiningReport
from cookbook.learning.readiness import ReadinessReport
from cookbook.learning.store import Correction
from cookbook.pipeline.models import DocumentInput

router = APIRouter()

_service: IngestService | None = None


def get_service() -> IngestService:
    global _service
    if _service is None:
        _service = IngestService()
    return _service


# --- Request/Response Models ---


class CorrectionRequest(BaseModel):
    draft_id: str
    corrected_fields: dict[str, Any] = Field(default_factory=dict)


class CorrectionResponse(BaseModel):
    document_id: str
    draft_id: str
    state: str
    recorded: bool
    example_id: str | None = None
    changed_fields: list[str] = Field(default_factory=list)


# --- Endpoints ---


@router.post("/documents")
async def submit_document(
    document: DocumentInput,
    wait: bool = Query(default=True),
    service: IngestService = Depends(get_service),
) -> dict[str, Any]:
    """Parse a document's extracted text into recipe drafts.

    With ``wait=false`` the parse runs in the background; poll
    GET /documents/{document_id} for the result.
    """
    return await service.submit_document(document, wait=wait)


@router.get("/documents")
async def list_documents(service: IngestService = Depends(get_service)) -> dict[str, Any]:
    """List every stored document with its lifecycle state."""
    return {
        "documents": [
            record.model_dump(mode="json", include={"document_id", "state", "draft_count"})
            for record in service.drafts.list_records()
        ]
    }


@router.get("/documents/{document_id}")
async def get_document(
    document_id: str, service: IngestService = Depends(get_service)
) -> dict[str, Any]:
    return service.get_document(document_id)


@router.post("/documents/{document_id}/corrections", response_model=CorrectionResponse)
async def submit_correction(
    document_id: str,
    request: CorrectionRequest,
    service: IngestService = Depends(get_service),
) -> CorrectionResponse:
    try:
        correction = Correction(
            draft_id=request.draft_id, corrected_fields=request.corrected_fields
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    example = await service.submit_correction(document_id, correction)
    conduit = service.get_conduit(document_id)
    return CorrectionResponse(
        document_id=document_id,
        draft_id=request.draft_id,
        state=conduit.state.value if conduit else "UNKNOWN",
        recorded=example is not None,
        example_id=example.example_id if example else None,
        changed_fields=[d.field for d in example.diff] if example else [],
    )


@router.get("/patterns")
async def list_patterns(service: IngestService = Depends(get_service)) -> dict[str, Any]:
    snapshot = service.library.snapshot()
    return {
        "version": snapshot.version,
        "published_at": snapshot.published_at,
        "rules": [rule.model_dump(mode="json") for rule in snapshot.rules],
    }


@router.post("/patterns/mine", response_model=MiningReport)
async def mine_patterns(service: IngestService = Depends(get_service)) -> MiningReport:
    """Fold recorded corrections into a new pattern library version."""
    return await service.mine()


@router.get("/learning/stats", response_model=ReadinessReport)
async def learning_stats(service: IngestService = Depends(get_service)) -> ReadinessReport:
    return service.readiness()
