"""Staked skill and project endorsements."""

from fastapi import APIRouter, Depends, Query

from buildergraph.api.dependencies import get_ledger, get_orchestrator, get_store, get_tracker
from buildergraph.api.models import EndorsementResponse
from buildergraph.errors import EntityNotFound
from buildergraph.ledger.client import LedgerClient
from buildergraph.publishing.models import EndorsementSubmission, StatusView, SubmissionReceipt
from buildergraph.publishing.orchestrator import PublishOrchestrator
from buildergraph.publishing.tracker import StatusTracker
from buildergraph.storage.repository import RecordStore

router = APIRouter(prefix="/api/endorsements", tags=["endorsements"])


@router.post("", response_model=SubmissionReceipt, status_code=202)
async def create_endorsement(
    body: EndorsementSubmission,
    orchestrator: PublishOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.submit("endorsement", body)


@router.get("/status/{operation_id}", response_model=StatusView)
def endorsement_status(operation_id: str, tracker: StatusTracker = Depends(get_tracker)):
    return tracker.get_status(operation_id, entity_type="endorsement")


@router.get("", response_model=list[EndorsementResponse])
def list_endorsements(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    rows = store.list_entities("endorsement", limit=limit, offset=offset)
    return [EndorsementResponse(**row, explorer_url=ledger.explorer_url(row["ual"])) for row in rows]


@router.get("/{identifier:path}", response_model=EndorsementResponse)
def get_endorsement(
    identifier: str,
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    row = store.find_entity("endorsement", identifier)
    if row is None:
        raise EntityNotFound("Endorsement not found")
    return EndorsementResponse(**row, explorer_url=ledger.explorer_url(row["ual"]))
