"""Developer profile endpoints."""

import logging

from fastapi import APIRouter, Depends, Query

from buildergraph.api.dependencies import get_ledger, get_orchestrator, get_store, get_tracker
from buildergraph.api.models import ProfileResponse
from buildergraph.errors import EntityNotFound
from buildergraph.ledger.client import LedgerClient
from buildergraph.publishing.models import ProfileSubmission, StatusView, SubmissionReceipt
from buildergraph.publishing.orchestrator import PublishOrchestrator
from buildergraph.publishing.tracker import StatusTracker
from buildergraph.storage.repository import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


@router.post("", response_model=SubmissionReceipt, status_code=202)
async def create_profile(
    body: ProfileSubmission,
    orchestrator: PublishOrchestrator = Depends(get_orchestrator),
):
    """Store a profile and start publishing it to the ledger."""
    return await orchestrator.submit("profile", body)


@router.get("/status/{operation_id}", response_model=StatusView)
def profile_status(operation_id: str, tracker: StatusTracker = Depends(get_tracker)):
    return tracker.get_status(operation_id, entity_type="profile")


@router.get("", response_model=list[ProfileResponse])
def list_profiles(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    rows = store.list_entities("profile", limit=limit, offset=offset)
    return [ProfileResponse(**row, explorer_url=ledger.explorer_url(row["ual"])) for row in rows]


@router.get("/{identifier:path}", response_model=ProfileResponse)
def get_profile(
    identifier: str,
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    """Fetch a profile by numeric id, UAL or username."""
    row = store.find_entity("profile", identifier)
    if row is None:
        raise EntityNotFound("Profile not found")
    return ProfileResponse(**row, explorer_url=ledger.explorer_url(row["ual"]))
