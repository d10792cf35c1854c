"""Project endorsable-work endpoints, linked to their owner's profile UAL."""

import logging

from fastapi import APIRouter, Depends, Query

from buildergraph.api.dependencies import get_ledger, get_orchestrator, get_store, get_tracker
from buildergraph.api.models import ProjectResponse
from buildergraph.errors import EntityNotFound
from buildergraph.ledger.client import LedgerClient
from buildergraph.publishing.models import ProjectSubmission, StatusView, SubmissionReceipt
from buildergraph.publishing.orchestrator import PublishOrchestrator
from buildergraph.publishing.tracker import StatusTracker
from buildergraph.storage.repository import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


def _response(row: dict, ledger: LedgerClient) -> ProjectResponse:
    return ProjectResponse(**row, explorer_url=ledger.explorer_url(row["ual"]))


@router.post("", response_model=SubmissionReceipt, status_code=202)
async def create_project(
    body: ProjectSubmission,
    orchestrator: PublishOrchestrator = Depends(get_orchestrator),
):
    """Store a project and start analysing and publishing it.

    When the body carries a ``repository`` snapshot the project is scored
    (and, if an LLM is configured, narrated) before it is published.
    """
    return await orchestrator.submit("project", body)


@router.get("/status/{operation_id}", response_model=StatusView)
def project_status(operation_id: str, tracker: StatusTracker = Depends(get_tracker)):
    return tracker.get_status(operation_id, entity_type="project")


@router.get("/owner/{owner_ual:path}", response_model=list[ProjectResponse])
def projects_by_owner(
    owner_ual: str,
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    if store.get_profile_by_ual(owner_ual) is None:
        raise EntityNotFound("Owner profile not found")
    return [_response(row, ledger) for row in store.projects_by_owner(owner_ual)]


@router.get("", response_model=list[ProjectResponse])
def list_projects(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    return [_response(row, ledger) for row in store.list_entities("project", limit=limit, offset=offset)]


@router.get("/{identifier:path}", response_model=ProjectResponse)
def get_project(
    identifier: str,
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    row = store.find_entity("project", identifier)
    if row is None:
        raise EntityNotFound("Project not found")
    return _response(row, ledger)
