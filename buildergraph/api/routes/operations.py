"""Entity-agnostic view of publish operations."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from buildergraph.api.dependencies import get_tracker
from buildergraph.publishing.models import PublishStatus, StatusView
from buildergraph.publishing.tracker import StatusTracker

router = APIRouter(prefix="/api/operations", tags=["operations"])


@router.get("", response_model=list[StatusView])
def list_operations(
    status: Optional[PublishStatus] = None,
    limit: int = Query(default=50, ge=1, le=500),
    tracker: StatusTracker = Depends(get_tracker),
):
    return tracker.list_status(status=status, limit=limit)


@router.get("/{operation_id}", response_model=StatusView)
def get_operation(operation_id: str, tracker: StatusTracker = Depends(get_tracker)):
    """Status of any operation, whatever kind of record it publishes."""
    return tracker.get_status(operation_id)
