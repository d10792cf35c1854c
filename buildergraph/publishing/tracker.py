"""Read-only view of publish operations.

Status comes from the persisted operation row, never from in-memory task
handles, so it survives process restarts.
"""

from __future__ import annotations

from typing import Optional

from buildergraph.errors import OperationNotFound
from buildergraph.ledger.client import LedgerClient
from buildergraph.publishing.models import AMBIGUOUS_ERROR_KINDS, PublishStatus, StatusView
from buildergraph.storage.repository import RecordStore


class StatusTracker:
    def __init__(self, store: RecordStore, ledger: Optional[LedgerClient] = None) -> None:
        self.store = store
        self.ledger = ledger

    def get_status(self, operation_id: str, entity_type: Optional[str] = None) -> StatusView:
        """Return the current state of ``operation_id``.

        Raises:
            OperationNotFound: no such operation, or it belongs to a
                different entity type than the one asked for.
        """
        op = self.store.get_operation(operation_id)
        if op is None or (entity_type is not None and op["entity_type"] != entity_type):
            raise OperationNotFound(operation_id)
        return self._to_view(op)

    def list_status(self, status: Optional[PublishStatus] = None, limit: int = 100) -> list[StatusView]:
        statuses = [status] if status is not None else None
        return [self._to_view(op) for op in self.store.list_operations(statuses=statuses, limit=limit)]

    def _to_view(self, op: dict) -> StatusView:
        status = PublishStatus(op["status"])
        explorer_url = None
        if self.ledger is not None and op.get("ual"):
            explorer_url = self.ledger.explorer_url(op["ual"])
        return StatusView(
            operation_id=op["operation_id"],
            entity_type=op["entity_type"],
            entity_id=op["entity_id"],
            status=status,
            ual=op.get("ual"),
            dataset_root=op.get("dataset_root"),
            error=op.get("error"),
            error_kind=op.get("error_kind"),
            outcome_known=op.get("error_kind") not in AMBIGUOUS_ERROR_KINDS,
            attempts=op.get("attempts") or 0,
            explorer_url=explorer_url,
            created_at=op.get("created_at"),
            updated_at=op.get("updated_at"),
        )
