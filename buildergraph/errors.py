"""Exception taxonomy for the publish-and-track pipeline.

Only ``SubmissionError`` and ``EntityNotFound`` ever cross the submission
boundary; every publish-time failure is recorded on the operation row and
observed through polling.
"""

from __future__ import annotations


class BuilderGraphError(Exception):
    """Base exception for BuilderGraph"""


# ---------------------------------------------------------------------------
# Submission / lookup
# ---------------------------------------------------------------------------

class SubmissionError(BuilderGraphError):
    """A submitted record failed validation (HTTP 400)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class EntityNotFound(BuilderGraphError):
    """A referenced profile, project or endorsement does not exist (HTTP 404)."""


class OperationNotFound(BuilderGraphError):
    """Unknown operation id on status lookup (HTTP 404)."""

    def __init__(self, operation_id: str) -> None:
        super().__init__(f"Operation '{operation_id}' not found")
        self.operation_id = operation_id


class InvalidTransition(BuilderGraphError):
    """A status write was refused because the row is not in an allowed source state."""

    def __init__(self, operation_id: str, target: str, current: str | None) -> None:
        super().__init__(
            f"Operation '{operation_id}' cannot move to '{target}' from '{current}'"
        )
        self.operation_id = operation_id
        self.target = target
        self.current = current


# ---------------------------------------------------------------------------
# Ledger node
# ---------------------------------------------------------------------------

class LedgerError(BuilderGraphError):
    """Base class for ledger node failures."""

    #: value written to ``publish_operations.error_kind``
    kind = "internal"


class TransportError(LedgerError):
    """Network failure or non-2xx response from the ledger node. Retryable."""

    kind = "transport"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NodeRejected(LedgerError):
    """The ledger node reported a terminal failure for the asset. Not retried."""

    kind = "rejected"

    def __init__(self, message: str, asset_id: str | None = None) -> None:
        super().__init__(message)
        self.asset_id = asset_id


class ConfirmationTimeout(LedgerError):
    """The wait budget ran out before the node produced a UAL.

    The commit may still land on the ledger later, so this is not a hard
    negative: the outcome is unknown.
    """

    kind = "timeout"

    def __init__(self, message: str, asset_id: str | None = None) -> None:
        super().__init__(message)
        self.asset_id = asset_id


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

class AnalysisUnavailable(BuilderGraphError):
    """The narrative analysis could not be produced (LLM missing or failing)."""
