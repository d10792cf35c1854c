"""Publish orchestrator: accept a record now, commit it to the ledger later.

``submit`` validates and persists a record, moves its operation to
``publishing`` and returns immediately. A supervised background task then
runs the analysis, builds the JSON-LD asset, publishes it and waits for the
ledger's confirmation. Whatever happens in that task ends up on the
operation row as ``completed`` or ``failed``; only validation errors are
ever raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from buildergraph.analysis_cache import AnalysisCache
from buildergraph.backoff import OperationTimeout, with_timeout
from buildergraph.errors import (
    AnalysisUnavailable,
    EntityNotFound,
    InvalidTransition,
    LedgerError,
    SubmissionError,
)
from buildergraph.ledger.client import LedgerClient
from buildergraph.ledger.jsonld import endorsement_to_jsonld, profile_to_jsonld, project_to_jsonld
from buildergraph.publishing.models import (
    SUBMISSION_MODELS,
    EndorsementSubmission,
    ProfileSubmission,
    ProjectSubmission,
    PublishStatus,
    SubmissionReceipt,
)
from buildergraph.scoring.analysis import (
    ANALYSIS_UNAVAILABLE,
    RepositoryAnalyzer,
    RepositorySnapshot,
    analysis_hash,
    description_from_readme,
    determine_category,
    metrics_from_snapshot,
    project_keywords,
    summarize,
)
from buildergraph.scoring.engine import ScoreResult, score
from buildergraph.storage.repository import RecordStore
from buildergraph.utils import slugify

logger = logging.getLogger(__name__)

DEFAULT_EPOCHS = {"profile": 6, "project": 6, "endorsement": 2}

# Allowance on top of the confirmation timeout for analysis and the publish request
DEFAULT_WORK_BUDGET = 120.0

INTERRUPTED_MESSAGE = "Publishing was interrupted before the ledger confirmed; ledger outcome unknown"


def make_operation_id(entity_type: str, label: str) -> str:
    return f"{entity_type}-{slugify(label, max_length=40)}-{uuid.uuid4().hex}"


def _validation_message(exc: ValidationError) -> tuple[str, Optional[str]]:
    first = exc.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ())) or None
    message = first.get("msg", "Invalid value")
    return (f"{field}: {message}" if field else message), field


class PublishOrchestrator:
    """Owns every record from submission until its operation is terminal.

    Args:
        store: Persistence for records and operations.
        ledger: Shared ledger client.
        cache: Analysis cache for project repository analyses.
        analyzer: Narrative analyzer; ``None`` disables LLM narratives.
        confirmation_timeout: Seconds to wait for a UAL after publishing.
        epochs: Storage epochs per entity type.
        work_budget: Extra seconds allowed for analysis and the publish
            request before the whole task is abandoned.
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: LedgerClient,
        cache: AnalysisCache,
        analyzer: Optional[RepositoryAnalyzer] = None,
        *,
        confirmation_timeout: float = 300.0,
        epochs: Optional[dict[str, int]] = None,
        work_budget: float = DEFAULT_WORK_BUDGET,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.cache = cache
        self.analyzer = analyzer or RepositoryAnalyzer(None)
        self.confirmation_timeout = confirmation_timeout
        self.epochs = {**DEFAULT_EPOCHS, **(epochs or {})}
        self.task_timeout = confirmation_timeout + work_budget
        self._tasks: dict[str, asyncio.Task] = {}
        self._accepting = True

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        entity_type: str,
        payload: Union[BaseModel, dict[str, Any]],
    ) -> SubmissionReceipt:
        """Validate, persist and start publishing one record.

        Raises:
            SubmissionError: the payload is invalid or conflicts with stored data.
            EntityNotFound: a referenced owner, profile or project does not exist.
        """
        if not self._accepting:
            raise SubmissionError("Service is shutting down; submission refused")

        fields, label = await asyncio.to_thread(self._validate, entity_type, payload)
        operation_id = make_operation_id(entity_type, label)

        entity, _ = await asyncio.to_thread(self.store.create_submission, entity_type, fields, operation_id)
        await asyncio.to_thread(self.store.transition, operation_id, PublishStatus.PUBLISHING)
        self._spawn(operation_id, entity_type, entity["id"])

        logger.info(
            "Accepted %s %s (id=%s) operation=%s", entity_type, label, entity["id"], operation_id,
        )
        return SubmissionReceipt(operation_id=operation_id, entity_id=entity["id"])

    def _validate(self, entity_type: str, payload) -> tuple[dict[str, Any], str]:
        model = SUBMISSION_MODELS.get(entity_type)
        if model is None:
            raise SubmissionError(f"Unknown entity type '{entity_type}'", field="entity_type")

        if isinstance(payload, model):
            submission = payload
        else:
            data = payload.model_dump() if isinstance(payload, BaseModel) else payload
            try:
                submission = model.model_validate(data)
            except ValidationError as exc:
                message, field = _validation_message(exc)
                raise SubmissionError(message, field=field) from exc

        if isinstance(submission, ProfileSubmission):
            return self._validate_profile(submission)
        if isinstance(submission, ProjectSubmission):
            return self._validate_project(submission)
        return self._validate_endorsement(submission)

    def _validate_profile(self, submission: ProfileSubmission) -> tuple[dict, str]:
        if self.store.get_profile_by_username(submission.username):
            raise SubmissionError("Username already exists", field="username")
        return submission.model_dump(), submission.username

    def _validate_project(self, submission: ProjectSubmission) -> tuple[dict, str]:
        if self.store.get_profile_by_ual(submission.owner_ual) is None:
            raise EntityNotFound("Owner profile not found")
        fields = submission.model_dump(exclude={"repository"})
        if submission.repository is not None:
            snapshot = submission.repository
            if snapshot.identity is None and submission.repository_url:
                snapshot = snapshot.model_copy(update={"url": submission.repository_url})
            fields["repository_snapshot"] = snapshot.model_dump(mode="json")
        return fields, submission.name

    def _validate_endorsement(self, submission: EndorsementSubmission) -> tuple[dict, str]:
        fields = submission.model_dump()
        if submission.target_type == "skill":
            if not submission.skill_name:
                raise SubmissionError("skillName is required for skill endorsements", field="skill_name")
            target = self.store.get_profile_by_ual(submission.target_id)
            if target is None:
                raise EntityNotFound("Target profile not found")
            fields["target_username"] = target["username"]
            label = submission.skill_name
        else:
            if not submission.project_id:
                raise SubmissionError("projectId is required for project endorsements", field="project_id")
            target = self.store.find_entity("project", submission.project_id)
            if target is None:
                raise EntityNotFound("Target project not found")
            label = target["name"]
        return fields, f"{submission.target_type}-{label}"

    # ------------------------------------------------------------------
    # Supervision
    # ------------------------------------------------------------------

    def _spawn(self, operation_id: str, entity_type: str, entity_id: int) -> None:
        task = asyncio.create_task(
            self._run(operation_id, entity_type, entity_id),
            name=f"publish:{operation_id}",
        )
        self._tasks[operation_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(operation_id, None))

    async def wait(self, operation_id: Optional[str] = None) -> None:
        """Wait for one (or every) in-flight operation to reach a terminal state."""
        if operation_id is not None:
            task = self._tasks.get(operation_id)
            tasks = [task] if task else []
        else:
            tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self, grace: float = 10.0) -> int:
        """Stop accepting work and let in-flight operations finish.

        Operations still running after ``grace`` seconds are cancelled and
        recorded as ``failed`` with ``error_kind="interrupted"``. Returns the
        number of operations cancelled.
        """
        self._accepting = False
        tasks = list(self._tasks.values())
        pending: set = set()
        if tasks:
            logger.info("Draining %d in-flight publish operation(s)", len(tasks))
            _, pending = await asyncio.wait(tasks, timeout=grace)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("Cancelled %d publish operation(s) at shutdown", len(pending))
        await self.cache.aclose()
        return len(pending)

    def recover_interrupted(self) -> int:
        """Fail operations a previous process left in ``pending``/``publishing``."""
        stuck = self.store.list_operations(
            statuses=[PublishStatus.PENDING, PublishStatus.PUBLISHING], limit=10_000,
        )
        recovered = 0
        for op in stuck:
            if op["operation_id"] in self._tasks:
                continue
            if self._fail(op["operation_id"], INTERRUPTED_MESSAGE, "interrupted"):
                recovered += 1
        if recovered:
            logger.warning("Marked %d interrupted publish operation(s) as failed", recovered)
        return recovered

    # ------------------------------------------------------------------
    # Background task
    # ------------------------------------------------------------------

    async def _run(self, operation_id: str, entity_type: str, entity_id: int) -> None:
        try:
            await with_timeout(
                self._publish(operation_id, entity_type, entity_id),
                self.task_timeout,
                message="Publish task",
            )
        except OperationTimeout:
            self._fail(
                operation_id,
                f"Publishing did not finish within {self.task_timeout:g}s; ledger outcome unknown",
                "timeout",
            )
        except LedgerError as exc:
            self._fail(operation_id, str(exc), exc.kind, asset_id=getattr(exc, "asset_id", None))
        except asyncio.CancelledError:
            self._fail(operation_id, INTERRUPTED_MESSAGE, "interrupted")
            raise
        except Exception as exc:
            logger.exception("Unexpected error publishing %s", operation_id)
            self._fail(operation_id, f"Internal error: {exc}", "internal")

    async def _publish(self, operation_id: str, entity_type: str, entity_id: int) -> None:
        entity = await asyncio.to_thread(self.store.get_entity, entity_type, entity_id)
        if entity is None:
            raise EntityNotFound(f"{entity_type} {entity_id} disappeared before publishing")

        keywords: Optional[list[str]] = None
        if entity_type == "project" and entity.get("repository_snapshot"):
            entity, keywords = await self._analyze_project(entity)

        content = self._build_content(entity_type, entity, keywords)
        owner_ual = self._owner_ual(entity_type, entity)
        metadata = {"entityType": entity_type, "entityId": entity_id, "operationId": operation_id}
        if owner_ual:
            metadata["ownerUAL"] = owner_ual

        handle = await self.ledger.publish(content, metadata, epochs=self.epochs[entity_type])
        await asyncio.to_thread(
            self.store.record_attempt, operation_id, attempts=handle.attempts, asset_id=handle.asset_id,
        )

        confirmation = await self.ledger.await_confirmation(handle, timeout=self.confirmation_timeout)

        await asyncio.to_thread(
            self.store.transition,
            operation_id,
            PublishStatus.COMPLETED,
            ual=confirmation.ual,
            dataset_root=confirmation.dataset_root,
        )
        await asyncio.to_thread(
            self.store.archive_asset,
            ual=confirmation.ual,
            dataset_root=confirmation.dataset_root,
            entity_type=entity_type,
            entity_id=entity_id,
            owner_ual=owner_ual,
            published_data=content,
        )
        logger.info("Published %s %s: ual=%s", entity_type, entity_id, confirmation.ual)

    async def _analyze_project(self, project: dict) -> tuple[dict, list[str]]:
        """Resolve score and narrative for a project's repository snapshot."""
        snapshot = RepositorySnapshot.model_validate(project["repository_snapshot"])
        digest = analysis_hash(snapshot)

        def compute() -> dict:
            result = score(metrics_from_snapshot(snapshot))
            narrative = self.analyzer.narrate(snapshot)
            return {
                "narrative_text": narrative,
                "score": result.total,
                "score_breakdown": result.breakdown,
            }

        try:
            if snapshot.identity is None:
                logger.info("Repository snapshot has no url or name; scoring it outside the analysis cache")
                record = await asyncio.to_thread(compute)
            else:
                record = await self.cache.get_or_compute(digest, compute)
            result = ScoreResult(total=record["score"], breakdown=dict(record["score_breakdown"]))
            narrative = record["narrative_text"]
        except AnalysisUnavailable as exc:
            logger.warning("AI analysis failed, continuing without it: %s", exc)
            result = score(metrics_from_snapshot(snapshot))
            narrative = ANALYSIS_UNAVAILABLE

        fields = {
            "analysis_hash": digest,
            "score": result.total,
            "score_breakdown": result.breakdown,
            "analysis_summary": summarize(result, snapshot, narrative),
            "keywords": project_keywords(snapshot),
            "category": project.get("category") or determine_category(snapshot),
            "description": (
                project.get("description")
                or snapshot.description
                or description_from_readme(snapshot.readme)
                or "No description available"
            ),
            "license": project.get("license") or snapshot.license,
            "stars": project["stars"] if project.get("stars") is not None else snapshot.stars,
            "tech_stack": project.get("tech_stack")
            or list(snapshot.languages)
            or ([snapshot.language] if snapshot.language else []),
        }
        await asyncio.to_thread(self.store.update_project_analysis, project["id"], **fields)
        logger.info("Project %s scored %s/100 (hash %s)", project["id"], result.total, digest[:12])
        return {**project, **fields}, fields["keywords"]

    @staticmethod
    def _build_content(entity_type: str, entity: dict, keywords: Optional[list[str]]) -> dict:
        if entity_type == "profile":
            return profile_to_jsonld(entity, generated_at=entity.get("created_at"))
        if entity_type == "project":
            return project_to_jsonld(
                entity,
                entity["owner_ual"],
                keywords=keywords,
                generated_at=entity.get("created_at"),
            )
        return endorsement_to_jsonld(entity, generated_at=entity.get("created_at"))

    @staticmethod
    def _owner_ual(entity_type: str, entity: dict) -> Optional[str]:
        if entity_type == "project":
            return entity.get("owner_ual")
        if entity_type == "endorsement":
            return entity.get("endorser_ual")
        return None

    def _fail(self, operation_id: str, error: str, error_kind: str, asset_id: Optional[str] = None) -> bool:
        # Synchronous: it also runs inside tasks that are being cancelled
        try:
            self.store.transition(
                operation_id,
                PublishStatus.FAILED,
                error=error,
                error_kind=error_kind,
                asset_id=asset_id,
            )
        except InvalidTransition as exc:
            logger.warning("Could not record failure for %s: %s", operation_id, exc)
            return False
        logger.error("Publishing %s failed (%s): %s", operation_id, error_kind, error)
        return True
