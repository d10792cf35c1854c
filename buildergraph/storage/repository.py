"""Record store: the only place that reads or writes the database.

Status writes are compare-and-swap updates on ``publish_operations`` that
succeed only when the row is still in one of the allowed source states. The
matching entity row's publish envelope is written in the same transaction,
so a record and its operation never disagree.

All methods return plain dicts so callers never hold live ORM objects.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from buildergraph.errors import InvalidTransition, SubmissionError
from buildergraph.publishing.models import ALLOWED_TRANSITIONS, PublishStatus
from buildergraph.storage.db import Database
from buildergraph.storage.models import (
    ENTITY_MODELS,
    AnalysisRecord,
    Profile,
    Project,
    PublishedAsset,
    PublishOperation,
)
from buildergraph.utils import utcnow

logger = logging.getLogger(__name__)


class RecordStore:
    def __init__(self, database: Database) -> None:
        self.db = database

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def create_submission(
        self,
        entity_type: str,
        fields: dict[str, Any],
        operation_id: str,
    ) -> tuple[dict, dict]:
        """Insert a record and its pending operation in one transaction."""
        model = ENTITY_MODELS[entity_type]
        try:
            with self.db.session() as s:
                entity = model(
                    **fields,
                    operation_id=operation_id,
                    publish_status=PublishStatus.PENDING.value,
                )
                s.add(entity)
                s.flush()
                operation = PublishOperation(
                    operation_id=operation_id,
                    entity_type=entity_type,
                    entity_id=entity.id,
                    status=PublishStatus.PENDING.value,
                    attempts=0,
                )
                s.add(operation)
                s.flush()
                return entity.to_dict(), operation.to_dict()
        except IntegrityError as exc:
            # Username uniqueness is the only constraint a caller can violate
            if entity_type == "profile":
                raise SubmissionError("Username already exists", field="username") from exc
            raise

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def transition(
        self,
        operation_id: str,
        target: PublishStatus,
        **fields: Any,
    ) -> dict:
        """Move an operation to ``target`` if its current state allows it.

        ``fields`` may carry ``ual``, ``dataset_root``, ``error``,
        ``error_kind``, ``asset_id`` and ``attempts``.

        Raises:
            InvalidTransition: the row is missing or in a disallowed state;
                nothing is written.
        """
        allowed = [s.value for s in ALLOWED_TRANSITIONS[target]]
        now = utcnow()
        op_values = {"status": target.value, "updated_at": now}
        op_values.update({k: v for k, v in fields.items() if v is not None})

        with self.db.session() as s:
            result = s.execute(
                update(PublishOperation)
                .where(PublishOperation.operation_id == operation_id)
                .where(PublishOperation.status.in_(allowed))
                .values(**op_values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = s.scalar(
                    select(PublishOperation.status).where(PublishOperation.operation_id == operation_id)
                )
                raise InvalidTransition(operation_id, target.value, current)

            operation = s.get(PublishOperation, operation_id)
            entity_values: dict[str, Any] = {"publish_status": target.value, "updated_at": now}
            if target is PublishStatus.COMPLETED:
                entity_values["ual"] = fields.get("ual")
                entity_values["dataset_root"] = fields.get("dataset_root")
            elif target is PublishStatus.FAILED:
                entity_values["publish_error"] = fields.get("error")

            model = ENTITY_MODELS[operation.entity_type]
            s.execute(
                update(model)
                .where(model.id == operation.entity_id)
                .values(**entity_values)
                .execution_options(synchronize_session=False)
            )
            return operation.to_dict()

    def record_attempt(self, operation_id: str, *, attempts: int, asset_id: Optional[str]) -> bool:
        """Store the node's asset handle while the operation is still publishing."""
        with self.db.session() as s:
            result = s.execute(
                update(PublishOperation)
                .where(PublishOperation.operation_id == operation_id)
                .where(PublishOperation.status == PublishStatus.PUBLISHING.value)
                .values(attempts=attempts, asset_id=asset_id, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def get_operation(self, operation_id: str) -> Optional[dict]:
        with self.db.session() as s:
            row = s.get(PublishOperation, operation_id)
            return row.to_dict() if row else None

    def list_operations(
        self,
        statuses: Optional[Iterable[PublishStatus]] = None,
        entity_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[dict]:
        with self.db.session() as s:
            q = select(PublishOperation).order_by(PublishOperation.created_at.desc())
            if statuses:
                q = q.where(PublishOperation.status.in_([st.value for st in statuses]))
            if entity_type:
                q = q.where(PublishOperation.entity_type == entity_type)
            return [row.to_dict() for row in s.scalars(q.limit(limit))]

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def get_entity(self, entity_type: str, entity_id: int) -> Optional[dict]:
        with self.db.session() as s:
            row = s.get(ENTITY_MODELS[entity_type], entity_id)
            return row.to_dict() if row else None

    def find_entity(self, entity_type: str, identifier: str) -> Optional[dict]:
        """Look a record up by numeric id, UAL, or (profiles) username."""
        model = ENTITY_MODELS[entity_type]
        with self.db.session() as s:
            if str(identifier).isdigit():
                row = s.get(model, int(identifier))
                if row:
                    return row.to_dict()
            clauses = [model.ual == identifier]
            if model is Profile:
                clauses.append(Profile.username == identifier)
            row = s.scalars(select(model).where(or_(*clauses)).limit(1)).first()
            return row.to_dict() if row else None

    def list_entities(self, entity_type: str, limit: int = 100, offset: int = 0) -> list[dict]:
        model = ENTITY_MODELS[entity_type]
        with self.db.session() as s:
            q = select(model).order_by(model.created_at.desc()).offset(offset).limit(limit)
            return [row.to_dict() for row in s.scalars(q)]

    def get_profile_by_username(self, username: str) -> Optional[dict]:
        with self.db.session() as s:
            row = s.scalars(select(Profile).where(Profile.username == username)).first()
            return row.to_dict() if row else None

    def get_profile_by_ual(self, ual: str) -> Optional[dict]:
        with self.db.session() as s:
            row = s.scalars(select(Profile).where(Profile.ual == ual)).first()
            return row.to_dict() if row else None

    def projects_by_owner(self, owner_ual: str) -> list[dict]:
        with self.db.session() as s:
            q = select(Project).where(Project.owner_ual == owner_ual).order_by(Project.created_at.desc())
            return [row.to_dict() for row in s.scalars(q)]

    def update_project_analysis(self, project_id: int, **fields: Any) -> None:
        """Write score, breakdown, hash and derived fields computed in the background."""
        with self.db.session() as s:
            s.execute(
                update(Project)
                .where(Project.id == project_id)
                .values(**fields, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

    # ------------------------------------------------------------------
    # Analysis records
    # ------------------------------------------------------------------

    def get_analysis(self, analysis_hash: str) -> Optional[dict]:
        with self.db.session() as s:
            row = s.scalars(select(AnalysisRecord).where(AnalysisRecord.hash == analysis_hash)).first()
            return row.to_dict() if row else None

    def insert_analysis_if_absent(
        self,
        analysis_hash: str,
        narrative_text: str,
        score: float,
        score_breakdown: dict,
    ) -> tuple[dict, bool]:
        """Insert an analysis record unless one exists. Returns ``(record, inserted)``.

        A concurrent insert for the same hash loses on the unique constraint
        and returns the winner's record instead.
        """
        try:
            with self.db.session() as s:
                row = AnalysisRecord(
                    hash=analysis_hash,
                    narrative_text=narrative_text,
                    score=score,
                    score_breakdown=score_breakdown,
                )
                s.add(row)
                s.flush()
                return row.to_dict(), True
        except IntegrityError:
            logger.debug("Analysis %s stored by a concurrent writer, adopting it", analysis_hash[:12])
            existing = self.get_analysis(analysis_hash)
            if existing:
                return existing, False
            raise RuntimeError(f"Failed to get or create analysis record: {analysis_hash}")

    # ------------------------------------------------------------------
    # Published asset archive
    # ------------------------------------------------------------------

    def archive_asset(
        self,
        *,
        ual: str,
        dataset_root: Optional[str],
        entity_type: str,
        entity_id: int,
        owner_ual: Optional[str],
        published_data: dict,
    ) -> bool:
        try:
            with self.db.session() as s:
                s.add(PublishedAsset(
                    ual=ual,
                    dataset_root=dataset_root,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    owner_ual=owner_ual,
                    published_data=published_data,
                ))
            return True
        except IntegrityError:
            logger.debug("Asset %s already archived", ual)
            return False

    def get_published_asset(self, ual: str) -> Optional[dict]:
        with self.db.session() as s:
            row = s.scalars(select(PublishedAsset).where(PublishedAsset.ual == ual)).first()
            return row.to_dict() if row else None
