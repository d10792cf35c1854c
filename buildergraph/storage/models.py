"""
Database models

SQLAlchemy ORM tables for the three publishable record types, the publish
operation log, the analysis cache and the archive of published assets.

Every publishable record carries the same publish envelope
(operation_id, publish_status, ual, dataset_root, publish_error) which is
only ever written together with its PublishOperation row.
"""
from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text

from buildergraph.storage.db import Base
from buildergraph.utils import utcnow


class _RowMixin:
    def to_dict(self) -> dict:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class PublishEnvelopeMixin(_RowMixin):
    operation_id = Column(String(160), unique=True, nullable=True, index=True)
    publish_status = Column(String(20), default="pending", nullable=False, index=True)
    ual = Column(String(255), nullable=True, index=True)
    dataset_root = Column(String(255), nullable=True)
    publish_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Profile(PublishEnvelopeMixin, Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(200), nullable=False)
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    location = Column(String(200), nullable=True)
    bio = Column(Text, nullable=True)
    skills = Column(JSON, default=list, nullable=False)
    experience = Column(Integer, nullable=True)  # years
    languages = Column(JSON, default=list, nullable=False)
    specializations = Column(JSON, default=list, nullable=False)
    github_username = Column(String(100), nullable=True)
    github_repos = Column(JSON, default=list, nullable=False)


class Project(PublishEnvelopeMixin, Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_ual = Column(String(255), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    repository_url = Column(String(500), nullable=True)
    tech_stack = Column(JSON, default=list, nullable=False)
    category = Column(String(50), nullable=True)
    live_url = Column(String(500), nullable=True)
    license = Column(String(100), nullable=True)
    stars = Column(Integer, nullable=True)

    # Filled in by the background analysis before publishing
    analysis_hash = Column(String(64), nullable=True, index=True)
    score = Column(Float, nullable=True)
    score_breakdown = Column(JSON, nullable=True)
    analysis_summary = Column(Text, nullable=True)
    keywords = Column(JSON, nullable=True)

    # Scraped repository state; presence triggers the expensive analysis
    repository_snapshot = Column(JSON, nullable=True)


class Endorsement(PublishEnvelopeMixin, Base):
    __tablename__ = "endorsements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    endorser_ual = Column(String(255), nullable=False, index=True)
    endorser_username = Column(String(100), nullable=True)
    endorser_name = Column(String(200), nullable=True)
    target_type = Column(String(20), nullable=False)  # skill | project
    target_id = Column(String(255), nullable=False, index=True)
    target_username = Column(String(100), nullable=True)
    skill_name = Column(String(100), nullable=True)
    project_id = Column(String(255), nullable=True)
    rating = Column(Integer, nullable=False)
    message = Column(Text, nullable=False)
    trac_staked = Column(Integer, nullable=False)
    withdrawn_at = Column(DateTime, nullable=True)


class PublishOperation(_RowMixin, Base):
    """
    One ledger publish attempt for one record.

    State machine: pending -> publishing -> completed | failed.
    Rows are never deleted.
    """
    __tablename__ = "publish_operations"

    operation_id = Column(String(160), primary_key=True)
    entity_type = Column(String(20), nullable=False, index=True)  # profile | project | endorsement
    entity_id = Column(Integer, nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    asset_id = Column(String(100), nullable=True)
    ual = Column(String(255), nullable=True)
    dataset_root = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)
    error_kind = Column(String(20), nullable=True)  # rejected | timeout | transport | interrupted | internal

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AnalysisRecord(_RowMixin, Base):
    """Content-addressed narrative analysis. Append-only; first insert wins."""
    __tablename__ = "analysis_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hash = Column(String(64), unique=True, nullable=False, index=True)
    narrative_text = Column(Text, nullable=False)
    score = Column(Float, nullable=False)
    score_breakdown = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class PublishedAsset(_RowMixin, Base):
    """Archive of exactly what was committed to the ledger."""
    __tablename__ = "published_assets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ual = Column(String(255), unique=True, nullable=False, index=True)
    dataset_root = Column(String(255), nullable=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(Integer, nullable=False)
    owner_ual = Column(String(255), nullable=True, index=True)
    published_data = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


ENTITY_MODELS = {
    "profile": Profile,
    "project": Project,
    "endorsement": Endorsement,
}
