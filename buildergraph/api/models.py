"""Pydantic response models for the BuilderGraph API.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from buildergraph.publishing.models import CamelModel, PublishStatus


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class PublishEnvelope(CamelModel):
    id: int
    operation_id: Optional[str] = None
    publish_status: PublishStatus
    ual: Optional[str] = None
    dataset_root: Optional[str] = None
    publish_error: Optional[str] = None
    explorer_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileResponse(PublishEnvelope):
    full_name: str
    username: str
    email: str
    location: Optional[str] = None
    bio: Optional[str] = None
    skills: list[str] = []
    experience: Optional[int] = None
    languages: list[str] = []
    specializations: list[str] = []
    github_username: Optional[str] = None
    github_repos: list[str] = []


class ProjectResponse(PublishEnvelope):
    owner_ual: str = Field(alias="ownerUAL")
    name: str
    description: Optional[str] = None
    repository_url: Optional[str] = None
    tech_stack: list[str] = []
    category: Optional[str] = None
    live_url: Optional[str] = None
    license: Optional[str] = None
    stars: Optional[int] = None
    analysis_hash: Optional[str] = None
    score: Optional[float] = None
    score_breakdown: Optional[dict[str, float]] = None
    analysis_summary: Optional[str] = None
    keywords: Optional[list[str]] = None


class EndorsementResponse(PublishEnvelope):
    endorser_ual: str = Field(alias="endorserUAL")
    endorser_username: Optional[str] = None
    endorser_name: Optional[str] = None
    target_type: str
    target_id: str
    target_username: Optional[str] = None
    skill_name: Optional[str] = None
    project_id: Optional[str] = None
    rating: int
    message: str
    trac_staked: int
    withdrawn_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class HealthResponse(CamelModel):
    status: str = "healthy"
    database_connected: bool = False
    ledger_reachable: bool = False
    llm_available: bool = False
    in_flight_operations: int = 0
