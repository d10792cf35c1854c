"""Submission and status models for the publish pipeline.

Request bodies use the camelCase field names of the public API
(``fullName``, ``ownerUAL``, ...); snake_case names are accepted too.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from buildergraph.scoring.analysis import RepositorySnapshot

_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class PublishStatus(str, Enum):
    PENDING = "pending"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PublishStatus.COMPLETED, PublishStatus.FAILED)


# target state -> states it may be entered from
ALLOWED_TRANSITIONS: dict[PublishStatus, frozenset[PublishStatus]] = {
    PublishStatus.PUBLISHING: frozenset({PublishStatus.PENDING}),
    PublishStatus.COMPLETED: frozenset({PublishStatus.PUBLISHING}),
    PublishStatus.FAILED: frozenset({PublishStatus.PENDING, PublishStatus.PUBLISHING}),
}

EntityType = Literal["profile", "project", "endorsement"]

# error kinds whose ledger outcome cannot be known from our side
AMBIGUOUS_ERROR_KINDS = frozenset({"timeout", "interrupted"})


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------

class ProfileSubmission(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    location: Optional[str] = Field(default=None, max_length=200)
    bio: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    experience: Optional[int] = Field(default=None, ge=0)
    languages: list[str] = Field(default_factory=list)
    specializations: list[str] = Field(default_factory=list)
    github_username: Optional[str] = Field(default=None, max_length=100)
    github_repos: list[str] = Field(default_factory=list)

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Full name is required")
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not _USERNAME_RE.match(v):
            raise ValueError("Username can only contain letters, numbers, underscores, and hyphens")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not _EMAIL_RE.match(v):
            raise ValueError("Invalid email format")
        return v


class ProjectSubmission(CamelModel):
    owner_ual: str = Field(..., min_length=1, alias="ownerUAL")
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    repository_url: Optional[str] = Field(default=None, max_length=500)
    tech_stack: list[str] = Field(default_factory=list)
    category: Optional[str] = Field(default=None, max_length=50)
    live_url: Optional[str] = Field(default=None, max_length=500)
    license: Optional[str] = Field(default=None, max_length=100)
    stars: Optional[int] = Field(default=None, ge=0)
    repository: Optional[RepositorySnapshot] = None

    @field_validator("tech_stack", mode="before")
    @classmethod
    def split_tech_stack(cls, v):
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v if v is not None else []


class EndorsementSubmission(CamelModel):
    endorser_ual: str = Field(..., min_length=1, alias="endorserUAL")
    endorser_username: str = Field(..., min_length=1)
    endorser_name: str = Field(..., min_length=1)
    target_type: Literal["skill", "project"]
    target_id: str = Field(..., min_length=1)
    target_username: Optional[str] = None
    skill_name: Optional[str] = Field(default=None, max_length=100)
    project_id: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    message: str = Field(..., min_length=10, max_length=500)
    trac_staked: int = Field(..., ge=100, le=10000)

    @field_validator("project_id", mode="before")
    @classmethod
    def coerce_project_id(cls, v):
        return str(v) if v is not None else None


SUBMISSION_MODELS: dict[str, type[CamelModel]] = {
    "profile": ProfileSubmission,
    "project": ProjectSubmission,
    "endorsement": EndorsementSubmission,
}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class SubmissionReceipt(CamelModel):
    operation_id: str
    entity_id: int
    status: PublishStatus = PublishStatus.PUBLISHING


class StatusView(CamelModel):
    operation_id: str
    entity_type: str
    entity_id: int
    status: PublishStatus
    ual: Optional[str] = None
    dataset_root: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    outcome_known: bool = True
    attempts: int = 0
    explorer_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
