"""Repository snapshot handling and narrative analysis.

A ``RepositorySnapshot`` is the scraped state of a source repository sent
along with a project submission. This module turns it into scoring metrics,
derives the content-addressed analysis hash, and asks the LLM for a
narrative assessment.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from buildergraph.errors import AnalysisUnavailable
from buildergraph.llm.prompts import (
    ANALYSIS_SUMMARY_TEMPLATE,
    REPOSITORY_ANALYSIS_PROMPT,
    REPOSITORY_ANALYST_SYSTEM_PROMPT,
)
from buildergraph.scoring.engine import RepositoryMetrics, ScoreResult
from buildergraph.utils import parse_timestamp, utcnow

logger = logging.getLogger(__name__)

ANALYSIS_UNAVAILABLE = "AI analysis unavailable"

TECH_KEYWORDS = (
    "react", "vue", "angular", "node", "python", "javascript", "typescript",
    "docker", "kubernetes", "aws", "azure", "gcp", "blockchain", "ethereum",
    "solidity", "web3", "defi", "nft", "api", "rest", "graphql", "mongodb",
    "postgresql", "mysql", "redis", "express", "fastapi", "django", "flask",
)
MAX_KEYWORDS = 10


# ---------------------------------------------------------------------------
# Snapshot models
# ---------------------------------------------------------------------------

class _SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RepositoryFile(_SnapshotModel):
    path: str = ""


class CommitInfo(_SnapshotModel):
    message: str = ""
    date: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def date_from_author(cls, data: Any) -> Any:
        # GitHub's commit payload nests the timestamp under author.date
        if isinstance(data, dict) and not data.get("date"):
            author = data.get("author")
            if isinstance(author, dict) and author.get("date"):
                data = {**data, "date": author["date"]}
        return data


class RepositorySnapshot(_SnapshotModel):
    url: Optional[str] = None
    full_name: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    languages: dict[str, int] = Field(default_factory=dict)
    stars: int = Field(default=0, ge=0)
    forks: int = Field(default=0, ge=0)
    open_issues: int = Field(default=0, ge=0)
    topics: list[str] = Field(default_factory=list)
    license: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    readme: str = ""
    files: list[RepositoryFile] = Field(default_factory=list)
    total_files: Optional[int] = Field(default=None, ge=0)
    commits: list[CommitInfo] = Field(default_factory=list)

    @property
    def file_count(self) -> int:
        return self.total_files if self.total_files is not None else len(self.files)

    @property
    def identity(self) -> Optional[str]:
        return self.url or self.full_name or self.name or None


# ---------------------------------------------------------------------------
# Metrics and hash
# ---------------------------------------------------------------------------

def metrics_from_snapshot(snapshot: RepositorySnapshot, as_of: Optional[datetime] = None) -> RepositoryMetrics:
    """Count commit recency windows relative to ``as_of`` and collect scoring inputs."""
    as_of = as_of or utcnow()
    week, month, year = (as_of - timedelta(days=d) for d in (7, 30, 365))

    last_week = last_month = last_year = 0
    for commit in snapshot.commits:
        committed = parse_timestamp(commit.date)
        if committed is None:
            continue
        if committed > week:
            last_week += 1
        if committed > month:
            last_month += 1
        if committed > year:
            last_year += 1

    return RepositoryMetrics(
        total_commits=len(snapshot.commits),
        commits_last_7_days=last_week,
        commits_last_30_days=last_month,
        commits_last_365_days=last_year,
        total_files=snapshot.file_count,
        file_paths=tuple(f.path for f in snapshot.files),
        readme=snapshot.readme or "",
        stars=snapshot.stars,
        forks=snapshot.forks,
        description=snapshot.description or "",
        has_license=bool(snapshot.license),
        topic_count=len(snapshot.topics),
    )


def analysis_hash(snapshot: RepositorySnapshot) -> str:
    """SHA-256 over the repository identity and its last-modified marker.

    Two snapshots of an unchanged repository hash identically regardless of
    when they were submitted.
    """
    if snapshot.identity is None:
        # Nothing stable to key on: fingerprint the snapshot content instead
        return hashlib.sha256(f"anonymous-{snapshot.model_dump_json()}".encode("utf-8")).hexdigest()
    marker = snapshot.updated_at or snapshot.created_at or ""
    return hashlib.sha256(f"{snapshot.identity}-{marker}".encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Derived project fields
# ---------------------------------------------------------------------------

def determine_category(snapshot: RepositorySnapshot) -> str:
    topics = {t.lower() for t in snapshot.topics}
    description = (snapshot.description or "").lower()
    files = [f.path.lower() for f in snapshot.files]

    def any_file(*needles: str) -> bool:
        return any(n in f for f in files for n in needles)

    if topics & {"web", "website"} or "web" in description or any_file("html", "css", "react"):
        return "web"
    if topics & {"mobile", "android", "ios"} or any_file("android", "ios", "mobile"):
        return "mobile"
    if topics & {"smart-contract", "solidity"} or "smart contract" in description or any_file(".sol"):
        return "smartcontract"
    if topics & {"library", "package"} or any_file("package.json", "setup.py"):
        return "library"
    if topics & {"tool", "cli"} or "tool" in description or "cli" in description:
        return "tool"
    return "other"


def extract_keywords(readme: str) -> list[str]:
    lowered = (readme or "").lower()
    return [k for k in TECH_KEYWORDS if k in lowered][:MAX_KEYWORDS]


def description_from_readme(readme: str) -> Optional[str]:
    """First non-blank README line, when it reads like a sentence."""
    for line in (readme or "").splitlines():
        line = line.strip()
        if line:
            return line if 50 < len(line) < 300 else None
    return None


def project_keywords(snapshot: RepositorySnapshot) -> list[str]:
    return list(snapshot.topics) if snapshot.topics else extract_keywords(snapshot.readme)


def summarize(result: ScoreResult, snapshot: RepositorySnapshot, narrative: Optional[str] = None) -> str:
    summary = ANALYSIS_SUMMARY_TEMPLATE.format(
        total=result.total,
        total_files=snapshot.file_count,
        total_commits=len(snapshot.commits),
        stars=snapshot.stars,
        forks=snapshot.forks,
        has_readme="Yes" if snapshot.readme else "No",
        has_license="Yes" if snapshot.license else "No",
        **result.breakdown,
    )
    if narrative and narrative != ANALYSIS_UNAVAILABLE:
        summary += f"\nAI Analysis:\n{narrative}\n"
    return summary


# ---------------------------------------------------------------------------
# LLM narrative
# ---------------------------------------------------------------------------

def build_analysis_messages(snapshot: RepositorySnapshot) -> list[dict]:
    owner = (snapshot.full_name or "").split("/")[0] or "Unknown"
    recent = "\n".join(f"- {c.message[:80]}" for c in snapshot.commits[:5])
    prompt = REPOSITORY_ANALYSIS_PROMPT.format(
        name=snapshot.name or "Unknown",
        owner=owner,
        description=snapshot.description or "No description",
        url=snapshot.url or "",
        language=snapshot.language or "Unknown",
        tech_stack=", ".join(snapshot.languages) or "Unknown",
        stars=snapshot.stars,
        forks=snapshot.forks,
        open_issues=snapshot.open_issues,
        total_files=snapshot.file_count,
        total_commits=len(snapshot.commits),
        created_at=snapshot.created_at or "Unknown",
        updated_at=snapshot.updated_at or "Unknown",
        topics=", ".join(snapshot.topics),
        readme=(snapshot.readme or "")[:2000],
        key_files=", ".join(f.path for f in snapshot.files[:20]),
        recent_commits=recent,
    )
    return [
        {"role": "system", "content": REPOSITORY_ANALYST_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


class RepositoryAnalyzer:
    """Produces the narrative half of a repository analysis.

    Args:
        llm: An ``LLMAdapter`` (or anything with a compatible ``complete``).
            ``None`` means narrative analysis is disabled.
    """

    def __init__(self, llm=None) -> None:
        self.llm = llm

    @classmethod
    def from_config(cls, config) -> "RepositoryAnalyzer":
        from buildergraph.llm.adapter import LLMAdapter

        try:
            return cls(LLMAdapter(config))
        except ValueError as exc:
            logger.warning("LLM analysis disabled: %s", exc)
            return cls(None)

    @property
    def available(self) -> bool:
        return self.llm is not None

    def narrate(self, snapshot: RepositorySnapshot) -> str:
        """Return the LLM's narrative assessment of ``snapshot``.

        Raises:
            AnalysisUnavailable: no LLM is configured, the call failed, or
                it returned nothing.
        """
        if self.llm is None:
            raise AnalysisUnavailable("LLM API key not configured")
        try:
            text = self.llm.complete(build_analysis_messages(snapshot))
        except Exception as exc:
            logger.warning("Narrative analysis failed for %s: %s", snapshot.identity or "unnamed repository", exc)
            raise AnalysisUnavailable(str(exc)) from exc
        if not text:
            raise AnalysisUnavailable("LLM returned an empty analysis")
        return text
