"""Deterministic multi-factor repository score.

Four sub-scores, each capped at 30, are summed into a total capped at 100:

    commit_score     activity volume plus 7/30/365-day recency windows
    structure_score  file count plus canonical project files
    readme_score     README length plus recognised section headings
    metadata_score   stars, forks, description, license, topics

``score`` is a pure function of ``RepositoryMetrics``; recency windows are
counted before scoring (see ``buildergraph.scoring.analysis``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

SUB_SCORE_CAP = 30
TOTAL_CAP = 100

# (threshold, points): first threshold the value exceeds wins
COMMIT_COUNT_TIERS = ((100, 15), (50, 12), (20, 8), (5, 5), (0, 2))
LAST_WEEK_TIERS = ((5, 5), (2, 3), (0, 1))
LAST_MONTH_TIERS = ((20, 5), (10, 3), (0, 1))
LAST_YEAR_TIERS = ((50, 5), (20, 3), (0, 1))

FILE_COUNT_TIERS = ((50, 10), (20, 7), (5, 4), (0, 1))
IMPORTANT_FILES = {
    "readme.md": 3,
    "readme": 3,
    "license": 2,
    "package.json": 1,
    "dockerfile": 1,
    ".gitignore": 1,
    "requirements.txt": 1,
    "setup.py": 1,
    "pom.xml": 1,
    "cargo.toml": 1,
    "go.mod": 1,
    "composer.json": 1,
}

README_LENGTH_TIERS = ((2000, 10), (1000, 7), (500, 5), (100, 3))
README_SECTIONS = {
    "installation": 2,
    "usage": 2,
    "example": 1,
    "features": 1,
    "contribute": 1,
    "contributing": 1,
    "license": 1,
    "documentation": 1,
    "getting started": 1,
    "quick start": 1,
    "api": 1,
    "configuration": 1,
    "requirements": 1,
    "dependencies": 1,
}

STAR_TIERS = ((1000, 10), (100, 7), (10, 5), (0, 3))
FORK_TIERS = ((100, 5), (10, 3), (0, 1))
TOPIC_TIERS = ((5, 5), (2, 3), (0, 1))


@dataclass(frozen=True)
class RepositoryMetrics:
    """Raw inputs to the scoring function."""

    total_commits: int = 0
    commits_last_7_days: int = 0
    commits_last_30_days: int = 0
    commits_last_365_days: int = 0
    total_files: int = 0
    file_paths: Sequence[str] = ()
    readme: str = ""
    stars: int = 0
    forks: int = 0
    description: str = ""
    has_license: bool = False
    topic_count: int = 0


@dataclass(frozen=True)
class ScoreResult:
    total: float
    breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"total": self.total, "breakdown": dict(self.breakdown)}


def _tier(value: float, tiers: Sequence[tuple[float, int]]) -> int:
    for threshold, points in tiers:
        if value > threshold:
            return points
    return 0


def commit_score(metrics: RepositoryMetrics) -> float:
    points = _tier(metrics.total_commits, COMMIT_COUNT_TIERS)
    points += _tier(metrics.commits_last_7_days, LAST_WEEK_TIERS)
    points += _tier(metrics.commits_last_30_days, LAST_MONTH_TIERS)
    points += _tier(metrics.commits_last_365_days, LAST_YEAR_TIERS)
    return float(min(points, SUB_SCORE_CAP))


def structure_score(metrics: RepositoryMetrics) -> float:
    points = _tier(metrics.total_files, FILE_COUNT_TIERS)
    paths = [p.lower() for p in metrics.file_paths]
    for pattern, bonus in IMPORTANT_FILES.items():
        if any(pattern in path for path in paths):
            points += bonus
    return float(min(points, SUB_SCORE_CAP))


def readme_score(metrics: RepositoryMetrics) -> float:
    readme = metrics.readme or ""
    if not readme:
        return 0.0
    # Any non-empty README earns at least one point
    points = _tier(len(readme), README_LENGTH_TIERS) or 1
    lowered = readme.lower()
    for section, bonus in README_SECTIONS.items():
        if section in lowered:
            points += bonus
    return float(min(points, SUB_SCORE_CAP))


def metadata_score(metrics: RepositoryMetrics) -> float:
    points = _tier(metrics.stars, STAR_TIERS)
    points += _tier(metrics.forks, FORK_TIERS)
    description = metrics.description or ""
    if len(description) > 20:
        points += 5
    elif description:
        points += 2
    if metrics.has_license:
        points += 5
    points += _tier(metrics.topic_count, TOPIC_TIERS)
    return float(min(points, SUB_SCORE_CAP))


def score(metrics: RepositoryMetrics) -> ScoreResult:
    """Compute the composite score for one repository."""
    breakdown = {
        "commit_score": commit_score(metrics),
        "structure_score": structure_score(metrics),
        "readme_score": readme_score(metrics),
        "metadata_score": metadata_score(metrics),
    }
    total = min(sum(breakdown.values()), float(TOTAL_CAP))
    return ScoreResult(total=total, breakdown=breakdown)
