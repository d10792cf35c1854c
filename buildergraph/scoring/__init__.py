"""Repository scoring: pure score function plus snapshot analysis helpers."""

from buildergraph.scoring.engine import RepositoryMetrics, ScoreResult, score

__all__ = ["RepositoryMetrics", "ScoreResult", "score"]
