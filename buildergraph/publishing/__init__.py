"""Asynchronous publish-and-track pipeline."""

from buildergraph.publishing.models import PublishStatus, StatusView, SubmissionReceipt

__all__ = ["PublishStatus", "StatusView", "SubmissionReceipt"]
