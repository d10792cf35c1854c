"""Accessors for the services the lifespan bootstrap puts on ``app.state``."""

from fastapi import Request

from buildergraph.ledger.client import LedgerClient
from buildergraph.publishing.orchestrator import PublishOrchestrator
from buildergraph.publishing.tracker import StatusTracker
from buildergraph.storage.repository import RecordStore


def get_orchestrator(request: Request) -> PublishOrchestrator:
    return request.app.state.orchestrator


def get_tracker(request: Request) -> StatusTracker:
    return request.app.state.tracker


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_ledger(request: Request) -> LedgerClient:
    return request.app.state.ledger
