"""Ledger node integration: async HTTP client and JSON-LD asset builders."""

from buildergraph.ledger.client import LedgerClient, LedgerConfirmation, PublishHandle
from buildergraph.ledger.jsonld import endorsement_to_jsonld, profile_to_jsonld, project_to_jsonld

__all__ = [
    "LedgerClient",
    "LedgerConfirmation",
    "PublishHandle",
    "endorsement_to_jsonld",
    "profile_to_jsonld",
    "project_to_jsonld",
]
