"""
Test suite for BuilderGraph

- Unit tests for the backoff combinators, scoring engine and JSON-LD converters
- Ledger client tests against an in-process fake ledger node (httpx.MockTransport)
- Storage, analysis cache and orchestrator tests on a throwaway SQLite file
- REST API tests through FastAPI's TestClient
- CLI tests through click's CliRunner
"""
