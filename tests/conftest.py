"""Shared test fixtures for the BuilderGraph test suite."""

import asyncio
import json
import os
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

# Ensure test environment variables are set before any config import
os.environ.setdefault("BUILDERGRAPH_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("BUILDERGRAPH_LLM_API_KEY", "")
os.environ.setdefault("BUILDERGRAPH_LOG_LEVEL", "WARNING")

from buildergraph.ledger.client import LedgerClient  # noqa: E402
from buildergraph.publishing.models import PublishStatus  # noqa: E402
from buildergraph.storage.db import Database  # noqa: E402
from buildergraph.storage.repository import RecordStore  # noqa: E402


# ---------------------------------------------------------------------------
# Fake ledger node
# ---------------------------------------------------------------------------

class FakeLedgerNode:
    """In-process stand-in for the ledger node's asset API.

    Modes:
        confirm          status reports a UAL after ``polls_before_ual`` polls
        immediate        the publish reply already carries the UAL
        reject           status reports ``failed`` with a ``lastError``
        reject_on_post   the publish reply itself has ``status: failed``
        never            status stays ``publishing`` forever
        hang             status requests never return
        down             every request fails with 503
    """

    def __init__(self, mode: str = "confirm", polls_before_ual: int = 1, fail_posts: int = 0,
                 fail_polls: int = 0) -> None:
        self.mode = mode
        self.polls_before_ual = polls_before_ual
        self.fail_posts = fail_posts
        self.fail_polls = fail_polls
        self.published: list[dict] = []
        self.post_calls = 0
        self.status_calls = 0
        self._polls: dict[str, int] = {}
        self._next_id = 1

    @staticmethod
    def ual_for(asset_id) -> str:
        return f"did:dkg:otp:20430/0xcdb28e93ed340ec10a71bba00a31dbfcf1bd5d37/{asset_id}"

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if self.mode == "down":
            return httpx.Response(503, text="node offline")

        if request.method == "POST" and path.endswith("/assets"):
            self.post_calls += 1
            if self.fail_posts > 0:
                self.fail_posts -= 1
                return httpx.Response(503, text="node busy")
            payload = json.loads(request.content)
            self.published.append(payload)
            asset_id = self._next_id
            self._next_id += 1
            self._polls[str(asset_id)] = 0
            if self.mode == "reject_on_post":
                return httpx.Response(200, json={"id": asset_id, "status": "failed", "error": "insufficient TRAC"})
            if self.mode == "immediate":
                return httpx.Response(200, json={
                    "id": asset_id, "status": "completed",
                    "ual": self.ual_for(asset_id), "datasetRoot": f"0xroot{asset_id}",
                })
            return httpx.Response(200, json={"id": asset_id, "status": "pending"})

        if request.method == "GET" and "/assets/status/" in path:
            self.status_calls += 1
            asset_id = path.rsplit("/", 1)[-1]
            if self.mode == "hang":
                await asyncio.sleep(3600)
            if self.fail_polls > 0:
                self.fail_polls -= 1
                return httpx.Response(500, text="internal error")
            self._polls[asset_id] = self._polls.get(asset_id, 0) + 1
            if self.mode == "reject":
                return httpx.Response(200, json={"id": asset_id, "status": "failed", "lastError": "Publish reverted"})
            if self.mode == "never" or self._polls[asset_id] < self.polls_before_ual:
                return httpx.Response(200, json={"id": asset_id, "status": "publishing"})
            return httpx.Response(200, json={
                "id": asset_id, "status": "completed",
                "ual": self.ual_for(asset_id), "datasetRoot": f"0xroot{asset_id}",
            })

        if request.method == "GET" and path.endswith("/assets"):
            ual = request.url.params.get("ual")
            return httpx.Response(200, json={"ual": ual, "assertion": {"@graph": []}})

        if request.method == "GET" and path.endswith("/info"):
            return httpx.Response(200, json={"version": "8.0.0"})

        return httpx.Response(404, json={"error": "not found"})


def make_ledger_client(node: FakeLedgerNode, **overrides) -> LedgerClient:
    kwargs = dict(
        timeout=5.0,
        max_attempts=3,
        retry_delay=0.0,
        poll_initial_delay=0.005,
        poll_max_delay=0.02,
        poll_max_attempts=500,
        transport=httpx.MockTransport(node.handler),
    )
    kwargs.update(overrides)
    return LedgerClient("http://ledger.test/api/dkg", **kwargs)


@pytest.fixture
def fake_node():
    return FakeLedgerNode()


@pytest.fixture
def ledger_client(fake_node):
    return make_ledger_client(fake_node)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'buildergraph-test.db'}")
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def store(database):
    return RecordStore(database)


def insert_published_profile(store: RecordStore, username: str = "ada", ual: str | None = None) -> dict:
    """Insert a profile that has already been committed to the ledger."""
    ual = ual or f"did:dkg:otp:20430/0xprofiles/{username}"
    operation_id = f"profile-{username}-seed"
    entity, _ = store.create_submission(
        "profile",
        {"full_name": username.title(), "username": username, "email": f"{username}@example.com"},
        operation_id,
    )
    store.transition(operation_id, PublishStatus.PUBLISHING)
    store.transition(operation_id, PublishStatus.COMPLETED, ual=ual, dataset_root="0xseed")
    return {**entity, "ual": ual}


@pytest.fixture
def published_profile(store):
    return insert_published_profile(store)


# ---------------------------------------------------------------------------
# Repository snapshots
# ---------------------------------------------------------------------------

def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture
def max_tier_snapshot():
    """Scraped repository that reaches the top tier of every sub-score."""
    now = datetime.now(timezone.utc)
    commits = (
        [{"message": f"fix #{i}", "date": _iso(now - timedelta(days=1))} for i in range(25)]
        + [{"message": f"feat #{i}", "date": _iso(now - timedelta(days=100))} for i in range(40)]
        + [{"message": f"chore #{i}", "date": _iso(now - timedelta(days=800))} for i in range(40)]
    )
    readme = (
        "# Orbit\n\nOrbit is a toolkit for building reliable distributed job queues in Python.\n\n"
        "## Features\n## Installation\n## Usage\n## Example\n## Getting Started\n## Quick Start\n"
        "## API\n## Configuration\n## Requirements\n## Dependencies\n## Documentation\n"
        "## Contributing\nPlease contribute!\n## License\nMIT\n"
    ) + ("Orbit uses redis and docker. " * 80)
    files = [{"path": p} for p in (
        "README.md", "LICENSE", "package.json", "Dockerfile", ".gitignore", "requirements.txt",
        "setup.py", "pom.xml", "Cargo.toml", "go.mod", "composer.json",
    )]
    return {
        "url": "https://github.com/ada/orbit",
        "fullName": "ada/orbit",
        "name": "orbit",
        "description": "Reliable distributed job queues for Python services",
        "language": "Python",
        "languages": {"Python": 120000, "Shell": 800},
        "stars": 1500,
        "forks": 150,
        "openIssues": 12,
        "topics": ["python", "queue", "redis", "jobs", "distributed", "tool"],
        "license": "MIT",
        "createdAt": "2021-03-01T10:00:00Z",
        "updatedAt": "2024-05-20T08:30:00Z",
        "readme": readme,
        "files": files,
        "totalFiles": 240,
        "commits": commits,
    }


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02):
    """Poll ``predicate`` from a synchronous test until it returns truthy."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(interval)
    raise AssertionError(f"condition not met within {timeout}s")
