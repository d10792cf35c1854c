"""Tests for the BuilderGraph REST API.

The app runs against a temporary SQLite file and an in-process fake ledger
node; background publishing happens on the TestClient's event loop, so the
tests poll the status endpoints the way a client would.
"""

import pytest
from fastapi.testclient import TestClient

from buildergraph.api.main import create_app
from buildergraph.config import BuilderGraphConfig
from buildergraph.scoring.analysis import RepositoryAnalyzer
from tests.conftest import FakeLedgerNode, make_ledger_client, wait_until

PROFILE = {"fullName": "Ada Lovelace", "username": "ada", "email": "ada@example.com", "skills": ["Python"]}


def _make_client(tmp_path, node, **config_overrides):
    config = BuilderGraphConfig(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        confirmation_timeout=config_overrides.pop("confirmation_timeout", 5.0),
        **config_overrides,
    )
    app = create_app(config, ledger=make_ledger_client(node), analyzer=RepositoryAnalyzer(None))
    return TestClient(app)


def _wait_terminal(client, status_path):
    def check():
        body = client.get(status_path).json()
        return body if body["status"] in ("completed", "failed") else None

    return wait_until(check)


def _publish_profile(client, body=PROFILE):
    resp = client.post("/api/profiles", json=body)
    assert resp.status_code == 202
    receipt = resp.json()
    return _wait_terminal(client, f"/api/profiles/status/{receipt['operationId']}")


@pytest.fixture
def node():
    return FakeLedgerNode()


@pytest.fixture
def client(tmp_path, node):
    with _make_client(tmp_path, node) as c:
        yield c


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class TestProfiles:
    def test_submit_returns_publishing_receipt(self, client):
        resp = client.post("/api/profiles", json=PROFILE)
        assert resp.status_code == 202
        data = resp.json()
        assert data["status"] == "publishing"
        assert data["operationId"].startswith("profile-ada-")
        assert isinstance(data["entityId"], int)

    def test_publish_to_completion(self, client):
        status = _publish_profile(client)
        assert status["status"] == "completed"
        assert status["ual"] == FakeLedgerNode.ual_for(1)
        assert status["outcomeKnown"] is True
        assert status["explorerUrl"].startswith("https://dkg.origintrail.io/explore?ual=")

        profile = client.get("/api/profiles/ada").json()
        assert profile["fullName"] == "Ada Lovelace"
        assert profile["publishStatus"] == "completed"
        assert profile["ual"] == status["ual"]
        assert client.get(f"/api/profiles/{status['ual']}").json()["username"] == "ada"

    def test_list_profiles(self, client):
        _publish_profile(client)
        data = client.get("/api/profiles").json()
        assert [p["username"] for p in data] == ["ada"]

    def test_duplicate_username_is_400(self, client):
        _publish_profile(client)
        resp = client.post("/api/profiles", json=PROFILE)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Username already exists", "field": "username"}

    def test_invalid_body_is_422(self, client):
        resp = client.post("/api/profiles", json={"fullName": "Ada", "username": "ada", "email": "nope"})
        assert resp.status_code == 422

    def test_unknown_profile_is_404(self, client):
        assert client.get("/api/profiles/nobody").status_code == 404


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

class TestProjects:
    def test_project_with_snapshot_is_scored(self, client, max_tier_snapshot):
        owner_ual = _publish_profile(client)["ual"]
        resp = client.post("/api/projects", json={
            "ownerUAL": owner_ual,
            "name": "Orbit",
            "repositoryUrl": "https://github.com/ada/orbit",
            "repository": max_tier_snapshot,
        })
        assert resp.status_code == 202
        status = _wait_terminal(client, f"/api/projects/status/{resp.json()['operationId']}")
        assert status["status"] == "completed"

        project = client.get(f"/api/projects/{resp.json()['entityId']}").json()
        assert project["ownerUAL"] == owner_ual
        assert project["score"] == 100.0
        assert set(project["scoreBreakdown"]) == {
            "commit_score", "structure_score", "readme_score", "metadata_score",
        }
        assert len(project["analysisHash"]) == 64

        owned = client.get(f"/api/projects/owner/{owner_ual}").json()
        assert [p["name"] for p in owned] == ["Orbit"]

    def test_unknown_owner_is_404(self, client):
        resp = client.post("/api/projects", json={"ownerUAL": "did:ual/nobody", "name": "Orbit"})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Owner profile not found"

    def test_owner_listing_requires_profile(self, client):
        assert client.get("/api/projects/owner/did:ual/nobody").status_code == 404


# ---------------------------------------------------------------------------
# Endorsements
# ---------------------------------------------------------------------------

class TestEndorsements:
    def _body(self, target_ual, **extra):
        return {
            "endorserUAL": "did:ual/linus",
            "endorserUsername": "linus",
            "endorserName": "Linus T",
            "targetType": "skill",
            "targetId": target_ual,
            "skillName": "Python",
            "rating": 5,
            "message": "Consistently ships careful, readable code.",
            "tracStaked": 300,
            **extra,
        }

    def test_skill_endorsement(self, client):
        target_ual = _publish_profile(client)["ual"]
        resp = client.post("/api/endorsements", json=self._body(target_ual))
        assert resp.status_code == 202
        status = _wait_terminal(client, f"/api/endorsements/status/{resp.json()['operationId']}")
        assert status["status"] == "completed"

        endorsement = client.get(f"/api/endorsements/{resp.json()['entityId']}").json()
        assert endorsement["endorserUAL"] == "did:ual/linus"
        assert endorsement["targetUsername"] == "ada"
        assert endorsement["tracStaked"] == 300

    def test_missing_skill_name_is_400(self, client):
        target_ual = _publish_profile(client)["ual"]
        resp = client.post("/api/endorsements", json=self._body(target_ual, skillName=None))
        assert resp.status_code == 400
        assert resp.json()["field"] == "skill_name"

    def test_stake_out_of_range_is_422(self, client):
        resp = client.post("/api/endorsements", json=self._body("did:ual/x", tracStaked=20000))
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

class TestOperations:
    def test_operation_lookup(self, client):
        receipt = client.post("/api/profiles", json=PROFILE).json()
        op_id = receipt["operationId"]
        _wait_terminal(client, f"/api/operations/{op_id}")

        data = client.get(f"/api/operations/{op_id}").json()
        assert data["entityType"] == "profile"
        assert data["status"] == "completed"

        listed = client.get("/api/operations", params={"status": "completed"}).json()
        assert [o["operationId"] for o in listed] == [op_id]
        assert client.get("/api/operations", params={"status": "failed"}).json() == []

    def test_unknown_operation_is_404(self, client):
        assert client.get("/api/operations/nope").status_code == 404

    def test_status_route_checks_entity_type(self, client):
        op_id = client.post("/api/profiles", json=PROFILE).json()["operationId"]
        assert client.get(f"/api/projects/status/{op_id}").status_code == 404

    def test_rejected_publish_reports_error(self, tmp_path):
        with _make_client(tmp_path, FakeLedgerNode(mode="reject")) as client:
            status = _publish_profile(client)
        assert status["status"] == "failed"
        assert status["errorKind"] == "rejected"
        assert "Publish reverted" in status["error"]
        assert status["ual"] is None

    def test_timeout_reports_unknown_outcome(self, tmp_path):
        with _make_client(tmp_path, FakeLedgerNode(mode="never"), confirmation_timeout=0.2) as client:
            status = _publish_profile(client)
        assert status["status"] == "failed"
        assert status["errorKind"] == "timeout"
        assert status["outcomeKnown"] is False


# ---------------------------------------------------------------------------
# Health and middleware
# ---------------------------------------------------------------------------

class TestHealth:
    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "healthy"
        assert data["databaseConnected"] is True
        assert data["ledgerReachable"] is True
        assert data["llmAvailable"] is False

    def test_request_id_is_echoed(self, client):
        resp = client.get("/api/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"
        assert client.get("/api/health").headers["X-Request-ID"]

    def test_unreachable_ledger_is_degraded(self, tmp_path):
        with _make_client(tmp_path, FakeLedgerNode(mode="down")) as client:
            data = client.get("/api/health").json()
        assert data["status"] == "degraded"
        assert data["ledgerReachable"] is False
