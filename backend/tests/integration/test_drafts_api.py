"""Integration tests for the draft staging API

Tests cover:
- Bearer token authentication and owner isolation
- Staging, unstaging and running totals over HTTP
- Commit outcomes mapped to 200 / 409 / 502
- Error bodies carrying field, session_id and operation_id
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient

from config import get_settings
from main import app
from database import get_db
from staging.dependencies import get_commit_orchestrator, get_session_store, get_stage_manager


pytestmark = pytest.mark.integration


def auth_headers(actor_id: str, privilege: str = "OWNER") -> dict:
    settings = get_settings()
    token = jwt.encode({"sub": actor_id, "privilege": privilege}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


OWNER = auth_headers("member-1")
STRANGER = auth_headers("member-2")


@pytest.fixture
def client(manager, orchestrator):
    app.dependency_overrides[get_stage_manager] = lambda: manager
    app.dependency_overrides[get_commit_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def stage(client, ref_id, quantity, session_id=None, headers=OWNER):
    path = f"/api/v1/drafts/{session_id}/items" if session_id else "/api/v1/drafts/items"
    return client.post(path, json={"ref_id": ref_id, "quantity": quantity}, headers=headers)


class TestAuthentication:

    def test_missing_token(self, client):
        response = client.post("/api/v1/drafts", json={})
        assert response.status_code in (401, 403)

    def test_invalid_token(self, client):
        response = client.post("/api/v1/drafts", json={}, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_unknown_privilege(self, client):
        response = client.post("/api/v1/drafts", json={}, headers=auth_headers("member-1", "ROOT"))
        assert response.status_code == 401

    def test_other_owner_gets_404(self, client):
        session_id = stage(client, "A", 1).json()["id"]

        response = client.get(f"/api/v1/drafts/{session_id}", headers=STRANGER)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_admin_can_read_any_draft(self, client):
        session_id = stage(client, "A", 1).json()["id"]
        response = client.get(f"/api/v1/drafts/{session_id}", headers=auth_headers("staff-1", "ADMIN"))
        assert response.status_code == 200


class TestStaging:

    def test_create_empty_draft(self, client):
        response = client.post("/api/v1/drafts", json={"kind": "MEMBERSHIP"}, headers=OWNER)

        assert response.status_code == 201
        data = response.json()
        assert data["state"] == "INITIATED"
        assert data["kind"] == "MEMBERSHIP"
        assert data["items"] == []

    def test_running_total(self, client):
        created = stage(client, "A", 2)
        assert created.status_code == 201
        session_id = created.json()["id"]

        response = stage(client, "B", 1, session_id=session_id)

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "STAGING"
        assert [line["item_id"] for line in data["items"]] == ["A", "B"]
        assert Decimal(str(data["total"])) == Decimal("25.00")

    def test_unstage_twice(self, client):
        session_id = stage(client, "A", 2).json()["id"]
        stage(client, "B", 1, session_id=session_id)

        first = client.delete(f"/api/v1/drafts/{session_id}/items/A", headers=OWNER)
        second = client.delete(f"/api/v1/drafts/{session_id}/items/A", headers=OWNER)

        assert first.status_code == second.status_code == 200
        assert first.json()["items"] == second.json()["items"]
        assert Decimal(str(second.json()["total"])) == Decimal("5.00")

    @pytest.mark.parametrize("quantity", [0, -3, "2", 1.5])
    def test_bad_quantity(self, client, quantity):
        response = stage(client, "A", quantity)

        assert response.status_code == 422
        data = response.json()
        assert data["field"] == "quantity"
        assert data["operation_id"]

    def test_unknown_product(self, client):
        response = stage(client, "UNKNOWN", 1)
        assert response.status_code == 422
        assert response.json()["field"] == "ref_id"

    def test_operation_id_echoed(self, client):
        response = client.post(
            "/api/v1/drafts/items",
            json={"ref_id": "UNKNOWN", "quantity": 1},
            headers={**OWNER, "X-Operation-ID": "op-from-client"},
        )
        assert response.headers["X-Operation-ID"] == "op-from-client"
        assert response.json()["operation_id"] == "op-from-client"

    def test_sections_and_ready_check(self, client):
        created = client.post("/api/v1/drafts", json={"kind": "MEMBERSHIP"}, headers=OWNER)
        session_id = created.json()["id"]

        response = client.put(
            f"/api/v1/drafts/{session_id}/sections/employment",
            json={"fields": {"role_descriptor": "OTHER"}},
            headers=OWNER,
        )
        assert response.status_code == 200
        assert response.json()["sections"][0]["name"] == "employment"

        check = client.post(f"/api/v1/drafts/{session_id}/ready-check", headers=OWNER)

        assert check.status_code == 200
        data = check.json()
        assert data["ready"] is False
        fields = {e["field"] for e in data["errors"]}
        assert "sections.employment.role_descriptor_other" in fields

        removed = client.delete(f"/api/v1/drafts/{session_id}/sections/employment", headers=OWNER)
        assert removed.json()["sections"] == []

    def test_unknown_section(self, client):
        created = client.post("/api/v1/drafts", json={"kind": "MEMBERSHIP"}, headers=OWNER)
        response = client.put(
            f"/api/v1/drafts/{created.json()['id']}/sections/hobbies",
            json={"fields": {}},
            headers=OWNER,
        )
        assert response.status_code == 422
        assert response.json()["field"] == "section"


class TestCommit:

    def test_commit_and_replay(self, client, repository):
        session_id = stage(client, "A", 2).json()["id"]
        stage(client, "B", 1, session_id=session_id)

        response = client.post(f"/api/v1/drafts/{session_id}/commit", headers=OWNER)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "COMMITTED"
        assert len(data["committed_ids"]) == 2
        assert Decimal(str(data["total"])) == Decimal("25.00")

        replay = client.post(f"/api/v1/drafts/{session_id}/commit", headers=OWNER)
        assert replay.status_code == 200
        assert replay.json()["committed_ids"] == data["committed_ids"]
        assert len(repository.records) == 2

        assert client.get(f"/api/v1/drafts/{session_id}", headers=OWNER).status_code == 404

    def test_stale_price_returns_409(self, client, catalog, repository):
        session_id = stage(client, "A", 1).json()["id"]
        catalog.add("A", "11.00")

        response = client.post(f"/api/v1/drafts/{session_id}/commit", headers=OWNER)

        assert response.status_code == 409
        data = response.json()
        assert data["status"] == "CONFLICT"
        assert data["error"]["reason"] == "stale_price"
        assert repository.create_calls == 0

    def test_backend_failure_returns_502(self, client, repository):
        session_id = stage(client, "A", 1).json()["id"]
        stage(client, "B", 1, session_id=session_id)
        repository.fail_on_create = {2, 3, 4}

        response = client.post(f"/api/v1/drafts/{session_id}/commit", headers=OWNER)

        assert response.status_code == 502
        assert response.json()["status"] == "FAILED"
        assert repository.records == {}

    def test_empty_draft_returns_422(self, client):
        session_id = client.post("/api/v1/drafts", json={}, headers=OWNER).json()["id"]

        response = client.post(f"/api/v1/drafts/{session_id}/commit", headers=OWNER)

        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "draft_invalid"
        assert data["session_id"] == session_id
        assert [e["field"] for e in data["errors"]] == ["items"]

    def test_held_lock_returns_409(self, client, store):
        session_id = stage(client, "A", 1).json()["id"]
        store.try_acquire_commit_lock(session_id)

        response = client.post(f"/api/v1/drafts/{session_id}/commit", headers=OWNER)

        assert response.status_code == 409
        assert response.json()["reason"] == "lock"

    def test_staging_after_commit_attempt_conflicts(self, client, catalog):
        session_id = stage(client, "A", 1).json()["id"]
        catalog.add("A", "11.00")
        client.post(f"/api/v1/drafts/{session_id}/commit", headers=OWNER)

        response = stage(client, "B", 1, session_id=session_id)

        assert response.status_code == 409
        assert response.json()["reason"] == "state"


class TestObservabilityEndpoints:

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "staging_commits_total" in response.text

    def test_health_degraded_by_manual_orphans(self, client, store, session_factory):
        def db():
            session = session_factory()
            try:
                yield session
            finally:
                session.close()

        app.dependency_overrides[get_db] = db
        app.dependency_overrides[get_session_store] = lambda: store

        healthy = client.get("/health")
        assert healthy.status_code == 200
        assert healthy.json()["status"] == "healthy"

        store.quarantine_orphan("rec-1", "order_product", "s-1", "timeout")
        store.update_orphan("rec-1", needs_manual=True)

        degraded = client.get("/health")
        assert degraded.status_code == 200
        assert degraded.json()["status"] == "degraded"
        assert degraded.json()["components"]["orphans"]["status"] == "degraded"

        assert client.get("/ready").json() == {"status": "ready"}


class TestLifespan:

    def test_shutdown_closes_built_repository(self):
        built = MagicMock()
        built.cache_info.return_value.currsize = 1

        with patch("main.get_repository", built):
            with TestClient(app):
                pass

        built.return_value.close.assert_called_once_with()

    def test_shutdown_skips_unbuilt_repository(self):
        unbuilt = MagicMock()
        unbuilt.cache_info.return_value.currsize = 0

        with patch("main.get_repository", unbuilt):
            with TestClient(app):
                pass

        unbuilt.assert_not_called()
