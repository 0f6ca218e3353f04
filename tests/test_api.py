"""
HTTP API tests — auth, process flows and error mapping.

Tests cover:
  - Login / me / missing or bad tokens
  - Process create, list, get, update through the JSON API
  - Step completion, transfer and return endpoints
  - Exception → status code mapping (401/403/404/409/415/422)
  - Health endpoints
"""
import pytest

from licitaflow.models import db
from licitaflow.models.auth import User


@pytest.fixture()
def alice_h(org, auth_header):
    return auth_header(org.alice)


@pytest.fixture()
def admin_h(org, auth_header):
    return auth_header(org.admin)


@pytest.fixture()
def created(client, org, alice_h):
    res = client.post("/api/v1/processes", json={
        "pbdoc_number": "PBDOC-API-1",
        "description": "Aquisição de notebooks",
        "modality_id": org.modality.id,
        "source_id": org.source.id,
    }, headers=alice_h)
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# AUTH
# ═════════════════════════════════════════════════════════════════════════

class TestAuth:
    def test_login_returns_token(self, client, org):
        res = client.post("/api/v1/auth/login", json={"username": "alice", "password": "secret123"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["token_type"] == "Bearer"
        assert data["user"]["username"] == "alice"
        assert "password_hash" not in data["user"]

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.get_json()["id"] == org.alice.id

    def test_login_sets_last_login(self, client, org):
        client.post("/api/v1/auth/login", json={"username": "alice", "password": "secret123"})
        assert db.session.get(User, org.alice.id).last_login_at is not None

    def test_wrong_password(self, client, org):
        res = client.post("/api/v1/auth/login", json={"username": "alice", "password": "nope"})
        assert res.status_code == 401

    def test_missing_fields(self, client):
        res = client.post("/api/v1/auth/login", json={"username": "alice"})
        assert res.status_code == 422

    def test_inactive_user_cannot_login(self, client, org):
        org.alice.is_active = False
        db.session.commit()
        res = client.post("/api/v1/auth/login", json={"username": "alice", "password": "secret123"})
        assert res.status_code == 403

    def test_anonymous_request_is_401(self, client, org):
        res = client.get("/api/v1/processes")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_garbage_token_is_401(self, client, org):
        res = client.get("/api/v1/processes", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid token"

    def test_deactivated_user_token_is_401(self, client, org, alice_h):
        org.alice.is_active = False
        db.session.commit()
        res = client.get("/api/v1/processes", headers=alice_h)
        assert res.status_code == 401


# ═════════════════════════════════════════════════════════════════════════
# PROCESSES
# ═════════════════════════════════════════════════════════════════════════

class TestProcessEndpoints:
    def test_create_returns_steps(self, created, org):
        assert created["status"] == "draft"
        assert created["current_department_id"] == org.dept_a.id
        assert [s["sequence"] for s in created["steps"]] == [1, 2, 3, 4, 5]
        assert created["step_count"] == 5

    def test_create_validation_is_422(self, client, org, alice_h):
        res = client.post("/api/v1/processes", json={"pbdoc_number": "X"}, headers=alice_h)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_duplicate_is_409(self, client, created, org, alice_h):
        res = client.post("/api/v1/processes", json={
            "pbdoc_number": "PBDOC-API-1",
            "description": "dup",
            "modality_id": org.modality.id,
            "source_id": org.source.id,
        }, headers=alice_h)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_non_json_body_is_415(self, client, org, alice_h):
        res = client.post("/api/v1/processes", data="pbdoc=1", headers={
            **alice_h, "Content-Type": "text/plain",
        })
        assert res.status_code == 415

    def test_list_envelope(self, client, created, alice_h):
        res = client.get("/api/v1/processes?limit=10", headers=alice_h)
        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 1
        assert data["limit"] == 10
        assert data["offset"] == 0
        assert data["items"][0]["id"] == created["id"]

    def test_invisible_process_is_404(self, client, created, org, auth_header):
        res = client.get(f"/api/v1/processes/{created['id']}", headers=auth_header(org.bruno))
        assert res.status_code == 404

    def test_patch(self, client, created, alice_h):
        res = client.patch(f"/api/v1/processes/{created['id']}", json={"priority": "high"}, headers=alice_h)
        assert res.status_code == 200
        assert res.get_json()["priority"] == "high"

    def test_illegal_status_is_409(self, client, created, alice_h):
        res = client.patch(f"/api/v1/processes/{created['id']}", json={"status": "completed"}, headers=alice_h)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"


class TestWorkflowEndpoints:
    def _step_url(self, created, index):
        return f"/api/v1/processes/{created['id']}/steps/{created['steps'][index]['id']}/complete"

    def test_complete_and_double_complete(self, client, created, alice_h):
        res = client.post(self._step_url(created, 0), json={"observations": "ok"}, headers=alice_h)
        assert res.status_code == 200
        assert res.get_json()["status"] == "in_progress"

        again = client.post(self._step_url(created, 0), json={}, headers=alice_h)
        assert again.status_code == 409

    def test_wrong_department_is_403(self, client, created, org, auth_header):
        res = client.post(self._step_url(created, 0), json={}, headers=auth_header(org.bruno))
        assert res.status_code == 403

    def test_step_from_other_process_is_404(self, client, created, alice_h):
        step_id = created["steps"][0]["id"]
        res = client.post(f"/api/v1/processes/999/steps/{step_id}/complete", json={}, headers=alice_h)
        assert res.status_code == 404

    def test_reject_flag(self, client, created, org, alice_h, admin_h):
        client.post(self._step_url(created, 0), json={}, headers=alice_h)
        res = client.post(self._step_url(created, 1), json={"rejected": True, "observations": "ressalva"},
                          headers=alice_h)
        assert res.status_code == 200
        step = res.get_json()["steps"][1]
        assert step["state"] == "completed_rejected"
        assert step["is_rejected"] is True

        listing = client.get("/api/v1/steps/rejected", headers=admin_h).get_json()
        assert listing["total"] == 1
        assert listing["items"][0]["pbdoc_number"] == "PBDOC-API-1"

    def test_transfer(self, client, created, org, alice_h, auth_header):
        res = client.post(f"/api/v1/processes/{created['id']}/transfer",
                          json={"department_id": org.dept_b.id}, headers=alice_h)
        assert res.status_code == 200
        assert res.get_json()["current_department_id"] == org.dept_b.id
        assert client.get(f"/api/v1/processes/{created['id']}", headers=alice_h).status_code == 404
        bruno = client.get(f"/api/v1/processes/{created['id']}", headers=auth_header(org.bruno))
        assert bruno.status_code == 200

    def test_transfer_unknown_department_is_422(self, client, created, alice_h):
        res = client.post(f"/api/v1/processes/{created['id']}/transfer",
                          json={"department_id": 424242}, headers=alice_h)
        assert res.status_code == 422

    def test_return_requires_comment(self, client, created, alice_h):
        client.post(self._step_url(created, 0), json={}, headers=alice_h)
        res = client.post(f"/api/v1/processes/{created['id']}/return", json={}, headers=alice_h)
        assert res.status_code == 422

    def test_add_step(self, client, created, org, alice_h):
        res = client.post(f"/api/v1/processes/{created['id']}/steps", json={
            "step_name": "Publicação do extrato",
            "department_id": org.dept_b.id,
            "due_date": "2030-01-10",
        }, headers=alice_h)
        assert res.status_code == 201
        assert res.get_json()["sequence"] == 6

    def test_add_step_bad_date_is_422(self, client, created, org, alice_h):
        res = client.post(f"/api/v1/processes/{created['id']}/steps", json={
            "step_name": "Extra", "department_id": org.dept_b.id, "due_date": "ontem",
        }, headers=alice_h)
        assert res.status_code == 422


class TestTrashEndpoints:
    def test_delete_restore_cycle(self, client, created, admin_h):
        pid = created["id"]
        assert client.delete(f"/api/v1/processes/{pid}", headers=admin_h).status_code == 200
        assert client.get(f"/api/v1/processes/{pid}", headers=admin_h).status_code == 404
        trash = client.get("/api/v1/processes/trash", headers=admin_h).get_json()
        assert [p["id"] for p in trash["items"]] == [pid]

        res = client.post(f"/api/v1/processes/{pid}/restore", headers=admin_h)
        assert res.status_code == 200
        assert res.get_json()["deleted_at"] is None

    def test_non_admin_delete_is_403(self, client, created, alice_h):
        assert client.delete(f"/api/v1/processes/{created['id']}", headers=alice_h).status_code == 403

    def test_permanent_delete(self, client, created, admin_h):
        pid = created["id"]
        assert client.delete(f"/api/v1/processes/{pid}/permanent", headers=admin_h).status_code == 409
        client.delete(f"/api/v1/processes/{pid}", headers=admin_h)
        assert client.delete(f"/api/v1/processes/{pid}/permanent", headers=admin_h).status_code == 200
        assert client.post(f"/api/v1/processes/{pid}/restore", headers=admin_h).status_code == 404


class TestHealth:
    def test_health_is_public(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live_checks_database(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_unknown_route_is_404(self, client):
        assert client.get("/nope").status_code == 404
