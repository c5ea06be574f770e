"""
HTTP API tests for the project and infrastructure workflow blueprints.

Covers:
  - project create / list / detail
  - full lifecycle PROPOSAL → COMPLETED through the API
  - approver-role enforcement (403) and ADMIN-only manual advance
  - error-class → HTTP status / code mapping
  - health endpoints
"""

import pytest

BASE = "/api/v1/infra/projects"


@pytest.fixture()
def project(client):
    res = client.post("/api/v1/projects", json={
        "name": "Server Room Cooling",
        "type": "INFRASTRUCTURE",
        "category": "Facilities",
        "estimated_budget": "75000000",
        "start_date": "2024-01-15",
        "end_date": "2024-06-30",
    }, headers={"X-User": "Requester"})
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


class TestProjects:
    def test_create_infrastructure_project(self, project):
        assert project["current_phase"] == "PROPOSAL"
        assert project["status"] == "PLANNING"
        assert project["estimated_budget"] == 75000000.0
        assert project["start_date"] == "2024-01-15"

    def test_create_web_dev_project_has_no_phase(self, client):
        res = client.post("/api/v1/projects", json={
            "name": "Intranet Portal", "type": "WEB_DEV", "website_name": "intranet",
        })

        assert res.status_code == 201
        assert res.get_json()["current_phase"] is None

    @pytest.mark.parametrize("payload,field", [
        ({"name": "ab"}, "name"),
        ({"name": "Valid name", "type": "KANBAN"}, "type"),
        ({"name": "Valid name", "start_date": "2024-05-01", "end_date": "2024-04-01"}, "end_date"),
    ])
    def test_create_validation(self, client, payload, field):
        res = client.post("/api/v1/projects", json=payload)

        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert field in body["details"]

    def test_list_filtered_by_type(self, client, project):
        client.post("/api/v1/projects", json={"name": "Landing Page", "type": "WEB_DEV"})

        res = client.get("/api/v1/projects?type=INFRASTRUCTURE")

        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == project["id"]

    def test_get_missing_project(self, client):
        res = client.get("/api/v1/projects/999")

        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════
# Full lifecycle
# ═════════════════════════════════════════════════════════════════════════


def test_full_lifecycle(client, project, approver_headers):
    pid = project["id"]

    res = client.put(f"{BASE}/{pid}/proposal", json={"background": "Cooling at capacity"})
    assert res.status_code == 200
    assert res.get_json()["approval_status"] == "DRAFT"

    assert client.post(f"{BASE}/{pid}/proposal/submit").get_json()["approval_status"] == "PENDING"

    res = client.post(f"{BASE}/{pid}/proposal/approve", headers=approver_headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["current_phase"] == "RKB"
    assert body["status"] == "IN_PROGRESS"
    assert body["stage"]["approved_by"] == "Staff Approver"

    res = client.post(f"{BASE}/{pid}/rkb/items", json={
        "item_name": "Precision AC", "unit": "unit", "quantity": 2, "unit_price": 500000,
    })
    assert res.status_code == 201
    first_item = res.get_json()["item"]
    assert first_item["total_price"] == 1000000.0

    res = client.post(f"{BASE}/{pid}/rkb/items", json={
        "item_name": "Installation", "unit": "lot", "quantity": 1, "unit_price": 250000,
    })
    assert res.get_json()["total_budget"] == 1250000.0

    res = client.delete(f"{BASE}/{pid}/rkb/items/{first_item['id']}")
    assert res.status_code == 200
    assert res.get_json()["total_budget"] == 250000.0

    client.post(f"{BASE}/{pid}/rkb/submit")
    res = client.post(f"{BASE}/{pid}/rkb/approve", json={"approved_by": "Head of IT"}, headers=approver_headers)
    assert res.get_json()["current_phase"] == "DISBURSEMENT"
    assert res.get_json()["stage"]["approved_by"] == "Head of IT"

    client.put(f"{BASE}/{pid}/disbursement", json={"approved_budget": 250000, "payment_method": "TRANSFER"})
    client.post(f"{BASE}/{pid}/disbursement/submit")
    res = client.post(f"{BASE}/{pid}/disbursement/approve", headers=approver_headers)
    assert res.get_json()["current_phase"] == "EXECUTION"

    res = client.post(f"{BASE}/{pid}/execution-logs", json={
        "activity_description": "Units installed", "progress_percentage": 100,
    })
    assert res.status_code == 201

    res = client.post(f"{BASE}/{pid}/complete")
    assert res.status_code == 200
    assert res.get_json()["current_phase"] == "COMPLETED"

    full = client.get(f"{BASE}/{pid}").get_json()
    assert full["status"] == "COMPLETED"
    assert full["proposal"]["approval_status"] == "APPROVED"
    assert full["rkb_submission"]["total_budget"] == 250000.0
    assert [i["item_name"] for i in full["rkb_items"]] == ["Installation"]
    assert full["disbursement"]["payment_method"] == "TRANSFER"
    assert full["current_progress"] == 100
    assert len(full["execution_logs"]) == 1


def test_full_project_data_for_new_project(client, project):
    body = client.get(f"{BASE}/{project['id']}").get_json()

    assert body["proposal"] is None
    assert body["rkb_items"] == []
    assert body["execution_logs"] == []
    assert body["current_progress"] == 0


def test_execution_log_listing(client, project_factory):
    project = project_factory(phase="EXECUTION")
    for progress in (10, 45):
        client.post(f"{BASE}/{project.id}/execution-logs", json={
            "activity_description": f"Step {progress}", "progress_percentage": progress,
        })

    body = client.get(f"{BASE}/{project.id}/execution-logs").get_json()

    assert body["current_progress"] == 45
    assert [log["progress_percentage"] for log in body["items"]] == [45, 10]


# ═════════════════════════════════════════════════════════════════════════
# Roles
# ═════════════════════════════════════════════════════════════════════════


class TestRoles:
    @pytest.mark.parametrize("action", ["approve", "reject"])
    def test_non_approver_forbidden(self, client, project, user_headers, action):
        pid = project["id"]
        client.post(f"{BASE}/{pid}/proposal/submit")

        res = client.post(f"{BASE}/{pid}/proposal/{action}", json={"reason": "x"}, headers=user_headers)

        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"
        detail = client.get(f"{BASE}/{pid}").get_json()
        assert detail["proposal"]["approval_status"] == "PENDING"
        assert detail["current_phase"] == "PROPOSAL"

    def test_missing_role_forbidden(self, client, project):
        res = client.post(f"{BASE}/{project['id']}/proposal/approve")

        assert res.status_code == 403

    def test_admin_can_reject(self, client, project, admin_headers):
        pid = project["id"]
        client.post(f"{BASE}/{pid}/proposal/submit")

        res = client.post(f"{BASE}/{pid}/proposal/reject", json={"reason": "Budget unclear"}, headers=admin_headers)

        assert res.status_code == 200
        body = res.get_json()
        assert body["approval_status"] == "REJECTED"
        assert body["rejection_reason"] == "Budget unclear"

    def test_manual_advance_admin_only(self, client, project_factory, stage_factory, approver_headers, admin_headers):
        project = project_factory(phase="PROPOSAL")
        stage_factory(project, "PROPOSAL", status="APPROVED")

        res = client.post(f"{BASE}/{project.id}/advance", headers=approver_headers)
        assert res.status_code == 403

        res = client.post(f"{BASE}/{project.id}/advance", json={"expected_phase": "PROPOSAL"}, headers=admin_headers)
        assert res.status_code == 200
        assert res.get_json()["current_phase"] == "RKB"


# ═════════════════════════════════════════════════════════════════════════
# Error mapping
# ═════════════════════════════════════════════════════════════════════════


class TestErrorMapping:
    def test_phase_not_approved(self, client, project, admin_headers):
        res = client.post(f"{BASE}/{project['id']}/advance", headers=admin_headers)

        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_PHASE_NOT_APPROVED"
        assert body["details"]["stage"] == "Proposal"

    def test_wrong_phase(self, client, project):
        res = client.put(f"{BASE}/{project['id']}/rkb", json={"justification": "early"})

        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_WRONG_PHASE"
        assert body["details"] == {"project_id": project["id"], "expected": "RKB", "actual": "PROPOSAL"}

    def test_stage_locked(self, client, project):
        pid = project["id"]
        client.post(f"{BASE}/{pid}/proposal/submit")

        res = client.put(f"{BASE}/{pid}/proposal", json={"background": "edit"})

        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_STAGE_LOCKED"

    def test_invalid_stage_transition(self, client, project, approver_headers):
        pid = project["id"]
        client.put(f"{BASE}/{pid}/proposal", json={"background": "draft"})

        res = client.post(f"{BASE}/{pid}/proposal/approve", headers=approver_headers)

        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_INVALID_STAGE_TRANSITION"

    def test_already_completed(self, client, project_factory):
        project = project_factory(phase="COMPLETED")

        res = client.post(f"{BASE}/{project.id}/complete")

        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_ALREADY_COMPLETED"

    def test_not_infrastructure(self, client, web_project):
        res = client.post(f"{BASE}/{web_project.id}/proposal/submit")

        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_NOT_INFRASTRUCTURE_PROJECT"

    def test_stage_not_found(self, client, project, approver_headers):
        res = client.post(f"{BASE}/{project['id']}/proposal/approve", headers=approver_headers)

        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_item_validation(self, client, project_factory):
        project = project_factory(phase="RKB")

        res = client.post(f"{BASE}/{project.id}/rkb/items", json={
            "item_name": "Cable", "unit": "m", "quantity": 0, "unit_price": -5,
        })

        assert res.status_code == 422
        assert set(res.get_json()["details"]) == {"quantity", "unit_price"}

    def test_reject_without_reason(self, client, project, approver_headers):
        pid = project["id"]
        client.post(f"{BASE}/{pid}/proposal/submit")

        res = client.post(f"{BASE}/{pid}/proposal/reject", json={}, headers=approver_headers)

        assert res.status_code == 422

    def test_json_array_body_treated_as_empty(self, client, project, approver_headers):
        pid = project["id"]
        client.post(f"{BASE}/{pid}/proposal/submit")

        res = client.post(f"{BASE}/{pid}/proposal/reject", json=["Budget unclear"], headers=approver_headers)

        assert res.status_code == 422
        assert res.get_json()["details"] == {"reason": "required"}

    def test_json_array_project_body(self, client):
        res = client.post("/api/v1/projects", json=[{"name": "Core switch"}])

        assert res.status_code == 422
        assert "name" in res.get_json()["details"]

    def test_unknown_stage_is_404(self, client, project):
        res = client.post(f"{BASE}/{project['id']}/kanban/submit")

        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════
# Health & request middleware
# ═════════════════════════════════════════════════════════════════════════


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")

        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live_checks_database_and_tables(self, client):
        res = client.get("/api/v1/health/live")

        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["schema"]["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})

        assert res.headers["X-Request-ID"] == "abc123"
