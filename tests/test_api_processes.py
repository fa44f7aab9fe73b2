"""
tests/test_api_processes.py — HTTP round-trips for processes, activities,
assignments and per-user views.

Covers:
    1.  Bearer token required (401) except health probes
    2.  Role gate on writes (403) and area scoping for admins
    3.  Process create / read / update / delete with error mapping
    4.  Activity creation, dependency rejection (400 with reason), status 422
    5.  can-start, dependency-chain and blocked endpoints
    6.  Single / batch assignment, duplicate (400), removal (404 on repeat)
    7.  Project assignment replace, workload and visible projects

Marker: integration (full HTTP round-trip through Flask test client).
"""

import pytest

from timeflow.models import db as _db
from timeflow.models.project import ProjectAssignment

BASE = "/api/v1"

pytestmark = pytest.mark.integration


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def _create_process(client, headers, **kw):
    payload = {"name": "Resolve"}
    payload.update(kw)
    rv = client.post(f"{BASE}/processes", json=payload, headers=headers)
    assert rv.status_code == 201, rv.get_json()
    return rv.get_json()


def _create_step(client, headers, process_id, assignee_id, **kw):
    payload = {"name": "Step", "assigned_user_id": assignee_id}
    payload.update(kw)
    rv = client.post(f"{BASE}/processes/{process_id}/activities", json=payload, headers=headers)
    assert rv.status_code == 201, rv.get_json()
    return rv.get_json()


def _join_project(project, u):
    _db.session.add(ProjectAssignment(project_id=project.id, user_id=u.id))
    _db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# Authentication
# ═════════════════════════════════════════════════════════════════════════════


def test_missing_token_is_401(client):
    rv = client.get(f"{BASE}/processes")
    assert rv.status_code == 401
    assert rv.get_json()["code"] == "ERR_UNAUTHORIZED"


def test_garbage_token_is_401(client):
    rv = client.get(f"{BASE}/processes", headers={"Authorization": "Bearer not-a-jwt"})
    assert rv.status_code == 401
    assert rv.get_json()["error"] == "Invalid token"


def test_health_needs_no_token(client):
    assert client.get(f"{BASE}/health/live").status_code == 200
    rv = client.get(f"{BASE}/health/ready")
    assert rv.status_code == 200
    assert rv.get_json()["database"] == "ok"


def test_unknown_route_and_method_use_error_shape(client, auth_headers, superadmin):
    rv = client.get(f"{BASE}/nowhere", headers=auth_headers(superadmin))
    assert rv.status_code == 404
    assert rv.get_json()["code"] == "ERR_NOT_FOUND"

    rv = client.patch(f"{BASE}/processes", headers=auth_headers(superadmin))
    assert rv.status_code == 405
    assert rv.get_json()["code"] == "ERR_METHOD_NOT_ALLOWED"


def test_responses_carry_request_id(client):
    rv = client.get(f"{BASE}/health/live", headers={"X-Request-ID": "trace-123"})
    assert rv.headers["X-Request-ID"] == "trace-123"
    assert "X-Request-Duration-Ms" in rv.headers


# ═════════════════════════════════════════════════════════════════════════════
# Processes
# ═════════════════════════════════════════════════════════════════════════════


def test_admin_creates_process_with_assignments(client, auth_headers, admin, requirement, user):
    body = _create_process(
        client, auth_headers(admin),
        requirement_id=requirement.id, user_ids=[user.id, 999],
    )
    assert body["requirement_id"] == requirement.id
    assert body["created_by"] == admin.id
    assert body["assignments"]["assigned"] == [user.id]
    assert [r["status"] for r in body["assignments"]["results"]] == ["assigned", "user_not_found"]


def test_user_cannot_create_process(client, auth_headers, user):
    rv = client.post(f"{BASE}/processes", json={"name": "Nope"}, headers=auth_headers(user))
    assert rv.status_code == 403
    assert rv.get_json()["code"] == "ERR_FORBIDDEN"


def test_admin_outside_area_cannot_anchor(client, auth_headers, other_admin, requirement):
    rv = client.post(
        f"{BASE}/requirements/{requirement.id}/processes",
        json={"name": "Foreign"}, headers=auth_headers(other_admin),
    )
    assert rv.status_code == 403


def test_create_process_validation_errors(client, auth_headers, admin, requirement, incident):
    headers = auth_headers(admin)
    rv = client.post(f"{BASE}/processes", json={}, headers=headers)
    assert rv.status_code == 400
    assert rv.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    rv = client.post(
        f"{BASE}/processes",
        json={"name": "Two", "requirement_id": requirement.id, "incident_id": incident.id},
        headers=headers,
    )
    assert rv.status_code == 422
    assert rv.get_json()["code"] == "ERR_VALIDATION_RULE"

    rv = client.post(f"{BASE}/processes", json={"name": "X", "requirement_id": 9999}, headers=headers)
    assert rv.status_code == 404


def test_read_access_follows_assignment_paths(client, auth_headers, admin, user, other_user, project, requirement):
    body = _create_process(client, auth_headers(admin), requirement_id=requirement.id, user_ids=[user.id])
    url = f"{BASE}/processes/{body['id']}"

    assert client.get(url, headers=auth_headers(user)).status_code == 200
    assert client.get(url, headers=auth_headers(other_user)).status_code == 403

    _join_project(project, other_user)
    rv = client.get(url, headers=auth_headers(other_user))
    assert rv.status_code == 200
    assert rv.get_json()["activities"] == []


def test_list_processes_only_shows_accessible(client, auth_headers, admin, superadmin, user, requirement):
    headers = auth_headers(admin)
    visible = _create_process(client, headers, name="Visible", requirement_id=requirement.id, user_ids=[user.id])
    _create_process(client, headers, name="Hidden", requirement_id=requirement.id)

    rv = client.get(f"{BASE}/processes", headers=auth_headers(user))
    assert rv.status_code == 200
    assert [p["id"] for p in rv.get_json()["items"]] == [visible["id"]]

    rv = client.get(f"{BASE}/processes?limit=1", headers=auth_headers(superadmin))
    data = rv.get_json()
    assert data["total"] == 2
    assert len(data["items"]) == 1

    rv = client.get(f"{BASE}/processes?status=bogus", headers=auth_headers(superadmin))
    assert rv.status_code == 400


def test_update_and_delete_process(client, auth_headers, admin, superadmin, requirement):
    headers = auth_headers(admin)
    body = _create_process(client, headers, requirement_id=requirement.id)
    url = f"{BASE}/processes/{body['id']}"

    rv = client.put(url, json={"status": "on_hold"}, headers=headers)
    assert rv.status_code == 200
    assert rv.get_json()["status"] == "on_hold"

    rv = client.put(url, json={"status": "paused"}, headers=headers)
    assert rv.status_code == 422

    assert client.delete(url, headers=headers).status_code == 200
    assert client.get(url, headers=auth_headers(superadmin)).status_code == 404


def test_incident_reporter_may_create_process(client, auth_headers, incident, other_user, user):
    rv = client.post(
        f"{BASE}/incidents/{incident.id}/processes",
        json={"name": "Reporter fix"}, headers=auth_headers(other_user),
    )
    assert rv.status_code == 201
    assert rv.get_json()["incident_id"] == incident.id

    rv = client.post(
        f"{BASE}/incidents/{incident.id}/processes",
        json={"name": "Stranger fix"}, headers=auth_headers(user),
    )
    assert rv.status_code == 403


def test_activity_anchor_route(client, auth_headers, admin, activity):
    rv = client.post(
        f"{BASE}/activities/{activity.id}/processes",
        json={"name": "From activity"}, headers=auth_headers(admin),
    )
    assert rv.status_code == 201
    assert rv.get_json()["activity_id"] == activity.id


# ═════════════════════════════════════════════════════════════════════════════
# Activities and dependencies
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def chain(client, auth_headers, admin, user, requirement):
    """Process with A ← B ← C assigned to ``user``."""
    headers = auth_headers(admin)
    proc = _create_process(client, headers, requirement_id=requirement.id, user_ids=[user.id])
    a = _create_step(client, headers, proc["id"], user.id, name="A")
    b = _create_step(client, headers, proc["id"], user.id, name="B", depends_on_id=a["id"])
    c = _create_step(client, headers, proc["id"], user.id, name="C", depends_on_id=b["id"])
    return proc, a, b, c


def test_activities_listed_in_order(client, auth_headers, user, chain):
    proc, a, b, c = chain
    rv = client.get(f"{BASE}/processes/{proc['id']}/activities", headers=auth_headers(user))
    data = rv.get_json()
    assert data["total"] == 3
    assert [x["id"] for x in data["items"]] == [a["id"], b["id"], c["id"]]
    assert data["items"][1]["depends_on"]["id"] == a["id"]


def test_create_activity_requires_fields(client, auth_headers, admin, chain):
    proc = chain[0]
    rv = client.post(f"{BASE}/processes/{proc['id']}/activities", json={"name": "X"},
                     headers=auth_headers(admin))
    assert rv.status_code == 400


@pytest.mark.parametrize("body", [[1], "text", 7])
def test_non_object_json_body_is_400(client, auth_headers, admin, chain, body):
    proc, a, _, _ = chain
    headers = auth_headers(admin)
    calls = [
        ("post", f"{BASE}/processes"),
        ("put", f"{BASE}/processes/{proc['id']}"),
        ("post", f"{BASE}/processes/{proc['id']}/activities"),
        ("put", f"{BASE}/process-activities/{a['id']}"),
        ("post", f"{BASE}/processes/{proc['id']}/assign"),
    ]
    for method, url in calls:
        rv = getattr(client, method)(url, json=body, headers=headers)
        assert rv.status_code == 400, (method, url, rv.get_json())
        assert rv.get_json()["code"] == "ERR_VALIDATION_INVALID"


def test_cycle_via_update_is_400_with_reason(client, auth_headers, admin, chain):
    _, a, _, c = chain
    rv = client.put(f"{BASE}/process-activities/{a['id']}", json={"depends_on_id": c["id"]},
                    headers=auth_headers(admin))
    assert rv.status_code == 400
    body = rv.get_json()
    assert body["code"] == "ERR_INVALID_DEPENDENCY"
    assert body["details"]["reason"] == "cycle"


def test_cross_process_dependency_is_400(client, auth_headers, admin, user, requirement, chain):
    _, a, _, _ = chain
    other = _create_process(client, auth_headers(admin), name="Other", requirement_id=requirement.id)
    rv = client.post(
        f"{BASE}/processes/{other['id']}/activities",
        json={"name": "Foreign", "assigned_user_id": user.id, "depends_on_id": a["id"]},
        headers=auth_headers(admin),
    )
    assert rv.status_code == 400
    assert rv.get_json()["details"]["reason"] == "cross_process"


def test_can_start_chain_and_blocked(client, auth_headers, user, chain):
    _, a, b, c = chain
    headers = auth_headers(user)

    rv = client.get(f"{BASE}/process-activities/{b['id']}/can-start", headers=headers)
    body = rv.get_json()
    assert body["can_start"] is False
    assert body["reason"] == "Dependency not completed: A"
    assert body["depends_on"]["id"] == a["id"]

    rv = client.put(f"{BASE}/process-activities/{a['id']}", json={"status": "completed"}, headers=headers)
    assert rv.status_code == 200

    rv = client.get(f"{BASE}/process-activities/{b['id']}/can-start", headers=headers)
    assert rv.get_json()["can_start"] is True

    rv = client.get(f"{BASE}/process-activities/{c['id']}/dependency-chain", headers=headers)
    assert [x["id"] for x in rv.get_json()["items"]] == [a["id"], b["id"], c["id"]]

    rv = client.get(f"{BASE}/process-activities/{a['id']}/blocked", headers=headers)
    assert [x["id"] for x in rv.get_json()["items"]] == [b["id"]]


def test_assignee_limited_to_progress_fields(client, auth_headers, user, other_user, chain):
    _, a, _, c = chain
    url = f"{BASE}/process-activities/{a['id']}"

    rv = client.put(url, json={"status": "bogus"}, headers=auth_headers(user))
    assert rv.status_code == 422

    rv = client.put(url, json={"depends_on_id": c["id"]}, headers=auth_headers(user))
    assert rv.status_code == 403

    rv = client.put(url, json={"status": "in_progress"}, headers=auth_headers(other_user))
    assert rv.status_code == 403


def test_activity_endpoints_404_for_unknown(client, auth_headers, superadmin):
    rv = client.get(f"{BASE}/process-activities/424242/can-start", headers=auth_headers(superadmin))
    assert rv.status_code == 404
    assert rv.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# Assignments
# ═════════════════════════════════════════════════════════════════════════════


def test_single_assign_duplicate_and_removal(client, auth_headers, admin, user, requirement):
    headers = auth_headers(admin)
    proc = _create_process(client, headers, requirement_id=requirement.id)
    assign_url = f"{BASE}/processes/{proc['id']}/assign"

    rv = client.post(assign_url, json={"user_id": user.id}, headers=headers)
    assert rv.status_code == 201

    rv = client.post(assign_url, json={"user_id": user.id}, headers=headers)
    assert rv.status_code == 400
    assert rv.get_json()["code"] == "ERR_DUPLICATE_ASSIGNMENT"

    rv = client.get(f"{BASE}/processes/{proc['id']}/assignments", headers=headers)
    assert [u["id"] for u in rv.get_json()["items"]] == [user.id]

    remove_url = f"{BASE}/processes/{proc['id']}/assignments/{user.id}"
    assert client.delete(remove_url, headers=headers).status_code == 200
    assert client.delete(remove_url, headers=headers).status_code == 404


def test_batch_assign_reports_each_id(client, auth_headers, admin, user, other_user, requirement):
    headers = auth_headers(admin)
    proc = _create_process(client, headers, requirement_id=requirement.id, user_ids=[other_user.id])

    rv = client.post(
        f"{BASE}/processes/{proc['id']}/assign",
        json={"user_ids": [user.id, other_user.id, 999]}, headers=headers,
    )
    assert rv.status_code == 200
    body = rv.get_json()
    assert body["assigned"] == [user.id]
    assert [r["status"] for r in body["results"]] == ["assigned", "already_assigned", "user_not_found"]

    rv = client.post(f"{BASE}/processes/{proc['id']}/assign", json={}, headers=headers)
    assert rv.status_code == 400
    rv = client.post(f"{BASE}/processes/{proc['id']}/assign", json={"user_ids": ["x"]}, headers=headers)
    assert rv.status_code == 400


def test_replace_project_assignments(client, auth_headers, admin, other_admin, user, other_user, project):
    url = f"{BASE}/projects/{project.id}/assignments"
    rv = client.put(url, json={"user_ids": [user.id, other_user.id]}, headers=auth_headers(admin))
    assert rv.status_code == 200
    assert rv.get_json()["total"] == 2

    rv = client.put(url, json={"user_ids": [999]}, headers=auth_headers(admin))
    assert rv.status_code == 422
    assert rv.get_json()["details"] == {"user_ids": [999]}

    rv = client.put(url, json={"user_ids": []}, headers=auth_headers(other_admin))
    assert rv.status_code == 403

    assert client.put(f"{BASE}/projects/9999/assignments", json={"user_ids": []},
                      headers=auth_headers(admin)).status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Per-user views
# ═════════════════════════════════════════════════════════════════════════════


def test_workload_self_or_manager_only(client, auth_headers, admin, user, other_user, chain):
    rv = client.get(f"{BASE}/users/{user.id}/workload", headers=auth_headers(user))
    assert rv.status_code == 200
    body = rv.get_json()
    assert body["active_processes"] == 1
    assert body["pending_activities"] == 3

    assert client.get(f"{BASE}/users/{user.id}/workload", headers=auth_headers(other_user)).status_code == 403
    assert client.get(f"{BASE}/users/{user.id}/workload", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"{BASE}/users/9999/workload", headers=auth_headers(admin)).status_code == 404


def test_user_processes_and_visible_projects(client, auth_headers, user, project, chain):
    proc = chain[0]
    rv = client.get(f"{BASE}/users/{user.id}/processes", headers=auth_headers(user))
    assert [p["id"] for p in rv.get_json()["items"]] == [proc["id"]]

    rv = client.get(f"{BASE}/users/me/projects", headers=auth_headers(user))
    assert [p["id"] for p in rv.get_json()["items"]] == [project.id]
