import uuid
from .conftest import client, admin_headers, ensure_auth_headers, make_project, user_id


def get_headers(client):
    headers, _ = ensure_auth_headers(client, email=f"{uuid.uuid4()}@ex.com")
    return headers


def test_activity_log_project_creation(client):
    headers = get_headers(client)
    project = make_project(client, headers)
    logs = client.get("/api/activity", headers=headers)
    assert logs.status_code == 200
    data = logs.json()
    assert any(l["action"] == "create" and l["target_id"] == project["id"] for l in data)
    assert any(l["action"] == "register" for l in data)


def test_activity_report(client):
    headers = get_headers(client)
    make_project(client, headers)
    params = {
        "start": "2000-01-01T00:00:00",
        "end": "2100-01-01T00:00:00",
    }
    resp = client.get("/api/activity/report", headers=headers, params=params)
    assert resp.status_code == 200
    data = resp.json()
    assert any(r["controller"] == "projects" and r["action"] == "create" and r["count"] >= 1 for r in data)


def test_other_users_activity_is_admin_only(client):
    headers = get_headers(client)
    target = user_id(client, headers)
    other = get_headers(client)
    assert client.get("/api/activity", params={"user_id": target}, headers=other).status_code == 403
    resp = client.get("/api/activity", params={"user_id": target}, headers=admin_headers(client))
    assert resp.status_code == 200
    assert all(l["user_id"] == target for l in resp.json())


def test_metrics_endpoint(client):
    client.get("/api/search", params={"q": "metrics"})
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert b"request_count" in resp.content
