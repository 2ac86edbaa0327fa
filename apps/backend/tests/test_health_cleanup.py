from datetime import timedelta

from fastapi.testclient import TestClient

from blog_analytics.factory import create_app
from blog_analytics.telemetry_utils import utcnow
from conftest import ADMIN_TOKEN, API


def _auth(token=ADMIN_TOKEN):
    return {"Authorization": f"Bearer {token}"}


def test_health_probe_leaves_no_trace(client, repository, seed):
    seed()
    res = client.get(f"{API}/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "healthy"
    assert body["database"]["connected"] is True
    assert body["database"]["totalEvents"] == 1
    assert repository.count() == 1
    assert repository.by_kind("health_check") == []


def test_health_reports_unreachable_store(app, client):
    app.state.store.stop()
    res = client.get(f"{API}/health")
    assert res.status_code == 500
    assert res.json()["status"] == "unhealthy"
    assert res.json()["database"]["connected"] is False
    # development settings expose the cause
    assert "error" in res.json()


def test_status_endpoints(client, seed):
    seed()
    for path in ("/status", "/db-status"):
        res = client.get(f"{API}{path}")
        assert res.status_code == 200
        assert res.json()["database"]["connected"] is True
        assert res.json()["database"]["totalEvents"] == 1
        assert res.json()["database"]["lastEvent"] is not None


def test_status_does_not_write(client, repository):
    client.get(f"{API}/status")
    assert repository.count() == 0


def test_test_endpoint(client):
    body = client.get(f"{API}/test").json()
    assert body["success"] is True
    assert body["endpoints"]["bulk"] == f"POST {API}/bulk"


def test_cleanup_requires_token(client, repository, seed):
    seed(ts=utcnow() - timedelta(days=400))
    for headers in ({}, _auth("wrong"), {"Authorization": ADMIN_TOKEN}):
        res = client.delete(f"{API}/cleanup", params={"days": 30}, headers=headers)
        assert res.status_code == 401
        assert res.json() == {"success": False, "message": "Unauthorized: Admin token required"}
    assert repository.count() == 1


def test_cleanup_auth_is_checked_before_days(client):
    res = client.delete(f"{API}/cleanup", params={"days": "abc"})
    assert res.status_code == 401


def test_cleanup_with_empty_configured_token(settings):
    app = create_app(settings.model_copy(update={"admin_token": ""}))
    with TestClient(app) as c:
        res = c.delete(f"{API}/cleanup", headers={"Authorization": "Bearer "})
        assert res.status_code == 401


def test_cleanup_deletes_only_old_events(client, repository, seed):
    seed(ts=utcnow() - timedelta(days=45))
    seed(ts=utcnow() - timedelta(days=400))
    keep = seed(ts=utcnow() - timedelta(days=2))

    res = client.delete(f"{API}/cleanup", params={"days": 30}, headers=_auth())
    assert res.status_code == 200
    assert res.json()["deletedCount"] == 2
    assert repository.count() == 1
    assert repository.get(keep) is not None


def test_cleanup_rejects_bad_days(client, repository, seed):
    seed(ts=utcnow() - timedelta(days=400))
    res = client.delete(f"{API}/cleanup", params={"days": "0"}, headers=_auth())
    assert res.status_code == 400
    assert repository.count() == 1


def test_root_health(client):
    assert client.get("/health").json() == {"success": True, "status": "ok"}


def test_debug_runtime_only_in_development(client, settings):
    res = client.get("/debug/runtime")
    assert res.status_code == 200
    assert res.json()["store_started"] is True
    assert res.json()["store_dialect"] == "sqlite"

    app = create_app(settings.model_copy(update={"environment": "production"}))
    with TestClient(app) as c:
        assert c.get("/debug/runtime").status_code == 404
