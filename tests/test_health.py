from crm.core.kv_store import get_kv_store
from main import app

from conftest import BrokenStore


def test_liveness(client):
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_readiness(client):
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {"database": "ok", "kv_store": "ok", "feature_flags": "ok"},
    }


def test_readiness_without_kv_store(client):
    app.dependency_overrides[get_kv_store] = lambda: None
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"]["kv_store"] == "not_configured"


def test_readiness_reports_store_outage(client):
    app.dependency_overrides[get_kv_store] = lambda: BrokenStore()
    response = client.get("/health/ready")
    assert response.status_code == 503
    assert response.json()["status"] == "unavailable"
    assert response.json()["checks"]["kv_store"] == "error"
