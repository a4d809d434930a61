import pytest

from crm.core.exceptions import Conflict, Unavailable
from crm.core.idempotency import IdempotencyGuard
from crm.core.kv_store import InMemoryKeyValueStore, get_kv_store
from crm.core.rate_limit import api_rate_limiter
from main import app

from conftest import BrokenStore, auth


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestKeyValueStore:

    def test_set_only_if_absent(self):
        store = InMemoryKeyValueStore()
        assert store.set("k", "a", 60, only_if_absent=True) is True
        assert store.set("k", "b", 60, only_if_absent=True) is False
        assert store.get("k") == "a"

    def test_entries_expire(self):
        clock = FakeClock()
        store = InMemoryKeyValueStore(clock=clock)
        store.set("k", "v", 10)
        clock.now += 11
        assert store.get("k") is None

    def test_incr_keeps_window(self):
        clock = FakeClock()
        store = InMemoryKeyValueStore(clock=clock)
        assert store.incr("c", 60) == (1, 60)
        clock.now += 20
        assert store.incr("c", 60) == (2, 40)
        clock.now += 41
        assert store.incr("c", 60) == (1, 60)


class TestRateLimiting:

    def test_requests_over_limit_get_429(self, client, tenant, monkeypatch):
        monkeypatch.setattr(api_rate_limiter, "limit", 2)
        url = f"/api/tenants/{tenant.id}/customers"

        first = client.get(url, headers=auth("viewer-token"))
        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"

        assert client.get(url, headers=auth("viewer-token")).status_code == 200

        third = client.get(url, headers=auth("viewer-token"))
        assert third.status_code == 429
        assert third.json() == {"error": "Rate limit exceeded"}
        assert int(third.headers["Retry-After"]) >= 1
        assert third.headers["X-RateLimit-Remaining"] == "0"

    def test_callers_are_counted_separately(self, client, tenant, monkeypatch):
        monkeypatch.setattr(api_rate_limiter, "limit", 1)
        url = f"/api/tenants/{tenant.id}/customers"

        assert client.get(url, headers=auth("viewer-token")).status_code == 200
        assert client.get(url, headers=auth("manager-token")).status_code == 200
        assert client.get(url, headers=auth("viewer-token")).status_code == 429

    def test_store_outage_fails_open(self, client, tenant):
        app.dependency_overrides[get_kv_store] = lambda: BrokenStore()
        response = client.get(f"/api/tenants/{tenant.id}/customers", headers=auth("viewer-token"))
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_no_store_configured(self, client, tenant):
        app.dependency_overrides[get_kv_store] = lambda: None
        response = client.get(f"/api/tenants/{tenant.id}/customers", headers=auth("viewer-token"))
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers


class TestIdempotencyGuard:

    def test_first_request_proceeds_and_completes(self):
        store = InMemoryKeyValueStore()
        guard = IdempotencyGuard(store, "key-1", ttl_seconds=60)
        assert guard.begin("orders:1") is None
        guard.complete(201, {"id": 7})

        replay = IdempotencyGuard(store, "key-1", ttl_seconds=60).begin("orders:1")
        assert replay.status_code == 201
        assert replay.body == {"id": 7}

    def test_in_flight_duplicate_is_conflict(self):
        store = InMemoryKeyValueStore()
        IdempotencyGuard(store, "key-1", ttl_seconds=60).begin("orders:1")

        with pytest.raises(Conflict) as exc_info:
            IdempotencyGuard(store, "key-1", ttl_seconds=60).begin("orders:1")
        assert exc_info.value.headers["Retry-After"] == "5"

    def test_scopes_do_not_collide(self):
        store = InMemoryKeyValueStore()
        IdempotencyGuard(store, "key-1", ttl_seconds=60).begin("orders:1")
        assert IdempotencyGuard(store, "key-1", ttl_seconds=60).begin("orders:2") is None

    def test_release_allows_retry(self):
        store = InMemoryKeyValueStore()
        guard = IdempotencyGuard(store, "key-1", ttl_seconds=60)
        guard.begin("orders:1")
        guard.release()
        assert IdempotencyGuard(store, "key-1", ttl_seconds=60).begin("orders:1") is None

    def test_inactive_without_key_or_store(self):
        assert IdempotencyGuard(InMemoryKeyValueStore(), None, ttl_seconds=60).begin("orders:1") is None
        assert IdempotencyGuard(None, "key-1", ttl_seconds=60).begin("orders:1") is None

    def test_store_outage_fails_closed(self):
        with pytest.raises(Unavailable):
            IdempotencyGuard(BrokenStore(), "key-1", ttl_seconds=60).begin("orders:1")

    def test_invalid_header_rejected(self, client, tenant):
        response = client.post(
            f"/api/tenants/{tenant.id}/orders",
            json={"items": [{"description": "Thing", "quantity": 1, "unitPriceCents": 10}]},
            headers={**auth("manager-token"), "Idempotency-Key": "x" * 300},
        )
        assert response.status_code == 400
