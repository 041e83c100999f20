"""
Tests for the Ledger Service HTTP API.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from service_ledger.app.adapters.memory_store import InMemoryStore
from service_ledger.app.main import LedgerService
from shared.errors import StoreError

USER_1 = {"X-User-Id": "user-1"}
MARCH = {"start": "2024-03-01", "end": "2024-03-31"}


@pytest.fixture
def service(ledger_rows):
    """Ledger service over a seeded in-memory store."""
    return LedgerService(store=InMemoryStore(ledger_rows), store_backend="memory")


@pytest.fixture
def client(service):
    """Test client with startup and shutdown hooks run."""
    with TestClient(service.app) as test_client:
        yield test_client


class TestLedgerService:
    """Test cases for service-level endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "ledger"
        assert "query_cache" in data["capabilities"]

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"store": "ok"}

    def test_health_check_degraded(self, client, service):
        with patch.object(service.store, "ping", new=AsyncMock(return_value=False)):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["dependencies"] == {"store": "unavailable"}

    def test_metrics_endpoint(self, client):
        client.get("/api/v1/expenses", params=MARCH, headers=USER_1)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "query_cache_requests_total" in response.text
        assert "http_requests_total" in response.text

    def test_request_id_round_trip(self, client):
        response = client.get("/", headers={"X-Request-Id": "req-123"})
        assert response.headers["X-Request-Id"] == "req-123"

    def test_app_state_exposes_service(self, service):
        assert service.app.state.ledger_service is service


class TestExpenseEndpoints:
    """Test cases for expense routes."""

    def test_missing_user_header(self, client):
        response = client.get("/api/v1/expenses", params=MARCH)

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_list_expenses_served_from_cache(self, client):
        first = client.get("/api/v1/expenses", params=MARCH, headers=USER_1)
        second = client.get("/api/v1/expenses", params=MARCH, headers=USER_1)

        assert first.status_code == 200
        assert [row["id"] for row in first.json()["expenses"]] == ["e3", "e2", "e1"]
        assert second.json() == first.json()

        stats = client.get("/api/v1/cache/stats").json()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["collections"] == {"expenses": 1}

    def test_expenses_by_category(self, client):
        response = client.get("/api/v1/expenses/by-category", params=MARCH, headers=USER_1)

        assert response.status_code == 200
        data = response.json()
        assert {name: Decimal(value) for name, value in data["totals"].items()} == {
            "Food": Decimal("20"),
            "Transport": Decimal("40"),
        }
        assert Decimal(data["total"]) == Decimal("60")

    def test_create_expense_invalidates_reads(self, client):
        client.get("/api/v1/expenses", params=MARCH, headers=USER_1)

        response = client.post("/api/v1/expenses", headers=USER_1, json={
            "amount": "15.00",
            "category": "Food",
            "description": "Coffee beans",
            "spent_at": "2024-03-20T08:00:00",
        })
        listing = client.get("/api/v1/expenses", params=MARCH, headers=USER_1).json()

        assert response.status_code == 201
        created = response.json()["expense"]
        assert created["user_id"] == "user-1"
        assert listing["count"] == 4
        assert created["id"] in [row["id"] for row in listing["expenses"]]

    def test_create_expense_rejects_non_positive_amount(self, client):
        response = client.post("/api/v1/expenses", headers=USER_1, json={
            "amount": "0",
            "category": "Food",
            "description": "Nothing",
            "spent_at": "2024-03-20T08:00:00",
        })
        assert response.status_code == 422

    def test_update_expense(self, client):
        response = client.patch("/api/v1/expenses/e2", headers=USER_1, json={"category": "Travel"})

        assert response.status_code == 200
        assert response.json()["expense"]["category"] == "Travel"

    def test_update_expense_of_other_user(self, client):
        response = client.patch("/api/v1/expenses/e1", headers={"X-User-Id": "user-2"}, json={"amount": "1"})

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_delete_expense(self, client):
        response = client.delete("/api/v1/expenses/e1", headers=USER_1)
        listing = client.get("/api/v1/expenses", params=MARCH, headers=USER_1).json()

        assert response.status_code == 204
        assert [row["id"] for row in listing["expenses"]] == ["e3", "e2"]

    def test_store_failure_maps_to_bad_gateway(self, client, service):
        with patch.object(service.store, "select", new=AsyncMock(side_effect=StoreError("connection reset"))):
            response = client.get(
                "/api/v1/expenses",
                params=MARCH,
                headers={**USER_1, "X-Request-Id": "req-502"},
            )

        assert response.status_code == 502
        data = response.json()
        assert data["code"] == "STORE_ERROR"
        assert data["message"] == "store: connection reset"
        assert data["request_id"] == "req-502"
        assert len(service.query_cache) == 0


class TestBudgetEndpoints:
    """Test cases for budget routes."""

    def test_get_budget(self, client):
        response = client.get("/api/v1/budgets/2024-03", headers=USER_1)

        assert response.status_code == 200
        assert response.json()["budget"]["id"] == "b1"

    def test_get_missing_budget(self, client):
        response = client.get("/api/v1/budgets/2023-01", headers=USER_1)

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_invalid_month(self, client):
        response = client.get("/api/v1/budgets/March", headers=USER_1)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_budget_history(self, client):
        response = client.get("/api/v1/budgets", params={"limit": 2}, headers=USER_1)

        assert response.status_code == 200
        assert [row["id"] for row in response.json()["budgets"]] == ["b1", "b2"]

    def test_budget_history_limit_bounds(self, client):
        response = client.get("/api/v1/budgets", params={"limit": 0}, headers=USER_1)
        assert response.status_code == 422

    def test_save_budget(self, client):
        saved = client.put("/api/v1/budgets/2024-05", headers=USER_1, json={"amount": "80"})
        fetched = client.get("/api/v1/budgets/2024-05", headers=USER_1)

        assert saved.status_code == 200
        assert saved.json()["budget"]["month"] == "2024-05-01"
        assert fetched.status_code == 200
        assert fetched.json()["budget"]["id"] == saved.json()["budget"]["id"]

    def test_budget_overview(self, client):
        response = client.get("/api/v1/budgets/2024-03/overview", headers=USER_1)

        assert response.status_code == 200
        data = response.json()
        assert data["month"] == "2024-03-01"
        assert Decimal(str(data["remaining"])) == 0
        assert data["near_limit"] is True
        assert data["over_budget"] is False
        assert [item["category"] for item in data["categories"]] == ["Transport", "Food"]


class TestAnalyticsEndpoints:
    """Test cases for spending analytics."""

    def test_spending_analytics(self, client):
        response = client.get("/api/v1/analytics/2024-04", headers=USER_1)

        assert response.status_code == 200
        data = response.json()
        assert data["month"] == "2024-04-01"
        assert data["expense_count"] == 1
        assert Decimal(str(data["previous_total"])) == Decimal("60")
        assert data["trend_change"] == pytest.approx(100 * 40 / 60)
        assert len(data["daily"]) == 30
        assert [slot["label"] for slot in data["weekdays"]][0] == "Sun"

    def test_spending_analytics_requires_user(self, client):
        response = client.get("/api/v1/analytics/2024-04")
        assert response.status_code == 401

    def test_spending_analytics_invalid_month(self, client):
        response = client.get("/api/v1/analytics/April", headers=USER_1)
        assert response.status_code == 400


class TestCacheEndpoints:
    """Test cases for cache administration routes."""

    def test_cache_clear(self, client):
        client.get("/api/v1/expenses", params=MARCH, headers=USER_1)
        client.get("/api/v1/budgets/2024-03", headers=USER_1)

        response = client.post("/api/v1/cache/clear")

        assert response.json() == {"cleared": 2}
        assert client.get("/api/v1/cache/stats").json()["entries"] == 0
