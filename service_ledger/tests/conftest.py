"""
Shared fixtures for Ledger Service tests.
"""

from typing import Any, Dict, List

import pytest

from service_ledger.app.adapters.memory_store import InMemoryStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Clock starting at t=0."""
    return FakeClock()


@pytest.fixture
def ledger_rows() -> Dict[str, List[Dict[str, Any]]]:
    """Expenses and budgets for two users around March 2024."""
    return {
        "expenses": [
            {"id": "e1", "user_id": "user-1", "amount": 12.5, "category": "Food",
             "description": "Groceries", "spent_at": "2024-03-02T09:00:00"},
            {"id": "e2", "user_id": "user-1", "amount": 40, "category": "Transport",
             "description": "Train pass", "spent_at": "2024-03-15T18:30:00"},
            {"id": "e3", "user_id": "user-1", "amount": 7.5, "category": "Food",
             "description": "Lunch", "spent_at": "2024-03-31T22:00:00"},
            {"id": "e4", "user_id": "user-1", "amount": 100, "category": "Food",
             "description": "Dinner party", "spent_at": "2024-04-01T00:00:00"},
            {"id": "e5", "user_id": "user-2", "amount": 9, "category": "Food",
             "description": "Snacks", "spent_at": "2024-03-05T10:00:00"},
        ],
        "budgets": [
            {"id": "b1", "user_id": "user-1", "month": "2024-03-01", "amount": 60},
            {"id": "b2", "user_id": "user-1", "month": "2024-02-01", "amount": 50},
            {"id": "b3", "user_id": "user-1", "month": "2024-01-01", "amount": 45},
            {"id": "b4", "user_id": "user-2", "month": "2024-03-01", "amount": 300},
        ],
    }


@pytest.fixture
def memory_store(ledger_rows):
    """In-memory store seeded with ``ledger_rows``."""
    return InMemoryStore(ledger_rows)
