"""
Ledger service for the Ledger Access Layer.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import Depends, Header, Query, Response

from shared.base_service import BaseService
from shared.errors import AuthenticationError, NotFoundError
from shared.logging import set_user_context

from .adapters import RemoteStore, create_store
from .caching import CachedStoreClient, ExpirySweeper, QueryCache
from .domain import FinanceQueries, parse_month
from .domain.finance import DEFAULT_HISTORY_MONTHS
from .domain.models import BudgetOverview, BudgetUpsert, ExpenseCreate, ExpenseUpdate, SpendingAnalytics


async def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity forwarded by the authenticating proxy."""
    if not x_user_id:
        raise AuthenticationError("Missing X-User-Id header")
    set_user_context(x_user_id)
    return x_user_id


class LedgerService(BaseService):
    """Ledger service implementation.

    Owns the process-wide ``QueryCache``; every route reaches the store
    through the single ``CachedStoreClient`` built here.
    """

    def __init__(self, store: Optional[RemoteStore] = None, **config_overrides):
        super().__init__("ledger", 8020, **config_overrides)
        metrics = self.metrics if self.config.enable_metrics else None

        self.query_cache = QueryCache(self.config.query_cache_ttl_seconds, metrics=metrics)
        self.store = store if store is not None else create_store(self.config, metrics)
        self.client = CachedStoreClient(self.store, self.query_cache)
        self.finance = FinanceQueries(self.client)

        interval = self.config.query_cache_sweep_interval_seconds
        self.sweeper = ExpirySweeper(self.query_cache, interval) if interval > 0 else None

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_ledger_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.ledger_service = self

    async def start(self):
        """Start background components."""
        if self.sweeper:
            self.sweeper.start()
        self.logger.info(
            "Ledger service started",
            store_backend=self.config.store_backend,
            cache_ttl_seconds=self.query_cache.ttl_seconds,
        )

    async def stop(self):
        """Stop background components and release the store."""
        if self.sweeper:
            await self.sweeper.stop()
        await self.store.close()
        self.logger.info("Ledger service stopped")

    async def _check_dependencies(self) -> Dict[str, str]:
        return {"store": "ok" if await self.store.ping() else "unavailable"}

    def _setup_ledger_routes(self):
        """Set up ledger-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "ledger",
                "message": "Ledger Access Layer - Ledger Service",
                "version": "1.0.0",
                "capabilities": ["query_cache", "expenses", "budgets", "analytics"]
            }

        @self.app.get("/api/v1/expenses")
        async def list_expenses(
            start: date = Query(...),
            end: date = Query(...),
            user_id: str = Depends(current_user),
        ):
            """Expenses in a date range, newest first."""
            expenses = await self.finance.get_expenses(user_id, start, end)
            return {"expenses": expenses, "count": len(expenses)}

        @self.app.get("/api/v1/expenses/by-category")
        async def expenses_by_category(
            start: date = Query(...),
            end: date = Query(...),
            user_id: str = Depends(current_user),
        ):
            """Spending totals per category in a date range."""
            totals = await self.finance.get_expenses_by_category(user_id, start, end)
            return {
                "start": start.isoformat(),
                "end": end.isoformat(),
                "totals": {category: str(amount) for category, amount in totals.items()},
                "total": str(sum(totals.values(), Decimal("0"))),
            }

        @self.app.post("/api/v1/expenses", status_code=201)
        async def create_expense(expense: ExpenseCreate, user_id: str = Depends(current_user)):
            """Record an expense."""
            return {"expense": await self.finance.add_expense(user_id, expense)}

        @self.app.patch("/api/v1/expenses/{expense_id}")
        async def update_expense(expense_id: str, changes: ExpenseUpdate, user_id: str = Depends(current_user)):
            """Edit an expense owned by the caller."""
            return {"expense": await self.finance.update_expense(user_id, expense_id, changes)}

        @self.app.delete("/api/v1/expenses/{expense_id}", status_code=204)
        async def delete_expense(expense_id: str, user_id: str = Depends(current_user)):
            """Delete an expense owned by the caller."""
            await self.finance.delete_expense(user_id, expense_id)
            return Response(status_code=204)

        @self.app.get("/api/v1/budgets")
        async def budget_history(
            limit: int = Query(DEFAULT_HISTORY_MONTHS, ge=1, le=60),
            user_id: str = Depends(current_user),
        ):
            """Most recent monthly budgets."""
            return {"budgets": await self.finance.get_budget_history(user_id, limit)}

        @self.app.get("/api/v1/budgets/{month}")
        async def get_budget(month: str, user_id: str = Depends(current_user)):
            """Budget for a month (YYYY-MM)."""
            budget = await self.finance.get_budget(user_id, parse_month(month))
            if budget is None:
                raise NotFoundError("No budget for month", {"month": month})
            return {"budget": budget}

        @self.app.put("/api/v1/budgets/{month}")
        async def save_budget(month: str, body: BudgetUpsert, user_id: str = Depends(current_user)):
            """Create or replace the budget for a month."""
            return {"budget": await self.finance.save_budget(user_id, parse_month(month), body.amount)}

        @self.app.get("/api/v1/budgets/{month}/overview", response_model=BudgetOverview)
        async def budget_overview(month: str, user_id: str = Depends(current_user)):
            """Budget versus spending for a month."""
            return await self.finance.get_budget_overview(user_id, parse_month(month))

        @self.app.get("/api/v1/analytics/{month}", response_model=SpendingAnalytics)
        async def spending_analytics(month: str, user_id: str = Depends(current_user)):
            """Daily, weekday and hourly spending with month-over-month trend."""
            return await self.finance.get_spending_analytics(user_id, parse_month(month))

        @self.app.get("/api/v1/cache/stats")
        async def cache_stats() -> Dict[str, Any]:
            """Query cache statistics."""
            return self.query_cache.stats()

        @self.app.post("/api/v1/cache/clear")
        async def cache_clear():
            """Drop every cached read."""
            cleared = len(self.query_cache)
            self.query_cache.clear()
            return {"cleared": cleared}


def create_app(**kwargs):
    """Create ledger service application."""
    service = LedgerService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = LedgerService()
    service.run()
