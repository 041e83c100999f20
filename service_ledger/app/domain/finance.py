"""
Finance queries built on the cached store client.

These helpers only shape filters and aggregate rows that were already
fetched; caching and invalidation stay in ``CachedStoreClient``.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger
from ..adapters.store import Record
from ..caching.cached_client import CachedStoreClient, MutationKind
from .models import (
    BudgetOverview,
    CategoryBreakdown,
    DailySpending,
    ExpenseCreate,
    ExpenseUpdate,
    PeriodSpending,
    SpendingAnalytics,
)

EXPENSES = "expenses"
BUDGETS = "budgets"

UNCATEGORIZED = "Uncategorized"
NEAR_LIMIT_PERCENT = 90.0
DEFAULT_HISTORY_MONTHS = 6
LARGE_EXPENSE_FACTOR = 3
WEEKDAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

DateLike = Union[date, datetime, str]

_DATETIME = TypeAdapter(datetime)


def month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def month_end(value: date) -> date:
    return date(value.year, value.month, calendar.monthrange(value.year, value.month)[1])


def parse_month(text: str) -> date:
    """Accept ``YYYY-MM`` or any ``YYYY-MM-DD`` inside the month."""
    try:
        if len(text) == 7:
            return date.fromisoformat(f"{text}-01")
        return month_start(date.fromisoformat(text))
    except ValueError:
        raise ValidationError("Invalid month, expected YYYY-MM", {"month": text}) from None


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("Invalid amount", {"amount": repr(value)}) from None


def sum_by_category(expenses: Iterable[Record]) -> Dict[str, Decimal]:
    """Total ``amount`` per ``category`` over fetched expense rows."""
    totals: Dict[str, Decimal] = {}
    for expense in expenses:
        category = expense.get("category") or UNCATEGORIZED
        totals[category] = totals.get(category, Decimal("0")) + to_decimal(expense.get("amount"))
    return totals


def _as_datetime(value: DateLike, bound: time) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
        except ValueError:
            raise ValidationError("Invalid date", {"value": value}) from None
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, bound)


def spending_range(start: DateLike, end: DateLike) -> Tuple[datetime, datetime]:
    """Inclusive bounds; bare dates cover the whole day."""
    lower = _as_datetime(start, time.min)
    upper = _as_datetime(end, time.max)
    if (lower.tzinfo is None) != (upper.tzinfo is None):
        raise ValidationError("start and end must both be naive or both carry a timezone")
    if lower > upper:
        raise ValidationError("start must not be after end", {"start": lower.isoformat(), "end": upper.isoformat()})
    return lower, upper


def previous_month(value: date) -> date:
    """First day of the month before ``value``."""
    return month_start(month_start(value) - timedelta(days=1))


def elapsed_days(month: date, today: date) -> int:
    """Days of ``month`` up to and including ``today``; 0 for a future month."""
    first_day = month_start(month)
    if today < first_day:
        return 0
    return (min(today, month_end(first_day)) - first_day).days + 1


def spent_at(expense: Record) -> datetime:
    value = expense.get("spent_at")
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    try:
        return _DATETIME.validate_python(value)
    except PydanticValidationError:
        raise ValidationError(
            "Expense has an unreadable spent_at",
            {"id": expense.get("id"), "spent_at": repr(value)},
        ) from None


def _tally(pairs: Iterable[Tuple[Hashable, Decimal]]) -> Dict[Hashable, Tuple[Decimal, int]]:
    """Sum amounts and count entries per key."""
    totals: Dict[Hashable, Tuple[Decimal, int]] = {}
    for key, amount in pairs:
        current, count = totals.get(key, (Decimal("0"), 0))
        totals[key] = (current + amount, count + 1)
    return totals


def _breakdown(totals: Dict[str, Decimal], whole: Decimal) -> List[CategoryBreakdown]:
    """Categories by amount descending, each as a share of ``whole``."""
    return [
        CategoryBreakdown(
            category=category,
            amount=amount,
            percentage=float(amount / whole * 100) if whole > 0 else 0.0,
        )
        for category, amount in sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    ]


class FinanceQueries:
    """Expense and budget operations for a single user at a time."""

    def __init__(self, client: CachedStoreClient):
        self.client = client
        self.logger = get_logger("ledger.finance")

    async def get_expenses(self, user_id: str, start: DateLike, end: DateLike) -> List[Record]:
        """Expenses in the range, newest first."""
        lower, upper = spending_range(start, end)
        rows = await self.client.query(EXPENSES, {
            "eq": {"user_id": user_id},
            "gte": {"spent_at": lower},
            "lte": {"spent_at": upper},
            "order": ["spent_at", False],
        })
        return rows or []

    async def get_budget(self, user_id: str, month: date) -> Optional[Record]:
        rows = await self.client.query(BUDGETS, {
            "eq": {"user_id": user_id, "month": month_start(month)},
        })
        return rows[0] if rows else None

    async def get_expenses_by_category(self, user_id: str, start: DateLike, end: DateLike) -> Dict[str, Decimal]:
        lower, upper = spending_range(start, end)
        rows = await self.client.query(EXPENSES, {
            "eq": {"user_id": user_id},
            "gte": {"spent_at": lower},
            "lte": {"spent_at": upper},
        })
        return sum_by_category(rows or [])

    async def get_budget_history(self, user_id: str, limit: int = DEFAULT_HISTORY_MONTHS) -> List[Record]:
        """Most recent budgets first."""
        rows = await self.client.query(BUDGETS, {
            "eq": {"user_id": user_id},
            "order": ["month", False],
            "limit": limit,
        })
        return rows or []

    async def get_budget_overview(self, user_id: str, month: date) -> BudgetOverview:
        first_day = month_start(month)
        budget = await self.get_budget(user_id, first_day)
        expenses = await self.get_expenses(user_id, first_day, month_end(first_day))

        budget_amount = to_decimal(budget.get("amount")) if budget else Decimal("0")
        totals = sum_by_category(expenses)
        total_spent = sum(totals.values(), Decimal("0"))
        remaining = budget_amount - total_spent
        progress = float(total_spent / budget_amount * 100) if budget_amount > 0 else 0.0

        categories = _breakdown(totals, budget_amount)

        return BudgetOverview(
            month=first_day,
            budget=budget,
            budget_amount=budget_amount,
            total_spent=total_spent,
            remaining=remaining,
            progress=progress,
            over_budget=remaining < 0,
            near_limit=progress > NEAR_LIMIT_PERCENT,
            categories=categories,
        )

    async def get_spending_analytics(self, user_id: str, month: date, today: Optional[date] = None) -> SpendingAnalytics:
        """
        Spending patterns for a month, compared with the month before.

        Both months are read through ``get_expenses`` so the current month
        shares its cache entry with the expense list and budget overview.
        ``avg_daily`` divides by the days elapsed as of ``today``.
        """
        first_day = month_start(month)
        last_day = month_end(first_day)
        expenses = await self.get_expenses(user_id, first_day, last_day)
        previous = previous_month(first_day)
        previous_expenses = await self.get_expenses(user_id, previous, month_end(previous))

        amounts = [to_decimal(expense.get("amount")) for expense in expenses]
        stamps = [spent_at(expense) for expense in expenses]
        total = sum(amounts, Decimal("0"))
        count = len(expenses)
        days = elapsed_days(first_day, today or date.today())
        avg_per_expense = total / count if count else Decimal("0")

        previous_total = sum((to_decimal(expense.get("amount")) for expense in previous_expenses), Decimal("0"))
        trend_change = float((total - previous_total) / previous_total * 100) if previous_total > 0 else 0.0

        by_day = _tally((stamp.date(), amount) for stamp, amount in zip(stamps, amounts))
        by_weekday = _tally((WEEKDAYS[stamp.isoweekday() % 7], amount) for stamp, amount in zip(stamps, amounts))
        by_hour = _tally((stamp.hour, amount) for stamp, amount in zip(stamps, amounts))
        empty = (Decimal("0"), 0)

        daily = []
        for offset in range(last_day.day):
            day = first_day + timedelta(days=offset)
            amount, day_count = by_day.get(day, empty)
            daily.append(DailySpending(day=day, weekday=WEEKDAYS[day.isoweekday() % 7], amount=amount, count=day_count))

        return SpendingAnalytics(
            month=first_day,
            total_amount=total,
            expense_count=count,
            avg_daily=total / days if days else Decimal("0"),
            avg_per_expense=avg_per_expense,
            max_expense=max(amounts) if amounts else None,
            min_expense=min(amounts) if amounts else None,
            previous_total=previous_total,
            trend_change=trend_change,
            categories=_breakdown(sum_by_category(expenses), total),
            daily=daily,
            weekdays=[
                PeriodSpending(label=label, amount=by_weekday.get(label, empty)[0], count=by_weekday.get(label, empty)[1])
                for label in WEEKDAYS
            ],
            hourly=[
                PeriodSpending(label=f"{hour}:00", amount=by_hour[hour][0], count=by_hour[hour][1])
                for hour in sorted(by_hour)
            ],
            large_expenses=[
                expense for expense, amount in zip(expenses, amounts)
                if amount > avg_per_expense * LARGE_EXPENSE_FACTOR
            ],
        )

    async def add_expense(self, user_id: str, expense: ExpenseCreate) -> Optional[Record]:
        payload = {**expense.model_dump(), "user_id": user_id}
        rows = await self.client.mutate(EXPENSES, MutationKind.INSERT, payload)
        self.logger.info("Expense recorded", user_id=user_id, category=expense.category)
        return rows[0] if rows else None

    async def update_expense(self, user_id: str, expense_id: Any, changes: ExpenseUpdate) -> Optional[Record]:
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No fields to update", {"id": expense_id})
        await self._require_expense(user_id, expense_id)
        rows = await self.client.mutate(EXPENSES, MutationKind.UPDATE, {**fields, "id": expense_id})
        return rows[0] if rows else None

    async def delete_expense(self, user_id: str, expense_id: Any) -> None:
        await self._require_expense(user_id, expense_id)
        await self.client.mutate(EXPENSES, MutationKind.DELETE, {"id": expense_id})
        self.logger.info("Expense deleted", user_id=user_id, expense_id=expense_id)

    async def save_budget(self, user_id: str, month: date, amount: Decimal) -> Optional[Record]:
        """Update the month's budget if one exists, otherwise create it."""
        first_day = month_start(month)
        now = datetime.now(timezone.utc)
        existing = await self.get_budget(user_id, first_day)

        if existing:
            rows = await self.client.mutate(BUDGETS, MutationKind.UPDATE, {
                "id": existing["id"],
                "amount": amount,
                "updated_at": now,
            })
        else:
            rows = await self.client.mutate(BUDGETS, MutationKind.INSERT, {
                "user_id": user_id,
                "month": first_day,
                "amount": amount,
                "created_at": now,
                "updated_at": now,
            })
        return rows[0] if rows else None

    async def _require_expense(self, user_id: str, expense_id: Any) -> Record:
        rows = await self.client.query(EXPENSES, {"eq": {"id": expense_id, "user_id": user_id}})
        if not rows:
            raise NotFoundError("Expense not found", {"id": expense_id})
        return rows[0]
