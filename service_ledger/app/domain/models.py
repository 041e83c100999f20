"""
Request and response models for the Ledger Service.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExpenseCreate(BaseModel):
    """New expense submitted by a user."""
    amount: Decimal = Field(gt=0)
    category: str = Field(min_length=1)
    description: str = Field(min_length=1)
    spent_at: datetime


class ExpenseUpdate(BaseModel):
    """Partial expense edit; only the fields that were sent are written."""
    amount: Optional[Decimal] = Field(default=None, gt=0)
    category: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    spent_at: Optional[datetime] = None


class BudgetUpsert(BaseModel):
    """Budget amount for a month."""
    amount: Decimal = Field(ge=0)


class CategoryBreakdown(BaseModel):
    """Spending for one category within a budget month."""
    category: str
    amount: Decimal
    percentage: float


class BudgetOverview(BaseModel):
    """Budget versus actual spending for a month."""
    month: date
    budget: Optional[Dict[str, Any]] = None
    budget_amount: Decimal
    total_spent: Decimal
    remaining: Decimal
    progress: float
    over_budget: bool
    near_limit: bool
    categories: List[CategoryBreakdown] = Field(default_factory=list)


class DailySpending(BaseModel):
    """Spending on one calendar day."""
    day: date
    weekday: str
    amount: Decimal
    count: int


class PeriodSpending(BaseModel):
    """Spending aggregated over a recurring slot (weekday or hour of day)."""
    label: str
    amount: Decimal
    count: int


class SpendingAnalytics(BaseModel):
    """Spending patterns and insights for a month."""
    month: date
    total_amount: Decimal
    expense_count: int
    avg_daily: Decimal
    avg_per_expense: Decimal
    max_expense: Optional[Decimal] = None
    min_expense: Optional[Decimal] = None
    previous_total: Decimal
    trend_change: float
    categories: List[CategoryBreakdown] = Field(default_factory=list)
    daily: List[DailySpending] = Field(default_factory=list)
    weekdays: List[PeriodSpending] = Field(default_factory=list)
    hourly: List[PeriodSpending] = Field(default_factory=list)
    large_expenses: List[Dict[str, Any]] = Field(default_factory=list)
