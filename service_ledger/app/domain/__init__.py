"""
Finance domain helpers for the Ledger Service.

Thin wrappers that turn expense and budget questions into cached store
reads and writes, then aggregate the fetched rows.
"""

from .finance import FinanceQueries, month_end, month_start, parse_month, sum_by_category

__all__ = [
    "FinanceQueries",
    "month_end",
    "month_start",
    "parse_month",
    "sum_by_category",
]
