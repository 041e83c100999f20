"""
Query filters and cache fingerprints.

A fingerprint is ``"<collection>:<canonical filter JSON>"``. Canonical JSON
sorts every key, so two filters built in a different order share a key.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union
from uuid import UUID

from shared.errors import ValidationError

KEY_SEPARATOR = ":"


class ClauseKind(str, Enum):
    """Filter clause kinds understood by the cache and the store adapters."""
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"
    ORDER = "order"
    LIMIT = "limit"


PREDICATE_KINDS = (ClauseKind.EQ, ClauseKind.GTE, ClauseKind.LTE)


@dataclass(frozen=True)
class OrderClause:
    """Single-column ordering."""
    column: str
    ascending: bool = True

    @classmethod
    def coerce(cls, value: Any) -> "OrderClause":
        if isinstance(value, OrderClause):
            return value
        if isinstance(value, str):
            return cls(value)
        if isinstance(value, Mapping) and "column" in value:
            column, ascending = value["column"], value.get("ascending", True)
        elif isinstance(value, (list, tuple)) and 1 <= len(value) <= 2:
            column = value[0]
            ascending = value[1] if len(value) == 2 else True
        else:
            raise ValidationError("Invalid order clause", {"order": repr(value)})

        if not isinstance(ascending, bool):
            raise ValidationError("Order direction must be a boolean", {"ascending": repr(ascending)})
        return cls(str(column), ascending)


@dataclass(frozen=True)
class QueryFilter:
    """Structured filter description for a collection read."""

    eq: Dict[str, Any] = field(default_factory=dict)
    gte: Dict[str, Any] = field(default_factory=dict)
    lte: Dict[str, Any] = field(default_factory=dict)
    order: Optional[OrderClause] = None
    limit: Optional[int] = None

    def __post_init__(self):
        if self.limit is not None and (isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1):
            raise ValidationError("limit must be a positive integer", {"limit": repr(self.limit)})

    @classmethod
    def from_mapping(cls, mapping: Union["QueryFilter", Mapping[str, Any], None]) -> "QueryFilter":
        """Build a filter from the loose ``{"eq": {...}, "order": [col, asc], ...}`` form."""
        if mapping is None:
            return cls()
        if isinstance(mapping, QueryFilter):
            return mapping

        known = {kind.value for kind in ClauseKind}
        unknown = sorted(str(key) for key in mapping if key not in known)
        if unknown:
            raise ValidationError("Unknown filter clause", {"clauses": unknown})

        predicates = {}
        for kind in PREDICATE_KINDS:
            clause = mapping.get(kind.value) or {}
            if not isinstance(clause, Mapping):
                raise ValidationError(f"{kind.value} clause must be a mapping", {kind.value: repr(clause)})
            predicates[kind.value] = dict(clause)

        order = mapping.get(ClauseKind.ORDER.value)
        return cls(
            order=OrderClause.coerce(order) if order is not None else None,
            limit=mapping.get(ClauseKind.LIMIT.value),
            **predicates,
        )

    def predicates(self) -> Iterator[Tuple[ClauseKind, str, Any]]:
        """Yield ``(kind, column, value)`` in canonical order."""
        for kind in PREDICATE_KINDS:
            clause = getattr(self, kind.value)
            for column in sorted(clause):
                yield kind, column, clause[column]

    def canonical(self) -> Dict[str, Any]:
        """JSON-ready form with sorted keys and normalized values; empty clauses are dropped."""
        result: Dict[str, Any] = {}
        for kind in PREDICATE_KINDS:
            clause = getattr(self, kind.value)
            if clause:
                result[kind.value] = {column: normalize_value(clause[column]) for column in sorted(clause)}
        if self.order is not None:
            result[ClauseKind.ORDER.value] = [self.order.column, self.order.ascending]
        if self.limit is not None:
            result[ClauseKind.LIMIT.value] = self.limit
        return result


def normalize_value(value: Any) -> Any:
    """Reduce filter values to JSON primitives the same way the store adapters encode them."""
    if isinstance(value, Enum):
        return normalize_value(value.value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [normalize_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((normalize_value(item) for item in value), key=repr)
    if isinstance(value, Mapping):
        return {str(key): normalize_value(value[key]) for key in sorted(value, key=str)}
    return value


def make_fingerprint(collection: str, query_filter: Union[QueryFilter, Mapping[str, Any], None] = None) -> str:
    """Derive the cache key for a collection read."""
    canonical = QueryFilter.from_mapping(query_filter).canonical()
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return f"{collection}{KEY_SEPARATOR}{encoded}"


def collection_of(fingerprint: str) -> str:
    """Return the collection a fingerprint was derived from."""
    return fingerprint.partition(KEY_SEPARATOR)[0]
