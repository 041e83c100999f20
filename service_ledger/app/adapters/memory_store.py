"""
Dict-backed store with PostgREST filter semantics, for local runs and tests.
"""

import copy
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from shared.errors import StoreError
from shared.logging import get_logger
from ..caching.fingerprint import ClauseKind, QueryFilter, normalize_value
from .store import FilterLike, Record


class InMemoryStore:
    """In-process implementation of ``RemoteStore``."""

    def __init__(
        self,
        data: Optional[Dict[str, List[Record]]] = None,
        *,
        id_factory: Callable[[], Any] = lambda: str(uuid.uuid4()),
    ):
        self.logger = get_logger("ledger.memory_store")
        self._tables: Dict[str, List[Record]] = {
            name: [dict(row) for row in rows] for name, rows in (data or {}).items()
        }
        self._id_factory = id_factory

    def rows(self, collection: str) -> List[Record]:
        """Copy of every row in a collection."""
        return copy.deepcopy(self._tables.get(collection, []))

    async def select(self, collection: str, query_filter: FilterLike = None) -> List[Record]:
        criteria = QueryFilter.from_mapping(query_filter)
        rows = [row for row in self._tables.get(collection, []) if self._matches(row, criteria)]

        if criteria.order is not None:
            column = criteria.order.column
            try:
                rows.sort(
                    key=lambda row: (row.get(column) is None, _sort_key(row.get(column)) if row.get(column) is not None else 0),
                    reverse=not criteria.order.ascending,
                )
            except (TypeError, ArithmeticError) as exc:
                raise StoreError(
                    "cannot order by column",
                    {"column": column, "error": str(exc)},
                    status_code=400,
                ) from exc
        if criteria.limit is not None:
            rows = rows[: criteria.limit]

        self.logger.debug("Memory store select", collection=collection, rows=len(rows))
        return copy.deepcopy(rows)

    async def insert(self, collection: str, payload: Union[Record, List[Record]]) -> List[Record]:
        records = payload if isinstance(payload, list) else [payload]
        table = self._tables.setdefault(collection, [])
        inserted = []
        for record in records:
            row = dict(record)
            row.setdefault("id", self._id_factory())
            if any(_same_id(existing.get("id"), row["id"]) for existing in table):
                raise StoreError(
                    "duplicate key value violates unique constraint",
                    {"collection": collection, "id": row["id"]},
                    status_code=409,
                )
            table.append(row)
            inserted.append(row)
        return copy.deepcopy(inserted)

    async def update(self, collection: str, payload: Record, record_id: Any) -> List[Record]:
        changes = {key: value for key, value in payload.items() if key != "id"}
        updated = []
        for row in self._tables.get(collection, []):
            if _same_id(row.get("id"), record_id):
                row.update(changes)
                updated.append(row)
        return copy.deepcopy(updated)

    async def delete(self, collection: str, record_id: Any) -> List[Record]:
        table = self._tables.get(collection, [])
        removed = [row for row in table if _same_id(row.get("id"), record_id)]
        self._tables[collection] = [row for row in table if not _same_id(row.get("id"), record_id)]
        return copy.deepcopy(removed)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def _matches(self, row: Record, criteria: QueryFilter) -> bool:
        for kind, column, expected in criteria.predicates():
            actual = row.get(column)
            if expected is None:
                if kind is ClauseKind.EQ and actual is None:
                    continue
                return False
            if actual is None:
                return False

            try:
                left, right = _cast_pair(actual, expected)
                if kind is ClauseKind.EQ and left != right:
                    return False
                if kind is ClauseKind.GTE and not left >= right:
                    return False
                if kind is ClauseKind.LTE and not left <= right:
                    return False
            except (TypeError, ArithmeticError) as exc:
                raise StoreError(
                    "invalid comparison",
                    {"column": column, "value": repr(expected), "error": str(exc)},
                    status_code=400,
                ) from exc
        return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _cast_pair(actual: Any, expected: Any) -> Tuple[Any, Any]:
    """Cast the filter value to the stored value's type, as the backend casts to the column type."""
    if isinstance(actual, bool):
        if isinstance(expected, str) and expected.lower() in ("true", "false"):
            return actual, expected.lower() == "true"
        if isinstance(expected, bool):
            return actual, expected
        raise TypeError(f"invalid input syntax for type boolean: {expected!r}")

    if _is_number(actual):
        if _is_number(expected):
            return Decimal(str(actual)), Decimal(str(expected))
        if isinstance(expected, str):
            try:
                return Decimal(str(actual)), Decimal(expected)
            except InvalidOperation:
                raise TypeError(f"invalid input syntax for type numeric: {expected!r}") from None
        raise TypeError(f"cannot compare number with {type(expected).__name__}")

    left = normalize_value(actual)
    right = normalize_value(expected)
    if isinstance(left, str):
        if isinstance(right, bool):
            return left, "true" if right else "false"
        if _is_number(right):
            return left, str(right)
    return left, right


def _sort_key(value: Any) -> Any:
    if _is_number(value):
        return Decimal(str(value))
    return normalize_value(value)


def _same_id(left: Any, right: Any) -> bool:
    return left is not None and str(left) == str(right)
