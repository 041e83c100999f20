"""
Async PostgREST (Supabase REST) client implementing the remote store contract.
"""

from __future__ import annotations

from contextlib import nullcontext
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING, Union

import httpx

from shared.errors import StoreError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception
from ..caching.fingerprint import ClauseKind, QueryFilter, normalize_value
from .store import FilterLike, Record

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


OPERATORS = {
    ClauseKind.EQ: "eq",
    ClauseKind.GTE: "gte",
    ClauseKind.LTE: "lte",
}


def encode_value(value: Any) -> str:
    """Render a filter value the way PostgREST expects it in a query string."""
    value = normalize_value(value)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_select_params(query_filter: FilterLike = None) -> List[Tuple[str, str]]:
    """
    Translate a filter into PostgREST query parameters.

    A list of pairs is returned because the same column may carry both a
    lower and an upper bound (``spent_at=gte.X&spent_at=lte.Y``).
    """
    criteria = QueryFilter.from_mapping(query_filter)
    params: List[Tuple[str, str]] = [("select", "*")]

    for kind, column, value in criteria.predicates():
        if kind is ClauseKind.EQ and value is None:
            params.append((column, "is.null"))
        else:
            params.append((column, f"{OPERATORS[kind]}.{encode_value(value)}"))

    if criteria.order is not None:
        direction = "asc" if criteria.order.ascending else "desc"
        params.append(("order", f"{criteria.order.column}.{direction}"))
    if criteria.limit is not None:
        params.append(("limit", str(criteria.limit)))

    return params


class PostgrestStore:
    """Remote store backed by a PostgREST endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = 10.0,
        read_attempts: int = 3,
        rest_path: str = "/rest/v1",
        metrics: Optional["MetricsCollector"] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.logger = get_logger("ledger.postgrest")
        self.metrics = metrics
        self.retry_config = RetryConfig(max_attempts=read_attempts, base_delay=0.2, max_delay=2.0)

        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}{rest_path}",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def select(self, collection: str, query_filter: FilterLike = None) -> Optional[List[Record]]:
        params = build_select_params(query_filter)
        return await self._request("select", "GET", collection, params=params, retry=True)

    async def insert(self, collection: str, payload: Union[Record, List[Record]]) -> List[Record]:
        return await self._request("insert", "POST", collection, payload=payload)

    async def update(self, collection: str, payload: Record, record_id: Any) -> List[Record]:
        params = [("id", f"eq.{encode_value(record_id)}")]
        return await self._request("update", "PATCH", collection, params=params, payload=payload)

    async def delete(self, collection: str, record_id: Any) -> List[Record]:
        params = [("id", f"eq.{encode_value(record_id)}")]
        return await self._request("delete", "DELETE", collection, params=params)

    async def ping(self) -> bool:
        """Return True when the REST endpoint answers."""
        try:
            response = await self._client.get("/")
        except httpx.HTTPError as exc:
            self.logger.warning("Store ping failed", error=str(exc))
            return False
        return response.status_code < 500

    async def _request(
        self,
        operation: str,
        method: str,
        collection: str,
        *,
        params: Optional[List[Tuple[str, str]]] = None,
        payload: Any = None,
        retry: bool = False,
    ) -> Any:
        """Send one store request; any failure surfaces as StoreError."""
        headers: Dict[str, str] = {}
        if method != "GET":
            headers["Prefer"] = "return=representation"

        async def _send() -> httpx.Response:
            return await self._client.request(
                method,
                f"/{collection}",
                params=params,
                json=normalize_value(payload) if payload is not None else None,
                headers=headers,
            )

        send = retry_on_exception((httpx.TransportError,), self.retry_config)(_send) if retry else _send
        details: Dict[str, Any] = {"collection": collection, "operation": operation}
        timer = (
            self.metrics.time_operation("store_request_duration_seconds", operation=operation)
            if self.metrics else nullcontext()
        )

        try:
            with timer:
                response = await send()
        except RetryError as exc:
            self._record(operation, "error")
            self.logger.error("Store request failed", attempts=exc.attempts, error=str(exc.last_exception), **details)
            raise StoreError(str(exc.last_exception), {**details, "attempts": exc.attempts}) from exc
        except httpx.HTTPError as exc:
            self._record(operation, "error")
            self.logger.error("Store request failed", error=str(exc), **details)
            raise StoreError(str(exc), details) from exc

        if response.is_error:
            self._record(operation, "error")
            body = self._error_body(response)
            self.logger.error(
                "Store request rejected",
                status_code=response.status_code,
                response=body,
                **details
            )
            raise StoreError(
                body.get("message") or f"Unexpected status {response.status_code}",
                {**details, "body": body},
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            self._record(operation, "ok")
            return []

        try:
            body = response.json()
        except ValueError as exc:
            self._record(operation, "error")
            self.logger.error(
                "Store response is not JSON",
                status_code=response.status_code,
                content_type=response.headers.get("content-type"),
                **details
            )
            raise StoreError(
                "Store returned a non-JSON response",
                {
                    **details,
                    "response_status": response.status_code,
                    "content_type": response.headers.get("content-type"),
                },
            ) from exc

        self._record(operation, "ok")
        return body

    def _record(self, operation: str, status: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("store_requests_total", operation=operation, status=status)

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict[str, Any]:
        """PostgREST errors are JSON objects; fall back to raw text otherwise."""
        try:
            body = response.json()
        except ValueError:
            return {"message": response.text}
        return body if isinstance(body, dict) else {"message": str(body)}
