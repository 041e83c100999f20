"""
Cache-fronted read/write facade over the remote store.
"""

from enum import Enum
from typing import Any, List, Optional, TYPE_CHECKING, Union

from shared.errors import UnsupportedOperationError, ValidationError
from shared.logging import get_logger
from .fingerprint import QueryFilter, make_fingerprint
from .query_cache import QueryCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..adapters.store import FilterLike, Record, RemoteStore


class MutationKind(str, Enum):
    """Write operations the facade forwards to the store."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class CachedStoreClient:
    """
    The only entry point application code should use for store access.

    Reads are served from ``cache`` while fresh. Writes invalidate the whole
    collection before they are sent, so a failed write still costs the next
    read a round-trip. Store errors propagate unchanged and are never cached.
    """

    def __init__(self, store: "RemoteStore", cache: QueryCache):
        self.store = store
        self.cache = cache
        self.logger = get_logger("ledger.cached_client")

    async def query(self, collection: str, query_filter: "FilterLike" = None) -> Optional[Any]:
        """Read ``collection`` filtered by ``query_filter``, from cache when fresh."""
        criteria = QueryFilter.from_mapping(query_filter)
        fingerprint = make_fingerprint(collection, criteria)

        cached = self.cache.get(fingerprint)
        if cached is not None:
            self.logger.debug("Query cache hit", collection=collection, fingerprint=fingerprint)
            return cached

        self.logger.debug("Query cache miss", collection=collection, fingerprint=fingerprint)
        result = await self.store.select(collection, criteria)

        if result is not None:
            self.cache.set(fingerprint, result, collection=collection)
        return result

    async def mutate(
        self,
        collection: str,
        operation: Union[MutationKind, str],
        payload: Union["Record", List["Record"]],
    ) -> Any:
        """Invalidate ``collection`` then forward the write; returns the store's result."""
        self.cache.invalidate(collection)

        try:
            kind = MutationKind(operation)
        except ValueError:
            raise UnsupportedOperationError(operation) from None

        if kind is MutationKind.INSERT:
            return await self.store.insert(collection, payload)

        record_id = payload.get("id") if isinstance(payload, dict) else None
        if record_id is None:
            raise ValidationError(
                f"{kind.value} requires an 'id' in the payload",
                {"collection": collection, "operation": kind.value},
            )

        if kind is MutationKind.UPDATE:
            return await self.store.update(collection, payload, record_id)
        return await self.store.delete(collection, record_id)
