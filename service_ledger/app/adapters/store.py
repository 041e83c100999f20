"""
Remote store contract consumed by the query cache.
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

from ..caching.fingerprint import QueryFilter

Record = Dict[str, Any]
FilterLike = Union[QueryFilter, Mapping[str, Any], None]


@runtime_checkable
class RemoteStore(Protocol):
    """
    Read-by-filter / write-by-id capability of the backing data service.

    Implementations raise ``shared.errors.StoreError`` on any backend,
    network or auth failure and never return a partial result instead.
    """

    async def select(self, collection: str, query_filter: FilterLike = None) -> Optional[List[Record]]:
        ...

    async def insert(self, collection: str, payload: Union[Record, List[Record]]) -> List[Record]:
        ...

    async def update(self, collection: str, payload: Record, record_id: Any) -> List[Record]:
        ...

    async def delete(self, collection: str, record_id: Any) -> List[Record]:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...
