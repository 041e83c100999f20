"""
Ledger query caching package.

An in-process TTL cache sits in front of remote store reads. Writes through
``CachedStoreClient.mutate`` drop every cached read of the written
collection. Construct one ``QueryCache`` per process and share it.
"""

from .fingerprint import ClauseKind, OrderClause, QueryFilter, collection_of, make_fingerprint
from .query_cache import CacheEntry, QueryCache
from .cached_client import CachedStoreClient, MutationKind
from .sweeper import ExpirySweeper

__all__ = [
    "CacheEntry",
    "CachedStoreClient",
    "ClauseKind",
    "ExpirySweeper",
    "MutationKind",
    "OrderClause",
    "QueryCache",
    "QueryFilter",
    "collection_of",
    "make_fingerprint",
]
