"""
Adapters package for the Ledger Service.

Store clients that satisfy the ``RemoteStore`` contract the query cache
consumes. Adapters map every backend or network failure to
``shared.errors.StoreError`` and keep retries to idempotent reads.
"""

from typing import Optional, TYPE_CHECKING

from .store import RemoteStore, Record
from .memory_store import InMemoryStore
from .postgrest_client import PostgrestStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig
    from shared.metrics import MetricsCollector


def create_store(config: "BaseConfig", metrics: Optional["MetricsCollector"] = None) -> RemoteStore:
    """Build the store selected by ``config.store_backend``."""
    if config.store_backend == "memory":
        return InMemoryStore()
    return PostgrestStore(
        config.store_url,
        config.store_api_key,
        timeout=config.store_timeout_seconds,
        read_attempts=config.store_read_attempts,
        metrics=metrics,
    )


__all__ = [
    "InMemoryStore",
    "PostgrestStore",
    "Record",
    "RemoteStore",
    "create_store",
]
