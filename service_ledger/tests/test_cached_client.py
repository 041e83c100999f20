"""
Unit tests for the cache-fronted store facade.
"""

from unittest.mock import AsyncMock, patch

import pytest

from service_ledger.app.caching.cached_client import CachedStoreClient, MutationKind
from service_ledger.app.caching.fingerprint import make_fingerprint
from service_ledger.app.caching.query_cache import QueryCache
from shared.errors import StoreError, UnsupportedOperationError, ValidationError

USER_1 = {"eq": {"user_id": "user-1"}}
USER_2 = {"eq": {"user_id": "user-2"}}


class TestCachedStoreClient:
    """Test cases for CachedStoreClient backed by the in-memory store."""

    @pytest.fixture
    def cache(self, clock):
        """Isolated cache instance per test."""
        return QueryCache(ttl_seconds=300, clock=clock)

    @pytest.fixture
    def client(self, memory_store, cache):
        """Facade over the seeded store."""
        return CachedStoreClient(memory_store, cache)

    @pytest.mark.asyncio
    async def test_miss_then_hit_uses_one_round_trip(self, client, memory_store):
        """Two immediate identical queries reach the store once."""
        with patch.object(memory_store, "select", new=AsyncMock(wraps=memory_store.select)) as mock_select:
            first = await client.query("expenses", USER_1)
            second = await client.query("expenses", {"eq": {"user_id": "user-1"}})

        assert mock_select.await_count == 1
        assert second == first
        assert {row["id"] for row in first} == {"e1", "e2", "e3", "e4"}

    @pytest.mark.asyncio
    async def test_changing_a_result_does_not_corrupt_later_hits(self, client):
        """Each read gets its own copy of the cached rows."""
        rows = await client.query("budgets", {"eq": {"id": "b1"}})
        rows.append({"id": "bogus"})
        rows[0]["amount"] = 0

        again = await client.query("budgets", {"eq": {"id": "b1"}})

        assert len(again) == 1
        assert again[0]["amount"] == 60

    @pytest.mark.asyncio
    async def test_stale_entry_is_refetched(self, client, memory_store, clock):
        """After the TTL a query goes back to the store and re-caches."""
        with patch.object(memory_store, "select", new=AsyncMock(wraps=memory_store.select)) as mock_select:
            await client.query("budgets", USER_1)
            clock.advance(301)
            await client.query("budgets", USER_1)
            await client.query("budgets", USER_1)

        assert mock_select.await_count == 2

    @pytest.mark.asyncio
    async def test_mutation_invalidates_every_filter_of_collection(self, client, memory_store, cache):
        """An insert drops cached reads for all users of that collection."""
        await client.query("expenses", USER_1)
        await client.query("expenses", USER_2)
        await client.query("budgets", USER_1)

        await client.mutate("expenses", "insert", {"user_id": "user-2", "amount": 5, "category": "Food",
                                                   "spent_at": "2024-03-20T08:00:00"})

        assert make_fingerprint("expenses", USER_1) not in cache
        assert make_fingerprint("expenses", USER_2) not in cache
        assert make_fingerprint("budgets", USER_1) in cache

        with patch.object(memory_store, "select", new=AsyncMock(wraps=memory_store.select)) as mock_select:
            user_2_rows = await client.query("expenses", USER_2)
            await client.query("expenses", USER_1)
            await client.query("budgets", USER_1)

        assert mock_select.await_count == 2
        assert len(user_2_rows) == 2

    @pytest.mark.asyncio
    async def test_read_failure_propagates_and_is_not_cached(self, cache):
        """A store error surfaces unchanged and the next read retries the store."""
        store = AsyncMock()
        error = StoreError("connection reset")
        store.select.side_effect = [error, [{"id": "b1"}]]
        client = CachedStoreClient(store, cache)

        with pytest.raises(StoreError) as exc_info:
            await client.query("budgets", USER_1)
        assert exc_info.value is error
        assert len(cache) == 0

        assert await client.query("budgets", USER_1) == [{"id": "b1"}]
        assert store.select.await_count == 2

    @pytest.mark.asyncio
    async def test_stale_value_never_masks_failure(self, cache, clock):
        """An expired entry is not served when the refresh fails."""
        store = AsyncMock()
        store.select.side_effect = [[{"id": "b1"}], StoreError("timeout")]
        client = CachedStoreClient(store, cache)

        await client.query("budgets", USER_1)
        clock.advance(301)

        with pytest.raises(StoreError):
            await client.query("budgets", USER_1)

    @pytest.mark.asyncio
    async def test_none_result_is_not_cached(self, cache):
        """A null store result is returned but not memoized."""
        store = AsyncMock()
        store.select.return_value = None
        client = CachedStoreClient(store, cache)

        assert await client.query("budgets", USER_1) is None
        assert await client.query("budgets", USER_1) is None
        assert store.select.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_result_is_cached(self, client, memory_store):
        """An empty row set is a valid cached answer."""
        with patch.object(memory_store, "select", new=AsyncMock(wraps=memory_store.select)) as mock_select:
            assert await client.query("budgets", {"eq": {"user_id": "nobody"}}) == []
            assert await client.query("budgets", {"eq": {"user_id": "nobody"}}) == []

        assert mock_select.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_mutation_still_invalidates(self, cache):
        """A rejected write leaves the collection invalidated."""
        store = AsyncMock()
        store.select.return_value = [{"id": "e1"}]
        store.insert.side_effect = StoreError("permission denied", status_code=403)
        client = CachedStoreClient(store, cache)

        await client.query("expenses", USER_1)
        with pytest.raises(StoreError):
            await client.mutate("expenses", MutationKind.INSERT, {"amount": 1})

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_dispatch_update_and_delete_by_id(self, cache):
        """Update and delete are matched by the payload id."""
        store = AsyncMock()
        store.update.return_value = [{"id": "e1", "amount": 20}]
        store.delete.return_value = [{"id": "e1"}]
        client = CachedStoreClient(store, cache)

        updated = await client.mutate("expenses", "update", {"id": "e1", "amount": 20})
        deleted = await client.mutate("expenses", MutationKind.DELETE, {"id": "e1"})

        store.update.assert_awaited_once_with("expenses", {"id": "e1", "amount": 20}, "e1")
        store.delete.assert_awaited_once_with("expenses", "e1")
        assert updated == [{"id": "e1", "amount": 20}]
        assert deleted == [{"id": "e1"}]

    @pytest.mark.asyncio
    async def test_insert_returns_store_result_verbatim(self, cache):
        """Whatever the store reports is handed back."""
        store = AsyncMock()
        sentinel = [{"id": "new", "amount": 3}]
        store.insert.return_value = sentinel
        client = CachedStoreClient(store, cache)

        assert await client.mutate("expenses", "insert", {"amount": 3}) is sentinel

    @pytest.mark.asyncio
    async def test_unsupported_operation_fails_before_store_call(self, cache):
        """Unknown mutation kinds are a caller bug and never reach the store."""
        store = AsyncMock()
        client = CachedStoreClient(store, cache)

        with pytest.raises(UnsupportedOperationError) as exc_info:
            await client.mutate("expenses", "upsert", {"id": "e1"})

        assert exc_info.value.code == "UNSUPPORTED_OPERATION"
        store.insert.assert_not_awaited()
        store.update.assert_not_awaited()
        store.delete.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["update", "delete"])
    async def test_id_required_for_update_and_delete(self, cache, operation):
        """Writes matched by id refuse payloads without one."""
        store = AsyncMock()
        client = CachedStoreClient(store, cache)

        with pytest.raises(ValidationError):
            await client.mutate("expenses", operation, {"amount": 1})

        store.update.assert_not_awaited()
        store.delete.assert_not_awaited()
