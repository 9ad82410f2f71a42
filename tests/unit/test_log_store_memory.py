"""
Unit tests for in-memory log store implementation.

Tests cover:
- Connection lifecycle
- Id assignment
- Filtering, sorting and limiting
- Failure injection
"""

import pytest

from drivesync.changefinder_server.logstore import (
    Eq,
    LogField,
    LogQuery,
    LogStoreConnectionError,
    SortKey,
    TransientStoreError,
)
from drivesync.changefinder_server.logstore.memory import InMemoryLogStore


class TestInMemoryLogStore:
    """Tests for InMemoryLogStore."""

    @pytest.fixture
    def store(self):
        """Create a fresh log store."""
        return InMemoryLogStore()

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, store):
        """Test connection lifecycle."""
        assert not store.is_connected

        await store.connect()
        assert store.is_connected

        await store.close()
        assert not store.is_connected

    @pytest.mark.asyncio
    async def test_append_requires_connection(self, store):
        """Append fails if not connected."""
        with pytest.raises(LogStoreConnectionError):
            await store.append("default", "cat", "evt")

    @pytest.mark.asyncio
    async def test_append_assigns_increasing_ids(self, store):
        """Sequential appends get strictly increasing ids."""
        await store.connect()

        first = await store.append("default", "cat", "evt", event_date=10)
        second = await store.append("default", "cat", "evt", event_date=5)

        assert first.id == 1
        assert second.id == 2

    @pytest.mark.asyncio
    async def test_append_defaults_event_date(self, store):
        """Event date defaults to now."""
        await store.connect()

        entry = await store.append("default", "cat", "evt")

        assert entry.event_date > 0

    @pytest.mark.asyncio
    async def test_extended_info_is_read_only(self, store):
        """Stored metadata can't be changed through a returned entry."""
        await store.connect()
        info = {"impactedUserName": "alice"}

        entry = await store.append("default", "cat", "evt", extended_info=info)
        info["impactedUserName"] = "bob"

        with pytest.raises(TypeError):
            entry.extended_info["impactedUserName"] = "bob"
        stored = (await store.query(LogQuery()))[0]
        assert stored.impacted_user_name == "alice"
        assert stored.to_dict()["extended_info"] == {"impactedUserName": "alice"}

    @pytest.mark.asyncio
    async def test_query_filters_and_sorts(self, store):
        """Query applies predicate, multi-key sort and limit."""
        await store.connect()
        await store.append("b", "cat", "evt", event_date=1)
        await store.append("a", "cat", "evt", event_date=1)
        await store.append("a", "cat", "evt", event_date=2)
        await store.append("a", "other", "evt", event_date=3)

        results = await store.query(
            LogQuery(
                predicate=Eq(LogField.CATEGORY, "cat"),
                order=(
                    SortKey.asc(LogField.REPOSITORY_ID),
                    SortKey.desc(LogField.EVENT_DATE),
                    SortKey.desc(LogField.ID),
                ),
                limit=2,
            )
        )

        assert [e.id for e in results] == [3, 2]

    @pytest.mark.asyncio
    async def test_has_entries(self, store):
        """Existence probe ignores any filter."""
        await store.connect()
        assert await store.has_entries() is False

        await store.append("default", "cat", "evt")
        assert await store.has_entries() is True

    @pytest.mark.asyncio
    async def test_inject_failure(self, store):
        """Injected failure is raised once by the next operation."""
        await store.connect()
        store.inject_failure(TransientStoreError("down"))

        with pytest.raises(TransientStoreError):
            await store.query(LogQuery())

        assert await store.query(LogQuery()) == []

    @pytest.mark.asyncio
    async def test_testing_helpers(self, store):
        """Testing helpers expose stored entries."""
        await store.connect()
        assert store.get_entry_count() == 0

        await store.append("default", "cat", "evt")
        await store.append("default", "cat", "evt")

        assert store.get_entry_count() == 2
        assert [e.id for e in store.get_all_entries()] == [1, 2]

    @pytest.mark.asyncio
    async def test_close_clears_data(self, store):
        """Close clears all data."""
        await store.connect()
        await store.append("default", "cat", "evt")

        await store.close()
        await store.connect()

        assert store.get_entry_count() == 0
        assert (await store.append("default", "cat", "evt")).id == 1
