"""
Unit tests for the change query executor.

Tests cover:
- Half-open id window
- Repository scoping
- Ordering and tie-break on equal timestamps
- Truncation
- Parameter validation and error propagation
"""

import pytest

from drivesync.changefinder_server.changes.executor import ChangeQueryExecutor
from drivesync.changefinder_server.changes.types import Principal
from drivesync.changefinder_server.config import ChangeFinderConfig, ConfigurationError
from drivesync.changefinder_server.logstore import InMemoryLogStore, TransientStoreError

DOC = "eventDocumentCategory"
ALICE = Principal(name="alice", repository_id="R")


class TestChangeQueryExecutor:
    """Tests for ChangeQueryExecutor."""

    @pytest.fixture
    def executor(self, log_store):
        return ChangeQueryExecutor(log_store, ChangeFinderConfig())

    @pytest.mark.asyncio
    async def test_half_open_window(self, log_store, executor):
        for i in range(1, 6):
            await log_store.append("R", DOC, "documentModified", doc_path=f"/x/{i}", event_date=i)

        entries = await executor.query_changes(ALICE, {"/x"}, set(), 1, 4, limit=100)

        assert sorted(e.id for e in entries) == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_scoped_to_principal_repository(self, log_store, executor):
        await log_store.append("R", DOC, "documentModified", doc_path="/x/a", event_date=1)
        await log_store.append("S", DOC, "documentModified", doc_path="/x/b", event_date=1)

        entries = await executor.query_changes(ALICE, {"/x"}, set(), -1, 10, limit=100)

        assert [e.repository_id for e in entries] == ["R"]

    @pytest.mark.asyncio
    async def test_orders_by_date_desc_then_id_desc(self, log_store, executor):
        await log_store.append("R", DOC, "documentModified", doc_path="/x/a", event_date=10)
        await log_store.append("R", DOC, "documentModified", doc_path="/x/b", event_date=30)
        await log_store.append("R", DOC, "documentModified", doc_path="/x/c", event_date=20)
        await log_store.append("R", DOC, "documentModified", doc_path="/x/d", event_date=20)

        entries = await executor.query_changes(ALICE, {"/x"}, set(), -1, 10, limit=100)

        assert [e.id for e in entries] == [2, 4, 3, 1]

    @pytest.mark.asyncio
    async def test_truncates_to_limit(self, log_store, executor):
        for i in range(1, 6):
            await log_store.append("R", DOC, "documentModified", doc_path=f"/x/{i}", event_date=100)

        entries = await executor.query_changes(ALICE, {"/x"}, set(), -1, 10, limit=2)

        assert [e.id for e in entries] == [5, 4]

    @pytest.mark.asyncio
    async def test_empty_result_is_not_an_error(self, log_store, executor):
        entries = await executor.query_changes(ALICE, {"/x"}, set(), -1, 10, limit=10)

        assert entries == []

    @pytest.mark.asyncio
    async def test_invalid_limit(self, executor):
        with pytest.raises(ConfigurationError):
            await executor.query_changes(ALICE, {"/x"}, set(), -1, 10, limit=0)

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self):
        store = InMemoryLogStore()
        await store.connect()
        store.inject_failure(TransientStoreError("timeout"))
        executor = ChangeQueryExecutor(store, ChangeFinderConfig())

        with pytest.raises(TransientStoreError):
            await executor.query_changes(ALICE, {"/x"}, set(), -1, 10, limit=10)
