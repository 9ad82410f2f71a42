"""
Unit tests for the SQLite log store.

Tests cover:
- Schema creation and persistence across instances
- Query compilation to parameterized SQL
- Metadata round trip
- Error translation
"""

import pytest

from drivesync.changefinder_server.logstore import (
    And,
    Eq,
    Gt,
    In,
    Le,
    LogField,
    LogQuery,
    LogStoreConnectionError,
    Ne,
    Or,
    PathUnder,
    SortKey,
)
from drivesync.changefinder_server.logstore.sqlite import SqliteLogStore, compile_query


class TestCompileQuery:
    """Tests for predicate compilation."""

    def test_values_are_bound_parameters(self):
        """Path-derived values never appear in the SQL text."""
        sql, params = compile_query(
            LogQuery(predicate=PathUnder(LogField.DOC_PATH, ("/a/b'; DROP TABLE x; --",)))
        )

        assert "DROP" not in sql
        assert "/a/b'; DROP TABLE x; --" in params

    def test_full_query_shape(self):
        """Order and limit are compiled after the predicate."""
        sql, params = compile_query(
            LogQuery(
                predicate=And((Gt(LogField.ID, 3), Le(LogField.ID, 9))),
                order=(SortKey.desc(LogField.ID),),
                limit=1,
            )
        )

        assert "WHERE (id > ? AND id <= ?)" in sql
        assert sql.rstrip().endswith("ORDER BY id DESC LIMIT ?")
        assert params == [3, 9, 1]

    def test_empty_in_matches_nothing(self):
        sql, params = compile_query(LogQuery(predicate=In(LogField.DOC_UUID, frozenset())))

        assert "WHERE 0" in sql
        assert params == []


class TestSqliteLogStore:
    """Tests for SqliteLogStore."""

    @pytest.fixture
    async def store(self, data_dir):
        store = SqliteLogStore(f"{data_dir}/audit.db", wal_mode=False)
        await store.connect()
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_requires_connection(self, data_dir):
        """Operations fail before connect()."""
        store = SqliteLogStore(f"{data_dir}/audit.db")

        with pytest.raises(LogStoreConnectionError):
            await store.query(LogQuery())

    @pytest.mark.asyncio
    async def test_append_and_read_back(self, store):
        """Appended entries keep their metadata."""
        entry = await store.append(
            "default",
            "driveSync",
            "rootRegistered",
            doc_path="/ws/alice",
            doc_uuid="uuid-1",
            extended_info={"impactedUserName": "alice"},
            event_date=123,
            principal_name="alice",
        )

        (stored,) = await store.query(LogQuery(predicate=Eq(LogField.ID, entry.id)))

        assert stored == entry
        assert stored.impacted_user_name == "alice"

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, store, data_dir):
        """A second store on the same file sees earlier entries."""
        await store.append("default", "cat", "evt", event_date=1)

        other = SqliteLogStore(f"{data_dir}/audit.db", wal_mode=False)
        await other.connect()

        assert await other.has_entries() is True
        assert (await other.append("default", "cat", "evt")).id == 2

    @pytest.mark.asyncio
    async def test_ne_and_or(self, store):
        """Ne and Or evaluate like their in-memory counterparts."""
        await store.append("default", "driveSync", "rootRegistered", event_date=1)
        await store.append("default", "driveSync", "rootUnregistered", event_date=2)
        await store.append("default", "doc", "documentCreated", event_date=3)

        results = await store.query(
            LogQuery(
                predicate=Or(
                    (
                        And((Eq(LogField.CATEGORY, "driveSync"), Ne(LogField.EVENT_ID, "rootUnregistered"))),
                        Eq(LogField.EVENT_ID, "documentCreated"),
                    )
                ),
                order=(SortKey.asc(LogField.ID),),
            )
        )

        assert [e.id for e in results] == [1, 3]

    @pytest.mark.asyncio
    async def test_unreadable_database_is_transient(self, data_dir):
        """A database path that can't be opened raises a transient error."""
        store = SqliteLogStore(f"{data_dir}/audit.db", wal_mode=False)
        await store.connect()
        store.db_path = store.db_path.parent / "missing-dir" / "audit.db"

        with pytest.raises(LogStoreConnectionError):
            await store.has_entries()
