"""
SQLite audit log store.

This module persists the audit log in a single SQLite database and
compiles structured LogQuery trees into parameterized SQL.

Table schema:
    log_entries:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - repository_id TEXT
        - event_date INTEGER (Unix ms)
        - category TEXT
        - event_id TEXT
        - doc_path TEXT
        - doc_uuid TEXT
        - extended_info_json TEXT (JSON object)
        - principal_name TEXT
        - comment TEXT

Invariants:
    - AUTOINCREMENT ids are strictly increasing and never reused
    - Every value reaches SQLite as a bound parameter, never as SQL text
    - Compiled predicates have the same semantics as query.py matches()

How to change safely:
    - Schema migrations must be backward compatible
    - New predicate nodes need a branch in _compile_predicate
    - Keep indexes aligned with the change finder's range scans
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .base import (
    LogEntry,
    LogStoreConnectionError,
    LogStoreError,
    LogStoreTimeoutError,
)
from .query import (
    And,
    Eq,
    Gt,
    In,
    Le,
    LogField,
    LogQuery,
    Lt,
    Ne,
    Or,
    PathUnder,
    Predicate,
)

logger = logging.getLogger(__name__)

_COLUMNS = {
    LogField.ID: "id",
    LogField.REPOSITORY_ID: "repository_id",
    LogField.EVENT_DATE: "event_date",
    LogField.CATEGORY: "category",
    LogField.EVENT_ID: "event_id",
    LogField.DOC_PATH: "doc_path",
    LogField.DOC_UUID: "doc_uuid",
}

_SELECT = """
    SELECT id, repository_id, event_date, category, event_id, doc_path,
           doc_uuid, extended_info_json, principal_name, comment
    FROM log_entries
"""


def _compile_predicate(predicate: Predicate, params: list[Any]) -> str:
    """Compile a predicate tree to a SQL boolean expression.

    Bound values are appended to params in placeholder order.
    """
    if isinstance(predicate, Eq):
        params.append(predicate.value)
        return f"{_COLUMNS[predicate.field]} IS ?"
    if isinstance(predicate, Ne):
        params.append(predicate.value)
        return f"{_COLUMNS[predicate.field]} IS NOT ?"
    if isinstance(predicate, In):
        if not predicate.values:
            return "0"
        values = sorted(predicate.values)
        params.extend(values)
        placeholders = ", ".join("?" for _ in values)
        return f"{_COLUMNS[predicate.field]} IN ({placeholders})"
    if isinstance(predicate, Lt):
        params.append(predicate.value)
        return f"{_COLUMNS[predicate.field]} < ?"
    if isinstance(predicate, Gt):
        params.append(predicate.value)
        return f"{_COLUMNS[predicate.field]} > ?"
    if isinstance(predicate, Le):
        params.append(predicate.value)
        return f"{_COLUMNS[predicate.field]} <= ?"
    if isinstance(predicate, PathUnder):
        if not predicate.roots:
            return "0"
        column = _COLUMNS[predicate.field]
        clauses = []
        for root in predicate.roots:
            prefix = root if root.endswith("/") else root + "/"
            params.extend([root, len(prefix), prefix])
            clauses.append(f"({column} = ? OR substr({column}, 1, ?) = ?)")
        return "(" + " OR ".join(clauses) + ")"
    if isinstance(predicate, And):
        return "(" + " AND ".join(_compile_predicate(op, params) for op in predicate.operands) + ")"
    if isinstance(predicate, Or):
        return "(" + " OR ".join(_compile_predicate(op, params) for op in predicate.operands) + ")"
    raise TypeError(f"Unsupported predicate: {predicate!r}")


def compile_query(query: LogQuery) -> tuple[str, list[Any]]:
    """Compile a LogQuery to a SELECT statement and its parameters."""
    params: list[Any] = []
    sql = _SELECT
    if query.predicate is not None:
        sql += " WHERE " + _compile_predicate(query.predicate, params)
    if query.order:
        sql += " ORDER BY " + ", ".join(
            f"{_COLUMNS[key.field]} {'DESC' if key.descending else 'ASC'}" for key in query.order
        )
    if query.limit is not None:
        sql += " LIMIT ?"
        params.append(query.limit)
    return sql, params


class SqliteLogStore:
    """SQLite-backed audit log store.

    Thread safety:
        Each operation opens its own connection and runs in the default
        executor, so the event loop is never blocked by SQLite I/O.
        SQLite handles concurrent readers via WAL mode.

    Example:
        >>> store = SqliteLogStore("/var/lib/drivesync/audit.db")
        >>> await store.connect()
        >>> await store.has_entries()
        False
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, translating driver errors."""
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise LogStoreConnectionError(f"Cannot open audit log {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                raise LogStoreTimeoutError(f"Audit log busy: {e}") from e
            raise LogStoreConnectionError(f"Audit log unavailable: {e}") from e
        except sqlite3.DatabaseError as e:
            raise LogStoreError(f"Audit log error: {e}") from e
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS log_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                repository_id TEXT NOT NULL,
                event_date INTEGER NOT NULL,
                category TEXT NOT NULL,
                event_id TEXT NOT NULL,
                doc_path TEXT,
                doc_uuid TEXT,
                extended_info_json TEXT NOT NULL DEFAULT '{}',
                principal_name TEXT,
                comment TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_log_repo_id
                ON log_entries(repository_id, id);
            CREATE INDEX IF NOT EXISTS idx_log_repo_date
                ON log_entries(repository_id, event_date DESC, id DESC);

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    async def connect(self) -> None:
        """Create the database and schema if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        await self._run(self._connect_sync)
        self._connected = True
        logger.info(f"SQLite audit log ready: {self.db_path}")

    def _connect_sync(self) -> None:
        with self._get_connection() as conn:
            self._create_schema(conn)

    async def close(self) -> None:
        """Mark the store closed (connections are per-operation)."""
        self._connected = False

    async def append(
        self,
        repository_id: str,
        category: str,
        event_id: str,
        doc_path: str | None = None,
        doc_uuid: str | None = None,
        extended_info: dict[str, Any] | None = None,
        event_date: int | None = None,
        principal_name: str | None = None,
        comment: str | None = None,
    ) -> LogEntry:
        """Append an entry; SQLite assigns the id."""
        self._check_connected()
        entry = LogEntry(
            id=0,
            repository_id=repository_id,
            event_date=event_date if event_date is not None else int(time.time() * 1000),
            category=category,
            event_id=event_id,
            doc_path=doc_path,
            doc_uuid=doc_uuid,
            extended_info=dict(extended_info or {}),
            principal_name=principal_name,
            comment=comment,
        )
        log_id = await self._run(self._append_sync, entry)
        stored = LogEntry.from_dict({**entry.to_dict(), "id": log_id})
        logger.debug(
            "Entry appended to SQLite log",
            extra={"log_id": log_id, "repository_id": repository_id, "event_id": event_id},
        )
        return stored

    def _append_sync(self, entry: LogEntry) -> int:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO log_entries (repository_id, event_date, category, event_id,
                                             doc_path, doc_uuid, extended_info_json,
                                             principal_name, comment)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.repository_id,
                        entry.event_date,
                        entry.category,
                        entry.event_id,
                        entry.doc_path,
                        entry.doc_uuid,
                        json.dumps(dict(entry.extended_info)),
                        entry.principal_name,
                        entry.comment,
                    ),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
            return cursor.lastrowid

    async def query(self, query: LogQuery) -> list[LogEntry]:
        """Run a compiled query."""
        self._check_connected()
        sql, params = compile_query(query)
        return await self._run(self._query_sync, sql, params)

    def _query_sync(self, sql: str, params: list[Any]) -> list[LogEntry]:
        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_entry(row) for row in rows]

    async def has_entries(self) -> bool:
        self._check_connected()
        return await self._run(self._has_entries_sync)

    def _has_entries_sync(self) -> bool:
        with self._get_connection() as conn:
            return conn.execute("SELECT 1 FROM log_entries LIMIT 1").fetchone() is not None

    def _check_connected(self) -> None:
        if not self._connected:
            raise LogStoreConnectionError("Not connected")

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> LogEntry:
        return LogEntry(
            id=row["id"],
            repository_id=row["repository_id"],
            event_date=row["event_date"],
            category=row["category"],
            event_id=row["event_id"],
            doc_path=row["doc_path"],
            doc_uuid=row["doc_uuid"],
            extended_info=json.loads(row["extended_info_json"] or "{}"),
            principal_name=row["principal_name"],
            comment=row["comment"],
        )
