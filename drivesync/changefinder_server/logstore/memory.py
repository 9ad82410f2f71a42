"""
In-memory log store implementation for testing.

This module provides a simple in-memory audit log backend for:
- Unit tests
- Integration tests
- Local development without a database

Invariants:
    - All data is lost on process exit
    - Evaluates the same predicate trees with the same semantics as SQLite
    - Safe for concurrent coroutines (appends and reads share one lock)

How to change safely:
    - Keep interface compatible with LogStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional
import logging

from .base import (
    LogEntry,
    LogStoreConnectionError,
    LogStoreError,
)
from .query import LogQuery

logger = logging.getLogger(__name__)


class InMemoryLogStore:
    """In-memory implementation of LogStore for testing.

    Entries live in a list ordered by id. Queries take a snapshot of the
    list under the lock, then filter, sort and limit outside of it.

    Example:
        >>> store = InMemoryLogStore()
        >>> await store.connect()
        >>> await store.append("default", "eventDocumentCategory", "documentCreated",
        ...                    doc_path="/ws/doc")
    """

    def __init__(self) -> None:
        self._entries: List[LogEntry] = []
        self._next_id = 1
        self._connected = False
        self._lock = asyncio.Lock()
        self._pending_failure: Optional[Exception] = None

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryLogStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._entries.clear()
        self._next_id = 1
        logger.debug("InMemoryLogStore closed")

    async def append(
        self,
        repository_id: str,
        category: str,
        event_id: str,
        doc_path: Optional[str] = None,
        doc_uuid: Optional[str] = None,
        extended_info: Optional[Dict[str, Any]] = None,
        event_date: Optional[int] = None,
        principal_name: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> LogEntry:
        """Append an entry with the next id."""
        self._check_ready()

        async with self._lock:
            entry = LogEntry(
                id=self._next_id,
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
            self._entries.append(entry)
            self._next_id += 1

        logger.debug(
            "Entry appended to in-memory log",
            extra={"log_id": entry.id, "repository_id": repository_id, "event_id": event_id},
        )
        return entry

    async def query(self, query: LogQuery) -> List[LogEntry]:
        """Filter, sort and limit a snapshot of the log."""
        self._check_ready()

        async with self._lock:
            snapshot = list(self._entries)

        results = [entry for entry in snapshot if query.matches(entry)]

        # Stable sorts applied from the least significant key
        for key in reversed(query.order):
            results.sort(key=key.field.value_of, reverse=key.descending)

        if query.limit is not None:
            results = results[: query.limit]
        return results

    async def has_entries(self) -> bool:
        self._check_ready()
        return bool(self._entries)

    def _check_ready(self) -> None:
        if self._pending_failure is not None:
            failure, self._pending_failure = self._pending_failure, None
            raise failure
        if not self._connected:
            raise LogStoreConnectionError("Not connected")

    # Testing helpers

    def get_all_entries(self) -> List[LogEntry]:
        """Get all entries in id order (testing helper)."""
        return list(self._entries)

    def get_entry_count(self) -> int:
        """Get total entry count (testing helper)."""
        return len(self._entries)

    def inject_failure(self, exception: LogStoreError) -> None:
        """Make the next store operation raise this exception (testing helper)."""
        self._pending_failure = exception
