"""
Bounded change scans over the audit log.

A scan selects the entries of one repository in the half-open id window
(lower_bound, upper_bound] that match the root/collection filter, sorted
by repository ascending, event date descending and id descending.

Invariants:
    - Consecutive windows sharing a bound never overlap and never leave a gap
    - The result is truncated to the limit, never an error
    - An empty result means the scan succeeded and nothing matched;
      store failures propagate as TransientStoreError

How to change safely:
    - Keep the sort stable under equal timestamps (id is the tie-break)
    - Changes to the window semantics break persisted client cursors
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..config import ChangeFinderConfig, ConfigurationError
from ..logstore import (
    Eq,
    Gt,
    Le,
    LogEntry,
    LogField,
    LogQuery,
    LogStore,
    SortKey,
    all_of,
)
from .filters import SynchronizationRoots, build_filter
from .types import ChangeQuery, Principal

logger = logging.getLogger(__name__)

CHANGE_ORDER = (
    SortKey.asc(LogField.REPOSITORY_ID),
    SortKey.desc(LogField.EVENT_DATE),
    SortKey.desc(LogField.ID),
)


class ChangeQueryExecutor:
    """Runs filtered, bounded, ordered scans of the audit log.

    The executor holds no per-call state; the same instance serves
    concurrent principals.

    Example:
        >>> executor = ChangeQueryExecutor(store, ChangeFinderConfig())
        >>> entries = await executor.query_changes(
        ...     Principal("alice", "default"), {"/ws/alice"}, set(),
        ...     lower_bound=0, upper_bound=42, limit=100,
        ... )
    """

    def __init__(self, log_store: LogStore, config: ChangeFinderConfig) -> None:
        self.log_store = log_store
        self.config = config

    def build_query(
        self,
        principal: Principal,
        roots: Iterable[str],
        collection_member_ids: Iterable[str] | None,
        lower_bound: int,
        upper_bound: int,
        limit: int,
    ) -> ChangeQuery:
        """Validate parameters into a ChangeQuery.

        Raises:
            ConfigurationError: If a root is malformed or limit isn't positive
        """
        if limit <= 0:
            raise ConfigurationError(f"limit must be positive, got {limit}")
        sync_roots = SynchronizationRoots.of(roots)
        return ChangeQuery(
            repository_id=principal.repository_id,
            lower_bound=lower_bound,
            upper_bound=upper_bound,
            roots=sync_roots.sorted_paths(),
            collection_member_ids=frozenset(collection_member_ids or ()),
            limit=limit,
        )

    def to_log_query(self, query: ChangeQuery) -> LogQuery:
        relevance = build_filter(
            query.roots,
            query.collection_member_ids,
            lifecycle_category=self.config.lifecycle_category,
            document_event_ids=self.config.document_event_ids,
        )
        return LogQuery(
            predicate=all_of(
                Eq(LogField.REPOSITORY_ID, query.repository_id),
                Gt(LogField.ID, query.lower_bound),
                Le(LogField.ID, query.upper_bound),
                relevance,
            ),
            order=CHANGE_ORDER,
            limit=query.limit,
        )

    async def execute(self, query: ChangeQuery) -> list[LogEntry]:
        """Run a prepared ChangeQuery.

        Raises:
            TransientStoreError: If the log store can't be read
        """
        entries = await self.log_store.query(self.to_log_query(query))
        logger.debug(
            "Change scan complete",
            extra={
                "repository_id": query.repository_id,
                "lower_bound": query.lower_bound,
                "upper_bound": query.upper_bound,
                "roots": len(query.roots),
                "collection_members": len(query.collection_member_ids),
                "matched": len(entries),
                "truncated": len(entries) >= query.limit,
            },
        )
        return entries

    async def query_changes(
        self,
        principal: Principal,
        roots: Iterable[str],
        collection_member_ids: Iterable[str] | None,
        lower_bound: int,
        upper_bound: int,
        limit: int,
    ) -> list[LogEntry]:
        """Scan (lower_bound, upper_bound] of the principal's repository.

        Args:
            principal: Principal whose repository is scanned
            roots: Watched root paths
            collection_member_ids: Ids of documents in watched collections
            lower_bound: Exclusive lower id bound
            upper_bound: Inclusive upper id bound
            limit: Maximum number of entries returned

        Returns:
            Matching entries in change order (unfiltered for visibility)

        Raises:
            ConfigurationError: If a root is malformed or limit isn't positive
            TransientStoreError: If the log store can't be read
        """
        query = self.build_query(
            principal, roots, collection_member_ids, lower_bound, upper_bound, limit
        )
        return await self.execute(query)
