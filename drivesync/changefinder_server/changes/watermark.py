"""
Upper bound (watermark) computation for incremental change scans.

With several cluster nodes writing the audit log, a lower id can become
visible after a higher one. The calculator only reports ids whose entries
are older than twice the clustering delay, so no later-visible entry can
fall below a bound that was already handed out.

Invariants:
    - The bound never exceeds the highest committed id of the scope
    - -1 means the whole log is empty
    - 0 means the log has entries but none is safe to report yet
    - Every call reads the store; nothing is cached
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from ..config import ConfigurationError, RepositoryRegistry
from ..logstore import (
    In,
    LogField,
    LogQuery,
    LogStore,
    Lt,
    SortKey,
    all_of,
)

logger = logging.getLogger(__name__)

EMPTY_LOG = -1


def current_time_ms() -> int:
    return int(time.time() * 1000)


class WatermarkCalculator:
    """Computes the highest log id safe to scan up to.

    Args:
        log_store: Audit log to read
        repositories: Per-repository clustering configuration
        clock: Current time source in Unix ms
    """

    def __init__(
        self,
        log_store: LogStore,
        repositories: RepositoryRegistry,
        clock: Callable[[], int] = current_time_ms,
    ) -> None:
        self.log_store = log_store
        self.repositories = repositories
        self.clock = clock

    def clustering_delay(self, repository_names: set[str]) -> int | None:
        return self.repositories.clustering_delay(repository_names)

    async def compute_upper_bound(self, repository_names: Iterable[str] | None = None) -> int:
        """Return the last log id safe to report for the given repositories.

        Args:
            repository_names: Repository scope; every configured repository
                when omitted

        Returns:
            The safe upper bound, 0 or -1 (see module invariants)

        Raises:
            ConfigurationError: If the repository scope is empty
            TransientStoreError: If the log store can't be read
        """
        names = self.repositories.names() if repository_names is None else set(repository_names)
        if not names:
            raise ConfigurationError("Repository scope must not be empty")

        delay = self.clustering_delay(names)
        date_clause = None
        if delay is not None:
            # Double the delay to absorb overlapping invalidations between nodes
            safe_before = self.clock() - 2 * delay
            date_clause = Lt(LogField.EVENT_DATE, safe_before)

        entries = await self.log_store.query(
            LogQuery(
                predicate=all_of(In(LogField.REPOSITORY_ID, frozenset(names)), date_clause),
                order=(SortKey.desc(LogField.ID),),
                limit=1,
            )
        )

        if not entries:
            if delay is not None and await self.log_store.has_entries():
                # Keep the next lower bound >= 0 while entries wait out the delay
                logger.debug("Found no log entries old enough to be safe but some exist, returning 0")
                return 0
            logger.debug("Found no log entries, returning -1")
            return EMPTY_LOG

        return entries[0].id
