"""
Change finder: "what changed for this principal since cursor X".

Each call pairs a fresh upper bound with a scan of the window above the
caller's cursor:

    upper = compute_upper_bound(scope)
    if upper < lower: return (lower, [])
    return (upper, visible(scan(lower, upper]))

The caller persists the returned upper bound as its next lower bound. The
finder itself persists nothing, so an abandoned call never moves a cursor.

Invariants:
    - The returned watermark is never lower than the lower bound passed in
    - Sequential calls chained on the returned watermark see every visible
      entry exactly once
    - Store failures propagate; no stale or guessed bound is substituted
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace

from ..config import ChangeFinderConfig, ConfigurationError, RepositoryRegistry
from ..logstore import LogStore
from .executor import ChangeQueryExecutor
from .types import ChangeSummary, Principal
from .visibility import filter_for_principal
from .watermark import EMPTY_LOG, WatermarkCalculator, current_time_ms

logger = logging.getLogger(__name__)


class ChangeFinder:
    """Composes watermark, scan and visibility filter into one operation.

    Attributes:
        watermarks: Upper bound calculator
        executor: Change scan executor
        config: Change finder configuration

    Example:
        >>> finder = ChangeFinder.create(store, repositories, ChangeFinderConfig())
        >>> summary = await finder.find_changes(
        ...     Principal("alice", "default"), {"/ws/alice"}, set(), lower_bound=-1,
        ... )
        >>> cursor = summary.upper_bound
    """

    def __init__(
        self,
        watermarks: WatermarkCalculator,
        executor: ChangeQueryExecutor,
        config: ChangeFinderConfig,
    ) -> None:
        self.watermarks = watermarks
        self.executor = executor
        self.config = config

    @classmethod
    def create(
        cls,
        log_store: LogStore,
        repositories: RepositoryRegistry,
        config: ChangeFinderConfig | None = None,
        clock: Callable[[], int] = current_time_ms,
    ) -> ChangeFinder:
        config = config or ChangeFinderConfig()
        return cls(
            watermarks=WatermarkCalculator(log_store, repositories, clock=clock),
            executor=ChangeQueryExecutor(log_store, config),
            config=config,
        )

    async def get_upper_bound(self, repository_names: Iterable[str] | None = None) -> int:
        return await self.watermarks.compute_upper_bound(repository_names)

    async def find_changes(
        self,
        principal: Principal,
        roots: Iterable[str],
        collection_member_ids: Iterable[str] | None = None,
        lower_bound: int = EMPTY_LOG,
        limit: int | None = None,
        repository_names: Iterable[str] | None = None,
    ) -> ChangeSummary:
        """Find the changes visible to a principal above a cursor.

        Args:
            principal: Principal the changes are computed for
            roots: Watched root paths
            collection_member_ids: Ids of documents in watched collections
            lower_bound: Previous watermark (-1 to start from the beginning)
            limit: Result cap (config default when omitted)
            repository_names: Upper bound scope (the principal's repository
                when omitted)

        Returns:
            ChangeSummary with the new watermark and the visible entries

        Raises:
            ConfigurationError: If a parameter is invalid
            TransientStoreError: If the log store can't be read
        """
        if lower_bound < EMPTY_LOG:
            raise ConfigurationError(f"lower_bound must be >= -1, got {lower_bound}")
        limit = self.config.default_limit if limit is None else limit
        scope = {principal.repository_id} if repository_names is None else set(repository_names)

        # Validate before touching the store
        query = self.executor.build_query(
            principal, roots, collection_member_ids, lower_bound, lower_bound, limit
        )

        upper_bound = await self.watermarks.compute_upper_bound(scope)
        if upper_bound < lower_bound:
            logger.debug(
                "Upper bound below cursor, keeping cursor",
                extra={"principal": principal.name, "lower_bound": lower_bound, "upper_bound": upper_bound},
            )
            return ChangeSummary(upper_bound=lower_bound)

        raw = await self.executor.execute(replace(query, upper_bound=upper_bound))
        visible = filter_for_principal(raw, principal.name)

        summary = ChangeSummary(
            upper_bound=upper_bound,
            entries=tuple(visible),
            has_too_many_changes=len(raw) >= limit,
        )
        logger.info(
            "Change summary computed",
            extra={
                "principal": principal.name,
                "repository_id": principal.repository_id,
                "lower_bound": lower_bound,
                "upper_bound": upper_bound,
                "changes": len(visible),
                "filtered_out": len(raw) - len(visible),
                "has_too_many_changes": summary.has_too_many_changes,
            },
        )
        return summary
