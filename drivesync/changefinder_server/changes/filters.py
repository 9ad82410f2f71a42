"""
Synchronization root and collection filters.

Turns the paths a user watches and the ids of documents in the user's
synchronized collections into one predicate over the audit log:

    (under a watched root OR member of a watched collection)
    OR (sync root lifecycle event AND NOT rootUnregistered)

The lifecycle clause is always present, so a client with nothing
registered yet still learns about new roots.

Invariants:
    - Root matching is prefix-exact: "/a/b" never matches "/a/bc/doc"
    - Root paths are normalized: absolute, no trailing or doubled slashes
    - Nested roots are allowed and never make an entry match twice
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ..config import ConfigurationError
from ..logstore import (
    Eq,
    In,
    LogField,
    Ne,
    PathUnder,
    Predicate,
    all_of,
    any_of,
)

logger = logging.getLogger(__name__)

ROOT_REGISTERED = "rootRegistered"
ROOT_UNREGISTERED = "rootUnregistered"


def normalize_root_path(path: str) -> str:
    """Normalize a synchronization root path.

    Raises:
        ConfigurationError: If the path is empty, relative, or contains
            "." or ".." segments
    """
    if not isinstance(path, str) or not path:
        raise ConfigurationError(f"Invalid synchronization root: {path!r}")
    if not path.startswith("/"):
        raise ConfigurationError(f"Synchronization root must be absolute: {path!r}")
    segments = [segment for segment in path.split("/") if segment]
    if any(segment in (".", "..") for segment in segments):
        raise ConfigurationError(f"Synchronization root must not contain relative segments: {path!r}")
    return "/" + "/".join(segments)


@dataclass(frozen=True)
class SynchronizationRoots:
    """Immutable snapshot of the root paths a user synchronizes."""

    paths: frozenset[str] = frozenset()

    @classmethod
    def of(cls, paths: Iterable[str]) -> SynchronizationRoots:
        if isinstance(paths, SynchronizationRoots):
            return paths
        if isinstance(paths, str):
            raise ConfigurationError("Synchronization roots must be a collection of paths")
        return cls(frozenset(normalize_root_path(p) for p in paths))

    def __bool__(self) -> bool:
        return bool(self.paths)

    def __len__(self) -> int:
        return len(self.paths)

    def sorted_paths(self) -> tuple[str, ...]:
        return tuple(sorted(self.paths))


def lifecycle_clause(category: str) -> Predicate:
    """Registration events of the sync root lifecycle, unregistrations excluded."""
    return all_of(
        Eq(LogField.CATEGORY, category),
        Ne(LogField.EVENT_ID, ROOT_UNREGISTERED),
    )


def build_filter(
    roots: Iterable[str],
    collection_member_ids: Iterable[str] | None,
    lifecycle_category: str,
    document_event_ids: frozenset[str] = frozenset(),
) -> Predicate:
    """Build the inclusion predicate for watched roots and collections.

    Args:
        roots: Watched root paths
        collection_member_ids: Ids of documents in watched collections
        lifecycle_category: Category of sync root lifecycle events
        document_event_ids: When non-empty, only these events count as
            document changes

    Returns:
        A predicate selecting relevant entries

    Raises:
        ConfigurationError: If a root path is malformed
    """
    sync_roots = SynchronizationRoots.of(roots)
    member_ids = frozenset(collection_member_ids or ())

    root_clause = PathUnder(LogField.DOC_PATH, sync_roots.sorted_paths()) if sync_roots else None
    collection_clause = In(LogField.DOC_UUID, member_ids) if member_ids else None
    document_clause = any_of(root_clause, collection_clause)

    if document_clause is not None and document_event_ids:
        document_clause = all_of(In(LogField.EVENT_ID, document_event_ids), document_clause)

    return any_of(document_clause, lifecycle_clause(lifecycle_category))
