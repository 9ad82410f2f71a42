"""
Per-principal visibility post-filter.

Sync root (un)registration entries carry the name of the user they
concern in their impactedUserName metadata. Those entries must only reach
that user.

Entry visibility otherwise depends on metadata computed by the write path.
After a live document is removed, the visibility of its orphaned versions
is recomputed asynchronously, so entries written in between may reflect
stale visibility until that pass runs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..logstore import IMPACTED_USER_NAME, LogEntry

logger = logging.getLogger(__name__)


def is_visible_to(entry: LogEntry, principal_name: str) -> bool:
    if IMPACTED_USER_NAME not in entry.extended_info:
        return True
    return entry.impacted_user_name == principal_name


def filter_for_principal(entries: Iterable[LogEntry], principal_name: str) -> list[LogEntry]:
    """Drop entries that only impact other users, preserving order."""
    visible = []
    for entry in entries:
        if not is_visible_to(entry, principal_name):
            continue
        logger.debug(f"Change detected: {entry}")
        visible.append(entry)
    return visible
