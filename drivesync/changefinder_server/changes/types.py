"""
Value types exchanged by the change finder components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from ..logstore import LogEntry


@dataclass(frozen=True)
class Principal:
    """The user a change summary is computed for.

    Attributes:
        name: Principal name, compared against impactedUserName
        repository_id: Repository the principal's session is bound to
    """

    name: str
    repository_id: str

    def __str__(self) -> str:
        return f"{self.name}@{self.repository_id}"


@dataclass(frozen=True)
class ChangeQuery:
    """One bounded scan of the log for a repository.

    The id window is half-open: lower_bound < id <= upper_bound.
    """

    repository_id: str
    lower_bound: int
    upper_bound: int
    roots: tuple[str, ...]
    collection_member_ids: frozenset[str]
    limit: int


@dataclass(frozen=True)
class ChangeSummary:
    """Changes visible to one principal plus the watermark to resume from.

    Unpacks as an (upper_bound, entries) pair:

        >>> upper_bound, entries = await finder.find_changes(...)

    Attributes:
        upper_bound: New watermark; the caller persists it as the next lower bound
        entries: Visible entries, ordered by repository, date desc, id desc
        has_too_many_changes: The raw scan hit the result cap, so entries
            are truncated
    """

    upper_bound: int
    entries: tuple[LogEntry, ...] = field(default_factory=tuple)
    has_too_many_changes: bool = False

    def __iter__(self) -> Iterator[Any]:
        yield self.upper_bound
        yield list(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "upper_bound": self.upper_bound,
            "has_too_many_changes": self.has_too_many_changes,
            "entries": [entry.to_dict() for entry in self.entries],
        }
