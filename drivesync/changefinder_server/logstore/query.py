"""
Structured query model for the audit log.

Queries against a log store are expressed as small immutable predicate
trees instead of query strings. Each backend either evaluates the tree
directly (in-memory) or compiles it to a parameterized statement (SQLite).

Invariants:
    - Predicates are immutable and hashable
    - Values never leave the tree as text; backends bind them as parameters
    - PathUnder is prefix-exact: "/a/b" matches "/a/b" and "/a/b/x", never "/a/bc"

How to change safely:
    - New predicate nodes must be supported by every backend
    - Keep evaluation semantics identical between matches() and compiled forms
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from .base import LogEntry


class LogField(Enum):
    """Queryable log entry fields (value is the LogEntry attribute name)."""

    ID = "id"
    REPOSITORY_ID = "repository_id"
    EVENT_DATE = "event_date"
    CATEGORY = "category"
    EVENT_ID = "event_id"
    DOC_PATH = "doc_path"
    DOC_UUID = "doc_uuid"

    def value_of(self, entry: LogEntry) -> Any:
        return getattr(entry, self.value)


def path_is_under(path: str | None, root: str) -> bool:
    """Check whether a path is a root itself or one of its descendants."""
    if path is None:
        return False
    if path == root:
        return True
    prefix = root if root.endswith("/") else root + "/"
    return path.startswith(prefix)


@dataclass(frozen=True)
class Eq:
    field: LogField
    value: Any

    def matches(self, entry: LogEntry) -> bool:
        return self.field.value_of(entry) == self.value


@dataclass(frozen=True)
class Ne:
    field: LogField
    value: Any

    def matches(self, entry: LogEntry) -> bool:
        return self.field.value_of(entry) != self.value


@dataclass(frozen=True)
class In:
    field: LogField
    values: frozenset

    def matches(self, entry: LogEntry) -> bool:
        return self.field.value_of(entry) in self.values


@dataclass(frozen=True)
class Lt:
    field: LogField
    value: Any

    def matches(self, entry: LogEntry) -> bool:
        return self.field.value_of(entry) < self.value


@dataclass(frozen=True)
class Gt:
    field: LogField
    value: Any

    def matches(self, entry: LogEntry) -> bool:
        return self.field.value_of(entry) > self.value


@dataclass(frozen=True)
class Le:
    field: LogField
    value: Any

    def matches(self, entry: LogEntry) -> bool:
        return self.field.value_of(entry) <= self.value


@dataclass(frozen=True)
class PathUnder:
    """Match entries whose path is one of the roots or below one of them.

    All roots are tested in a single pass; an entry under two nested roots
    matches once.
    """

    field: LogField
    roots: tuple[str, ...]

    def matches(self, entry: LogEntry) -> bool:
        path = self.field.value_of(entry)
        return any(path_is_under(path, root) for root in self.roots)


@dataclass(frozen=True)
class And:
    operands: tuple[Predicate, ...]

    def matches(self, entry: LogEntry) -> bool:
        return all(op.matches(entry) for op in self.operands)


@dataclass(frozen=True)
class Or:
    operands: tuple[Predicate, ...]

    def matches(self, entry: LogEntry) -> bool:
        return any(op.matches(entry) for op in self.operands)


Predicate = Union[Eq, Ne, In, Lt, Gt, Le, PathUnder, And, Or]


def all_of(*operands: Predicate | None) -> Predicate | None:
    """Combine predicates with AND, skipping None operands."""
    ops = tuple(op for op in operands if op is not None)
    if not ops:
        return None
    if len(ops) == 1:
        return ops[0]
    return And(ops)


def any_of(*operands: Predicate | None) -> Predicate | None:
    """Combine predicates with OR, skipping None operands."""
    ops = tuple(op for op in operands if op is not None)
    if not ops:
        return None
    if len(ops) == 1:
        return ops[0]
    return Or(ops)


@dataclass(frozen=True)
class SortKey:
    field: LogField
    descending: bool = False

    @classmethod
    def asc(cls, field: LogField) -> SortKey:
        return cls(field, descending=False)

    @classmethod
    def desc(cls, field: LogField) -> SortKey:
        return cls(field, descending=True)


@dataclass(frozen=True)
class LogQuery:
    """A filtered, sorted, optionally limited read of the log.

    Attributes:
        predicate: Filter tree, or None to select every entry
        order: Sort keys applied left to right
        limit: Maximum number of entries returned (None = unlimited)
    """

    predicate: Predicate | None = None
    order: tuple[SortKey, ...] = ()
    limit: int | None = None

    def matches(self, entry: LogEntry) -> bool:
        return self.predicate is None or self.predicate.matches(entry)
