"""
Audit log store abstraction for the change finder.

This module provides a pluggable log store interface supporting:
- SQLite (single-node deployments and tooling)
- In-memory (for testing)

The audit log is append-only and written by the repository event
pipeline. The change finder only ever reads it.

Invariants:
    - Log ids are unique and strictly increasing
    - Queries are structured predicate trees, never query strings
    - Store failures raise TransientStoreError; empty results mean "no match"

How to change safely:
    - New backends must implement the LogStore protocol
    - New backends must pass the shared change finder integration tests
"""

from .base import (
    IMPACTED_USER_NAME,
    LogEntry,
    LogStore,
    LogStoreConnectionError,
    LogStoreError,
    LogStoreTimeoutError,
    TransientStoreError,
    create_log_store,
)
from .memory import InMemoryLogStore
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
    SortKey,
    all_of,
    any_of,
)
from .sqlite import SqliteLogStore

__all__ = [
    # Protocol and types
    "LogStore",
    "LogEntry",
    "IMPACTED_USER_NAME",
    "LogStoreError",
    "TransientStoreError",
    "LogStoreConnectionError",
    "LogStoreTimeoutError",
    # Query model
    "LogField",
    "LogQuery",
    "SortKey",
    "Predicate",
    "Eq",
    "Ne",
    "In",
    "Lt",
    "Gt",
    "Le",
    "PathUnder",
    "And",
    "Or",
    "all_of",
    "any_of",
    # Factory
    "create_log_store",
    # Implementations
    "InMemoryLogStore",
    "SqliteLogStore",
]
