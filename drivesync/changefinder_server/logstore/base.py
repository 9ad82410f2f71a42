"""
Base protocol and types for the audit log store abstraction.

This module defines the LogStore protocol that all backends must implement,
along with the LogEntry record type and the store error hierarchy.

Invariants:
    - LogEntry ids are unique and strictly increasing in append order
    - Entries are never mutated or deleted once appended
    - query() returns an empty list only when the read succeeded
    - Store failures surface as TransientStoreError, never as empty results

How to change safely:
    - Protocol changes require updating all implementations
    - New LogEntry fields need defaults and to_dict/from_dict support
    - Keep the predicate semantics in query.py identical across backends
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

from .query import LogQuery

if TYPE_CHECKING:
    from ..config import ServerConfig

logger = logging.getLogger(__name__)

IMPACTED_USER_NAME = "impactedUserName"


class LogStoreError(Exception):
    """Base exception for log store operations."""
    pass


class TransientStoreError(LogStoreError):
    """Log store unreachable or timed out; the caller may retry later."""
    pass


class LogStoreConnectionError(TransientStoreError):
    """Connection to the log store failed."""
    pass


class LogStoreTimeoutError(TransientStoreError):
    """Log store operation timed out."""
    pass


@dataclass(frozen=True)
class LogEntry:
    """An immutable audit log entry.

    Attributes:
        id: Unique, strictly increasing log id
        repository_id: Repository the event happened in
        event_date: Event timestamp (Unix ms)
        category: Event category (document events, sync root lifecycle...)
        event_id: Event name (documentCreated, rootRegistered...)
        doc_path: Hierarchical path of the impacted document
        doc_uuid: Id of the impacted document
        extended_info: Read-only per-entry metadata (e.g. impactedUserName)
        principal_name: Actor that produced the event
        comment: Free-form event comment
    """

    id: int
    repository_id: str
    event_date: int
    category: str
    event_id: str
    doc_path: Optional[str] = None
    doc_uuid: Optional[str] = None
    extended_info: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=True)
    principal_name: Optional[str] = None
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "extended_info", MappingProxyType(dict(self.extended_info)))

    @property
    def impacted_user_name(self) -> Optional[str]:
        value = self.extended_info.get(IMPACTED_USER_NAME)
        return None if value is None else str(value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "repository_id": self.repository_id,
            "event_date": self.event_date,
            "category": self.category,
            "event_id": self.event_id,
            "doc_path": self.doc_path,
            "doc_uuid": self.doc_uuid,
            "extended_info": dict(self.extended_info),
            "principal_name": self.principal_name,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LogEntry:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            repository_id=data["repository_id"],
            event_date=data["event_date"],
            category=data["category"],
            event_id=data["event_id"],
            doc_path=data.get("doc_path"),
            doc_uuid=data.get("doc_uuid"),
            extended_info=dict(data.get("extended_info") or {}),
            principal_name=data.get("principal_name"),
            comment=data.get("comment"),
        )

    def __str__(self) -> str:
        return (
            f"LogEntry(id={self.id}, repo={self.repository_id}, "
            f"event={self.category}/{self.event_id}, path={self.doc_path})"
        )


@runtime_checkable
class LogStore(Protocol):
    """Protocol for audit log store backends.

    Capabilities required by the change finder:
    - Range read by id (expressed as predicates on LogField.ID)
    - Predicate-based filtering
    - Multi-key sort
    - Result-count limiting
    - A filter-independent "does any entry exist" probe

    Example:
        >>> store = InMemoryLogStore()
        >>> await store.connect()
        >>> entry = await store.append("default", "eventDocumentCategory",
        ...                            "documentCreated", doc_path="/a/doc")
        >>> await store.query(LogQuery(order=(SortKey.desc(LogField.ID),), limit=1))
        [entry]
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            LogStoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
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
        """Append an entry, assigning the next id.

        Args:
            repository_id: Repository the event happened in
            category: Event category
            event_id: Event name
            doc_path: Impacted document path
            doc_uuid: Impacted document id
            extended_info: Per-entry metadata
            event_date: Event timestamp in Unix ms (defaults to now)
            principal_name: Actor that produced the event
            comment: Event comment

        Returns:
            The stored LogEntry

        Raises:
            LogStoreConnectionError: If not connected
        """
        ...

    @abstractmethod
    async def query(self, query: LogQuery) -> List[LogEntry]:
        """Run a filtered, sorted, limited read.

        Args:
            query: Structured query

        Returns:
            Matching entries in query order

        Raises:
            TransientStoreError: If the store is unreachable or times out
        """
        ...

    @abstractmethod
    async def has_entries(self) -> bool:
        """Whether the log holds at least one entry, regardless of any filter."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def create_log_store(config: "ServerConfig") -> LogStore:
    """Factory function to create a log store from configuration.

    Args:
        config: Server configuration

    Returns:
        Appropriate LogStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import LogStoreBackend
    from .memory import InMemoryLogStore
    from .sqlite import SqliteLogStore

    if config.log_store_backend == LogStoreBackend.MEMORY:
        return InMemoryLogStore()
    elif config.log_store_backend == LogStoreBackend.SQLITE:
        return SqliteLogStore(
            db_path=config.sqlite.db_path,
            wal_mode=config.sqlite.wal_mode,
            busy_timeout_ms=config.sqlite.busy_timeout_ms,
        )
    else:
        raise ValueError(f"Unsupported log store backend: {config.log_store_backend}")
