"""
Configuration management for the Drive Sync change finder server.

Settings come from environment variables. Per-repository clustering
settings, which don't fit in flat variables, come from an optional YAML
file named by REPOSITORIES_FILE.

Configuration is loaded once at process start into frozen dataclasses and
injected into the components that need it.

Invariants:
    - All settings have sensible defaults for local development
    - Invalid values fail fast with ConfigurationError
    - Loaded configuration is immutable

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep the YAML repository format additive
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_REPOSITORY = "default"


class ConfigurationError(ValueError):
    """Invalid configuration or malformed request parameters."""

    pass


class LogStoreBackend(Enum):
    """Supported audit log store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")


@dataclass(frozen=True)
class SqliteConfig:
    """SQLite log store configuration.

    Attributes:
        db_path: Audit log database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    db_path: str = "/var/lib/drivesync/audit.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> SqliteConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=os.getenv("SQLITE_LOG_PATH", "/var/lib/drivesync/audit.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=_env_int("SQLITE_BUSY_TIMEOUT_MS", 5000),
        )


@dataclass(frozen=True)
class ChangeFinderConfig:
    """Change finder query configuration.

    Attributes:
        lifecycle_category: Category of sync root (un)registration events
        document_event_ids: Event ids that count as document changes
            (empty means every event under a watched root counts)
        default_limit: Result cap used when a caller doesn't pass one
    """

    lifecycle_category: str = "driveSync"
    document_event_ids: frozenset[str] = frozenset()
    default_limit: int = 1000

    @classmethod
    def from_env(cls) -> ChangeFinderConfig:
        """Load configuration from environment variables."""
        events = os.getenv("CHANGE_FINDER_DOCUMENT_EVENTS", "")
        return cls(
            lifecycle_category=os.getenv("CHANGE_FINDER_LIFECYCLE_CATEGORY", "driveSync"),
            document_event_ids=frozenset(e.strip() for e in events.split(",") if e.strip()),
            default_limit=_env_int("CHANGE_FINDER_DEFAULT_LIMIT", 1000),
        )


@dataclass(frozen=True)
class RepositoryConfig:
    """Per-repository settings.

    Attributes:
        name: Repository name
        clustering_enabled: Whether several nodes write this repository's log
        clustering_delay_ms: Worst-case delay before one node's commit is
            visible to every reader
    """

    name: str
    clustering_enabled: bool = False
    clustering_delay_ms: int = 0

    @property
    def clustering_delay(self) -> int | None:
        """Effective delay, or None when clustering doesn't apply."""
        return self.clustering_delay_ms if self.clustering_enabled else None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositoryConfig:
        clustering = data.get("clustering") or {}
        return cls(
            name=data["name"],
            clustering_enabled=bool(clustering.get("enabled", False)),
            clustering_delay_ms=int(clustering.get("delay_ms", 0)),
        )


@dataclass(frozen=True)
class RepositoryRegistry:
    """Immutable view of the configured repositories.

    Example YAML (REPOSITORIES_FILE):
        repositories:
          - name: default
            clustering:
              enabled: true
              delay_ms: 3000
          - name: archive
    """

    repositories: tuple[RepositoryConfig, ...] = (RepositoryConfig(DEFAULT_REPOSITORY),)

    def names(self) -> set[str]:
        return {repo.name for repo in self.repositories}

    def get(self, name: str) -> RepositoryConfig | None:
        for repo in self.repositories:
            if repo.name == name:
                return repo
        return None

    def clustering_delay(self, repository_names: set[str]) -> int | None:
        """Max clustering delay over the given repositories, None if none applies.

        Repositories missing from the registry are treated as unclustered.
        """
        delays = [
            repo.clustering_delay
            for repo in self.repositories
            if repo.name in repository_names and repo.clustering_delay is not None
        ]
        return max(delays) if delays else None

    def validate(self) -> None:
        if not self.repositories:
            raise ConfigurationError("At least one repository must be configured")
        seen: set[str] = set()
        for repo in self.repositories:
            if not repo.name:
                raise ConfigurationError("Repository name is required")
            if repo.name in seen:
                raise ConfigurationError(f"Duplicate repository: {repo.name}")
            if repo.clustering_delay_ms < 0:
                raise ConfigurationError(
                    f"Repository '{repo.name}': clustering delay must be >= 0"
                )
            seen.add(repo.name)

    @classmethod
    def from_yaml(cls, path: str | Path) -> RepositoryRegistry:
        """Load repositories from a YAML file.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read repositories file {path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in repositories file {path}: {e}")

        items = data.get("repositories") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise ConfigurationError(f"{path}: 'repositories' must be a list")
        try:
            registry = cls(repositories=tuple(RepositoryConfig.from_dict(item) for item in items))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"{path}: invalid repository entry: {e}")
        registry.validate()
        return registry

    @classmethod
    def from_env(cls) -> RepositoryRegistry:
        """Load from REPOSITORIES_FILE, or build a single default repository."""
        path = os.getenv("REPOSITORIES_FILE")
        if path:
            return cls.from_yaml(path)
        registry = cls(
            repositories=(
                RepositoryConfig(
                    name=os.getenv("DEFAULT_REPOSITORY", DEFAULT_REPOSITORY),
                    clustering_enabled=_env_bool("CLUSTERING_ENABLED", "false"),
                    clustering_delay_ms=_env_int("CLUSTERING_DELAY_MS", 0),
                ),
            )
        )
        registry.validate()
        return registry


@dataclass(frozen=True)
class HttpConfig:
    """HTTP API configuration.

    Attributes:
        host: Bind host
        port: Bind port
        cors_origins: Allowed CORS origins
    """

    host: str = "0.0.0.0"
    port: int = 8081
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=_env_int("HTTP_PORT", 8081),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        log_store_backend: Which log store backend to use
        sqlite: SQLite configuration (if log_store_backend is SQLITE)
        change_finder: Change finder query configuration
        repositories: Repository clustering settings
        http: HTTP API configuration
        observability: Logging configuration
    """

    log_store_backend: LogStoreBackend = LogStoreBackend.SQLITE
    sqlite: SqliteConfig = field(default_factory=SqliteConfig)
    change_finder: ChangeFinderConfig = field(default_factory=ChangeFinderConfig)
    repositories: RepositoryRegistry = field(default_factory=RepositoryRegistry)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigurationError: If configuration is missing or invalid.
        """
        backend_str = os.getenv("LOG_STORE_BACKEND", "sqlite").lower()
        try:
            backend = LogStoreBackend(backend_str)
        except ValueError:
            raise ConfigurationError(
                f"Invalid LOG_STORE_BACKEND '{backend_str}'. Must be one of: memory, sqlite"
            )

        config = cls(
            log_store_backend=backend,
            sqlite=SqliteConfig.from_env(),
            change_finder=ChangeFinderConfig.from_env(),
            repositories=RepositoryRegistry.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if self.log_store_backend == LogStoreBackend.SQLITE and not self.sqlite.db_path:
            raise ConfigurationError("SQLITE_LOG_PATH is required when LOG_STORE_BACKEND=sqlite")
        if self.change_finder.default_limit <= 0:
            raise ConfigurationError("CHANGE_FINDER_DEFAULT_LIMIT must be positive")
        if not self.change_finder.lifecycle_category:
            raise ConfigurationError("CHANGE_FINDER_LIFECYCLE_CATEGORY must not be empty")
        self.repositories.validate()

        if self.log_store_backend == LogStoreBackend.MEMORY:
            logger.warning("In-memory log store selected; audit entries won't survive a restart")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "log_store_backend": self.log_store_backend.value,
                "sqlite_path": self.sqlite.db_path
                if self.log_store_backend == LogStoreBackend.SQLITE
                else None,
                "repositories": sorted(self.repositories.names()),
                "lifecycle_category": self.change_finder.lifecycle_category,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
