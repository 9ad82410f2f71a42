"""
Change finder CLI for operators.

Inspects a SQLite audit log offline, the same way the server would answer
a sync client:
- upper-bound: Print the current safe upper bound
- changes: Print the change summary for a principal
- append: Append an entry (seeding test and development logs)

Usage:
    drivesync-changes --db audit.db upper-bound --repository default
    drivesync-changes --db audit.db changes --principal alice \\
        --repository default --root /ws/alice --lower-bound 41
    drivesync-changes --db audit.db append --repository default \\
        --category eventDocumentCategory --event documentCreated --path /ws/alice/doc

Invariants:
    - Output is JSON on stdout, diagnostics on stderr
    - Configuration errors exit with status 2, store errors with status 1
    - The tool never writes a watermark anywhere
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from ..changes import ChangeFinder, Principal
from ..config import (
    DEFAULT_REPOSITORY,
    ChangeFinderConfig,
    ConfigurationError,
    RepositoryConfig,
    RepositoryRegistry,
)
from ..logstore import LogStore, LogStoreError, SqliteLogStore

logger = logging.getLogger(__name__)


class ChangesCLI:
    """CLI operations over an opened log store.

    Example:
        >>> cli = ChangesCLI(store, registry)
        >>> await cli.upper_bound(["default"])
        {'upper_bound': 42}
    """

    def __init__(
        self,
        log_store: LogStore,
        repositories: RepositoryRegistry,
        config: ChangeFinderConfig | None = None,
    ) -> None:
        self.log_store = log_store
        self.finder = ChangeFinder.create(log_store, repositories, config)

    async def upper_bound(self, repositories: list[str] | None) -> dict[str, Any]:
        return {"upper_bound": await self.finder.get_upper_bound(repositories or None)}

    async def changes(
        self,
        principal: str,
        repository: str,
        roots: list[str],
        collection_member_ids: list[str],
        lower_bound: int,
        limit: int | None,
    ) -> dict[str, Any]:
        summary = await self.finder.find_changes(
            Principal(name=principal, repository_id=repository),
            roots=roots,
            collection_member_ids=collection_member_ids,
            lower_bound=lower_bound,
            limit=limit,
        )
        return summary.to_dict()

    async def append(
        self,
        repository: str,
        category: str,
        event_id: str,
        path: str | None,
        doc_uuid: str | None,
        extended_info: dict[str, Any],
        event_date: int | None,
    ) -> dict[str, Any]:
        entry = await self.log_store.append(
            repository_id=repository,
            category=category,
            event_id=event_id,
            doc_path=path,
            doc_uuid=doc_uuid,
            extended_info=extended_info,
            event_date=event_date,
        )
        return entry.to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drivesync-changes",
        description="Inspect a Drive Sync audit log",
    )
    parser.add_argument("--db", required=True, help="Path to the SQLite audit log")
    parser.add_argument("--repositories-file", help="YAML file with repository clustering settings")
    parser.add_argument(
        "--clustering-delay-ms",
        type=int,
        help="Clustering delay applied to every repository on the command line",
    )
    parser.add_argument(
        "--lifecycle-category",
        default=ChangeFinderConfig.lifecycle_category,
        help="Category of sync root lifecycle events",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    subparsers = parser.add_subparsers(dest="command", required=True)

    bound_parser = subparsers.add_parser("upper-bound", help="Print the safe upper bound")
    bound_parser.add_argument(
        "--repository", action="append", default=[], help="Repository (repeatable)"
    )

    changes_parser = subparsers.add_parser("changes", help="Print a change summary")
    changes_parser.add_argument("--principal", required=True, help="Principal name")
    changes_parser.add_argument("--repository", default=DEFAULT_REPOSITORY, help="Repository")
    changes_parser.add_argument(
        "--root", action="append", default=[], help="Synchronization root (repeatable)"
    )
    changes_parser.add_argument(
        "--collection-member",
        action="append",
        default=[],
        help="Synchronized collection member id (repeatable)",
    )
    changes_parser.add_argument("--lower-bound", type=int, default=-1, help="Previous watermark")
    changes_parser.add_argument("--limit", type=int, help="Result cap")

    append_parser = subparsers.add_parser("append", help="Append a log entry")
    append_parser.add_argument("--repository", default=DEFAULT_REPOSITORY, help="Repository")
    append_parser.add_argument("--category", required=True, help="Event category")
    append_parser.add_argument("--event", required=True, help="Event id")
    append_parser.add_argument("--path", help="Document path")
    append_parser.add_argument("--doc-uuid", help="Document id")
    append_parser.add_argument("--impacted-user", help="impactedUserName metadata")
    append_parser.add_argument("--event-date", type=int, help="Event date (Unix ms)")

    return parser


def _load_repositories(args: argparse.Namespace) -> RepositoryRegistry:
    if args.repositories_file:
        return RepositoryRegistry.from_yaml(args.repositories_file)

    # upper-bound takes a repeatable --repository, the other commands a single one
    repository = getattr(args, "repository", None)
    if isinstance(repository, str):
        names = {repository}
    else:
        names = set(repository or [DEFAULT_REPOSITORY])
    delay = args.clustering_delay_ms
    registry = RepositoryRegistry(
        repositories=tuple(
            RepositoryConfig(
                name=name,
                clustering_enabled=delay is not None,
                clustering_delay_ms=delay or 0,
            )
            for name in sorted(names)
        )
    )
    registry.validate()
    return registry


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    store = SqliteLogStore(args.db, wal_mode=False)
    await store.connect()
    try:
        cli = ChangesCLI(
            store,
            _load_repositories(args),
            ChangeFinderConfig(lifecycle_category=args.lifecycle_category),
        )
        if args.command == "upper-bound":
            return await cli.upper_bound(args.repository)
        if args.command == "changes":
            return await cli.changes(
                principal=args.principal,
                repository=args.repository,
                roots=args.root,
                collection_member_ids=args.collection_member,
                lower_bound=args.lower_bound,
                limit=args.limit,
            )
        extended_info = {"impactedUserName": args.impacted_user} if args.impacted_user else {}
        return await cli.append(
            repository=args.repository,
            category=args.category,
            event_id=args.event,
            path=args.path,
            doc_uuid=args.doc_uuid,
            extended_info=extended_info,
            event_date=args.event_date,
        )
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        result = asyncio.run(_run(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except LogStoreError as e:
        print(f"Audit log error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
