"""
Drive Sync change finder server - incremental change detection over an audit log.

This package answers the question every sync client polls with:
"what changed under my synchronization roots since my last watermark?"

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌──────────────────────┐
    │ Sync client │────▶│   HTTP API   │────▶│    ChangeFinder      │
    │ (watermark) │◀────│  /v1/changes │◀────│                      │
    └─────────────┘     └──────────────┘     └──────────┬───────────┘
                                                        │
                     ┌──────────────────┬───────────────┼──────────────────┐
                     ▼                  ▼               ▼                  ▼
             ┌──────────────┐  ┌────────────────┐ ┌───────────┐  ┌──────────────────┐
             │  Watermark   │  │ Root/collection│ │  Change   │  │   Visibility     │
             │  calculator  │  │ filter builder │ │  query    │  │   post-filter    │
             └──────┬───────┘  └────────────────┘ └─────┬─────┘  └──────────────────┘
                    │                                    │
                    ▼                                    ▼
             ┌──────────────────────────────────────────────────┐
             │          Audit log store (SQLite / memory)       │
             └──────────────────────────────────────────────────┘

Invariants:
    - The audit log is append-only and read-only here
    - Watermarks belong to clients; the server persists none
    - Chained calls return every visible entry exactly once
    - Upper bounds lag by twice the clustering delay on clustered repositories

How to change safely:
    - Keep the (lower, upper] window semantics; clients persist watermarks
    - Test new log store backends with the shared integration tests

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
