"""
Change finder for Drive Sync clients.

This module computes, for one principal, the audit log entries under the
principal's synchronization roots and synchronized collections since a
previously returned watermark:
- Watermark calculation with clustering delay compensation
- Root/collection filter building
- Bounded, ordered change scans
- Per-principal visibility post-filtering

Invariants:
    - Chained calls partition the log: no entry is returned twice or skipped
    - Watermarks never regress
    - Entries impacting another user never leak

How to change safely:
    - Test against both log store backends
    - Cover clustering delay edge cases (T + D - 1, T + 2D + 1)
"""

from .executor import CHANGE_ORDER, ChangeQueryExecutor
from .filters import (
    ROOT_REGISTERED,
    ROOT_UNREGISTERED,
    SynchronizationRoots,
    build_filter,
    normalize_root_path,
)
from .finder import ChangeFinder
from .types import ChangeQuery, ChangeSummary, Principal
from .visibility import filter_for_principal
from .watermark import EMPTY_LOG, WatermarkCalculator

__all__ = [
    "ChangeFinder",
    "ChangeQueryExecutor",
    "CHANGE_ORDER",
    "WatermarkCalculator",
    "EMPTY_LOG",
    "SynchronizationRoots",
    "build_filter",
    "normalize_root_path",
    "ROOT_REGISTERED",
    "ROOT_UNREGISTERED",
    "filter_for_principal",
    "ChangeQuery",
    "ChangeSummary",
    "Principal",
]
