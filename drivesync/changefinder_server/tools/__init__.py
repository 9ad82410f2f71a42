"""
CLI tools for change finder administration.

This module provides command-line tools for:
- changes: Inspect upper bounds and change summaries of an audit log

Invariants:
    - Tools work offline (no running server required)
    - Tools never persist client watermarks
"""

from .changes_cli import ChangesCLI

__all__ = ["ChangesCLI"]
