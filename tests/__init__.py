"""
Drive Sync change finder test suite.

This package contains:
- unit/: Unit tests (in-memory and temporary SQLite stores)
- integration/: Integration tests (ChangeFinder end to end, HTTP API)
"""
