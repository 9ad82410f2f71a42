"""
Shared fixtures for change finder tests.

The log_store fixture is parametrized over every backend so that the same
behavioral tests run against the in-memory and SQLite implementations.
"""

import tempfile

import pytest

from drivesync.changefinder_server.logstore import InMemoryLogStore, SqliteLogStore

DOC_CATEGORY = "eventDocumentCategory"
LIFECYCLE_CATEGORY = "driveSync"


class FakeClock:
    """Settable clock returning Unix ms."""

    def __init__(self, now_ms: int = 1_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture(params=["memory", "sqlite"])
async def log_store(request, data_dir):
    """Connected log store, once per backend."""
    if request.param == "memory":
        store = InMemoryLogStore()
    else:
        store = SqliteLogStore(f"{data_dir}/audit.db", wal_mode=False)
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def clock():
    return FakeClock()
