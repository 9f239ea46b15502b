"""
Pytest configuration for the wine list scanner tests.
"""

import pytest

from winelist.models.wine import WineRecord
from winelist.services.local_index import LocalMatchIndex
from winelist.services.snapshot_store import SnapshotStore

from helpers import FakeClock, load_wine_records


def pytest_configure(config):
    """Register the asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test"
    )


@pytest.fixture
def wine_records() -> list[WineRecord]:
    return load_wine_records()


@pytest.fixture
def records_by_id(wine_records) -> dict[str, WineRecord]:
    return {r.id: r for r in wine_records}


@pytest.fixture
def snapshot_store(tmp_path) -> SnapshotStore:
    """Snapshot store on a temporary SQLite file."""
    return SnapshotStore(db_path=tmp_path / "state.db")


@pytest.fixture
def index(wine_records) -> LocalMatchIndex:
    """In-memory index seeded with the catalog fixture."""
    idx = LocalMatchIndex()
    idx.upsert(wine_records)
    return idx


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
