"""
Pytest configuration and shared fixtures for the test suite.
Keeps tests off the real database and log directory, and provides the
in-memory stores and catalog used by unit and integration tests.
"""
import os
import sys
import tempfile
from pathlib import Path

# Must be set before progress_sync.config builds its engine.
os.environ.setdefault("PROGRESS_SYNC_DATABASE_URL", "sqlite://")
os.environ.setdefault("PROGRESS_SYNC_LOG_DIR", tempfile.mkdtemp(prefix="progress-sync-logs-"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


# ----- In-memory DB (shared across connections via StaticPool) -----
@pytest.fixture
def in_memory_engine():
    """Create an in-memory SQLite engine for tests."""
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def db_session(in_memory_engine):
    """In-memory database session with the progress tables created."""
    import progress_sync.models  # noqa: F401
    from progress_sync.config import Base
    Base.metadata.create_all(in_memory_engine)
    SessionLocal = sessionmaker(bind=in_memory_engine)
    session = SessionLocal()
    yield session
    session.close()


# ----- Device storage and catalog -----
@pytest.fixture
def memory_storage():
    from progress_sync.stores.device_storage import MemoryDeviceStorage
    return MemoryDeviceStorage()


@pytest.fixture
def local_store(memory_storage):
    from progress_sync.stores.local_store import LocalSnapshotStore
    return LocalSnapshotStore(memory_storage)


@pytest.fixture
def catalog():
    """The shipped ten-module catalog."""
    from progress_sync.config import DEFAULT_CATALOG_PATH
    from progress_sync.services.catalog_service import ContentCatalog
    return ContentCatalog.load(DEFAULT_CATALOG_PATH)


@pytest.fixture
def simple_catalog():
    """Ten modules of ten questions; option 0 is always correct."""
    from progress_sync.services.catalog_service import ContentCatalog
    return ContentCatalog.from_counts([10] * 10)


@pytest.fixture
def broken_storage():
    """Device storage on which every call fails, like a full or disabled localStorage."""
    from progress_sync.errors import LocalStorageUnavailable
    from progress_sync.stores.device_storage import DeviceStorage

    class BrokenStorage(DeviceStorage):
        def get_item(self, key):
            raise LocalStorageUnavailable("quota exceeded")

        def set_item(self, key, value):
            raise LocalStorageUnavailable("quota exceeded")

        def remove_item(self, key):
            raise LocalStorageUnavailable("quota exceeded")

        def keys(self):
            return []

    return BrokenStorage()
