"""Shared fixtures: temp status store, watch folders and an in-memory broker."""

import os
import tempfile
from pathlib import Path

os.environ.setdefault("LOG_DIR", str(Path(tempfile.gettempdir()) / "instrument_status_test_logs"))

import pytest  # noqa: E402

from instrument_status.core.db import build_engine  # noqa: E402
from instrument_status.services.status_store import StatusStore  # noqa: E402
from instrument_status.tests.fakes import InMemoryBroker  # noqa: E402


@pytest.fixture
def store(tmp_path):
    """Initialized status store in a temp SQLite file"""
    engine = build_engine(f"sqlite:///{(tmp_path / 'data' / 'status.db').as_posix()}")
    status_store = StatusStore(engine)
    status_store.initialize()
    yield status_store
    engine.dispose()


@pytest.fixture
def folders(tmp_path):
    """Incoming / Processed / Failed folder paths"""
    return {
        "watch_folder": tmp_path / "Incoming",
        "processed_folder": tmp_path / "Processed",
        "failed_folder": tmp_path / "Failed",
    }


@pytest.fixture
def broker():
    return InMemoryBroker()
