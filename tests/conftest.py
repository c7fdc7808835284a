"""Shared test setup: keep the settings' data directory out of the source tree."""

import os
import tempfile
from pathlib import Path

_DATA_DIR = Path(tempfile.mkdtemp(prefix="leadtrace-tests-"))
os.environ.setdefault("DATA_DIR", str(_DATA_DIR))
os.environ.setdefault("DB_PATH", str(_DATA_DIR / "leadtrace.db"))

import pytest  # noqa: E402

from leadtrace.cache import EnrichmentStore  # noqa: E402


@pytest.fixture
def store(tmp_path) -> EnrichmentStore:
    """A store backed by a fresh SQLite file."""
    return EnrichmentStore(db_url=f"sqlite:///{tmp_path / 'test.db'}")
