"""Shared pytest fixtures for mdjournal tests."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from loguru import logger

from mdjournal.codec import make_entry
from mdjournal.config import StoreConfig
from mdjournal.store import FileStore

LA = ZoneInfo("America/Los_Angeles")
UTC = timezone.utc


@pytest.fixture
def temp_root():
    """Create a temporary directory for the entry tree."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_root):
    """Create a test configuration."""
    return StoreConfig(
        storage_path=temp_root / "entries",
        parallel_parse=True,
        max_parse_workers=4,
    )


@pytest.fixture
def store(config):
    """Create a test store."""
    return FileStore(config)


@pytest.fixture
def save(store):
    """Factory fixture that builds an entry from a body and saves it.

    Usage:
        def test_example(save):
            path = save(datetime(2026, 2, 8, 16, 31, tzinfo=UTC), "Body #tag")
    """
    def _save(timestamp: datetime, body: str) -> Path:
        return store.save_entry(make_entry(timestamp, body))

    return _save


@pytest.fixture
def log_messages():
    """Capture loguru messages at WARNING and above."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(str(m)), level="WARNING", format="{message}")
    yield messages
    logger.remove(handler_id)
