"""Shared fixtures for changesync tests."""

import pytest

from changesync.storage.memory_store import InMemoryRecordStore
from changesync.sync.checkpoint_tracker import CheckpointTracker


@pytest.fixture
def source_store() -> InMemoryRecordStore:
    return InMemoryRecordStore("notes", name="source")


@pytest.fixture
def target_store() -> InMemoryRecordStore:
    return InMemoryRecordStore("notes", name="target")


@pytest.fixture
def checkpoint_tracker(tmp_path) -> CheckpointTracker:
    return CheckpointTracker(tmp_path / "replication_state.json")
