"""Tests for conflict inspection and the resolution helpers."""

import pytest

from changesync.models.change import ChangeType
from changesync.storage.memory_store import InMemoryRecordStore
from changesync.sync.conflict import Conflict
from changesync.sync.replication_coordinator import replicate


def diverge(source: InMemoryRecordStore, target: InMemoryRecordStore, scenario: str) -> Conflict:
    """Replicate one record, change it on both sides and return the resulting conflict."""
    source.create({"id": "1", "title": "original"})
    replicate(source, target)

    if scenario == "update":
        source.update("1", {"title": "source edit"})
        target.update("1", {"title": "target edit"})
    elif scenario == "source_deleted":
        source.delete_by_id("1")
        target.update("1", {"title": "target edit"})
    elif scenario == "target_deleted":
        source.update("1", {"title": "source edit"})
        target.delete_by_id("1")

    result = replicate(source, target)
    assert len(result.conflicts) == 1
    return result.conflicts[0]


SCENARIOS = ["update", "source_deleted", "target_deleted"]


class TestConflictInspection:
    def test_changes_are_latest_of_each_side(self, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, "update")

        source_change, target_change = conflict.changes()

        assert source_change == source_store.latest_change("1")
        assert target_change == target_store.latest_change("1")
        assert not source_change.replicated
        assert not target_change.replicated

    def test_models_reflect_current_state(self, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, "update")
        target_store.update("1", {"title": "edited again"})

        assert conflict.models()[1] == {"id": "1", "title": "edited again"}

    def test_swap_parties(self, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, "target_deleted")

        swapped = conflict.swap_parties()

        assert swapped.changes() == (conflict.target_change, conflict.source_change)
        assert swapped.models() == (None, {"id": "1", "title": "source edit"})
        assert swapped.type() is ChangeType.DELETE

    def test_to_dict(self, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, "source_deleted")

        data = conflict.to_dict()

        assert data["model_id"] == "1"
        assert data["type"] == "delete"
        assert data["source_change"]["type"] == "delete"
        assert data["target_change"]["type"] == "update"

    def test_equality(self, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, "update")

        assert conflict == Conflict(
            "1",
            conflict.source_change,
            conflict.target_change,
            source_store,
            target_store,
        )
        assert conflict != conflict.swap_parties()


class TestConflictResolution:
    @pytest.mark.parametrize("scenario", SCENARIOS)
    def test_resolve_using_source(self, scenario, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, scenario)

        conflict.resolve_using_source()

        assert target_store.read("1") == source_store.read("1")
        assert replicate(source_store, target_store).conflicts == []

    @pytest.mark.parametrize("scenario", SCENARIOS)
    def test_resolve_using_target(self, scenario, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, scenario)

        conflict.resolve_using_target()

        assert source_store.read("1") == target_store.read("1")
        assert replicate(source_store, target_store).conflicts == []

    @pytest.mark.parametrize("scenario", SCENARIOS)
    def test_resolve_manually(self, scenario, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, scenario)
        merged = {"id": "1", "title": "merged"}

        conflict.resolve_manually(merged)

        assert source_store.read("1") == merged
        assert target_store.read("1") == merged
        assert replicate(source_store, target_store).conflicts == []

    def test_resolve_manually_with_delete(self, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, "update")

        conflict.resolve_manually(None)

        assert source_store.read("1") is None
        assert target_store.read("1") is None
        assert replicate(source_store, target_store).conflicts == []

    def test_resolution_writes_are_tagged_replicated(self, source_store, target_store) -> None:
        conflict = diverge(source_store, target_store, "update")

        conflict.resolve_using_source()

        assert target_store.latest_change("1").replicated
