"""Record store persisted to a JSON file."""

import json
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from changesync.models.change import BatchOperation, Change
from changesync.storage.memory_store import InMemoryRecordStore
from changesync.sync.change_log import ChangeLog
from changesync.sync.change_tracker import ChangeTracker
from changesync.sync.checkpoint import NEVER_SYNCED, CheckpointSequencer
from changesync.sync.errors import (
    ChangeLogCorruptError,
    ReplicationError,
    SequencerError,
    StoreReadError,
    StoreWriteError,
)

log = structlog.stdlib.get_logger()


class StoreSnapshot(BaseModel):
    """On-disk layout of a JSON file store."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str = Field(default=..., description="Logical model/collection name")
    checkpoint: int = Field(default=NEVER_SYNCED, description="Sequencer value")
    pruned_horizon: int | None = Field(default=None, description="Horizon of the last prune")
    records: dict[str, dict[str, Any]] = Field(default_factory=dict, description="Records by id")
    changes: list[Change] = Field(default_factory=list, description="Change log in commit order")


class JsonFileRecordStore(InMemoryRecordStore):
    """
    In-memory store that writes a JSON snapshot after every commit and bump.

    The snapshot holds records, the change log and the sequencer value, so a
    store reopened from the same file continues its checkpoint sequence and
    hash chains where it left off.
    """

    def __init__(
        self,
        path: str | Path,
        model_name: str,
        id_field: str = "id",
        name: str | None = None,
    ):
        """
        Open or create a file-backed store.

        Args:
            path: JSON file holding the store
            model_name: Logical model/collection name
            id_field: Record field holding the id
            name: Name identifying this store in replication state (defaults to the file stem)

        Raises:
            StoreReadError: If an existing file cannot be read or belongs to another model
        """
        self.path = Path(path).expanduser()
        self._deferred = False
        snapshot = self._load_snapshot(model_name)
        change_log = self._restore_change_log(snapshot)

        super().__init__(
            model_name,
            id_field=id_field,
            sequencer=CheckpointSequencer(initial=snapshot.checkpoint, name=model_name),
            change_log=change_log,
            name=name or self.path.stem,
        )
        self._records = dict(snapshot.records)

        log.info(
            "file_store_opened",
            path=str(self.path),
            model_name=model_name,
            records=len(self._records),
            changes=len(change_log),
            checkpoint=snapshot.checkpoint,
        )

    def _load_snapshot(self, model_name: str) -> StoreSnapshot:
        if not self.path.exists():
            return StoreSnapshot(model_name=model_name)

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                snapshot = StoreSnapshot.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            log.error("failed_to_load_store", path=str(self.path), error=str(e))
            raise StoreReadError(f"Failed to load store file {self.path}: {e}") from e

        if snapshot.model_name != model_name:
            raise StoreReadError(
                f"Store file {self.path} holds model {snapshot.model_name!r}, not {model_name!r}"
            )
        return snapshot

    def _restore_change_log(self, snapshot: StoreSnapshot) -> ChangeLog:
        try:
            return ChangeLog.restore(
                snapshot.model_name, snapshot.changes, snapshot.pruned_horizon
            )
        except (ChangeLogCorruptError, ValueError) as e:
            raise StoreReadError(f"Change log in {self.path} is corrupt: {e}") from e

    def _persist(self, error_cls: type[ReplicationError]) -> None:
        with self._lock:
            snapshot = StoreSnapshot(
                model_name=self.model_name,
                checkpoint=self.current_checkpoint(),
                pruned_horizon=self.change_log.pruned_horizon,
                records=self._records,
                changes=list(self.change_log),
            )
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "w", encoding="utf-8") as f:
                    f.write(snapshot.model_dump_json(indent=2))
                os.replace(tmp_path, self.path)
            except OSError as e:
                log.error("failed_to_persist_store", path=str(self.path), error=str(e))
                raise error_cls(f"Failed to write store file {self.path}: {e}") from e

    def _after_commit(self, change: Change) -> None:
        if not self._deferred:
            self._persist(StoreWriteError)

    def apply_batch(self, operations: Sequence[BatchOperation]) -> list[BatchOperation]:
        with self._lock:
            self._deferred = True
            try:
                return super().apply_batch(operations)
            finally:
                # Whatever part of the batch committed must reach the file
                self._deferred = False
                self._persist_or_reload()

    def _persist_or_reload(self) -> None:
        try:
            self._persist(StoreWriteError)
        except StoreWriteError:
            # Writes that never reached the file must not stay visible
            self._reload()
            raise

    def _reload(self) -> None:
        snapshot = self._load_snapshot(self.model_name)
        self._records = dict(snapshot.records)
        self._tracker = ChangeTracker(
            self.model_name,
            sequencer=CheckpointSequencer(initial=snapshot.checkpoint, name=self.model_name),
            change_log=self._restore_change_log(snapshot),
        )
        log.warning("file_store_reloaded", path=str(self.path), records=len(self._records))

    def bump_checkpoint(self) -> int:
        with self._lock:
            value = super().bump_checkpoint()
            self._persist(SequencerError)
        return value

    def prune_changes(self, horizon: int) -> int:
        """Prune the change log below ``horizon`` and persist the result."""
        with self._lock:
            removed = self.change_log.prune(horizon)
            if removed:
                self._persist(StoreWriteError)
        return removed
