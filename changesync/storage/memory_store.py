"""In-memory record store with change tracking."""

import threading
import uuid
from collections.abc import Callable, Sequence
from copy import deepcopy
from typing import Any

import structlog
from pydantic import ValidationError

from changesync.models.change import BatchOperation, Change, ChangeFilter, ChangeType
from changesync.storage.base import RecordStore
from changesync.sync.change_log import ChangeLog
from changesync.sync.change_tracker import ChangeTracker
from changesync.sync.checkpoint import NEVER_SYNCED, CheckpointSequencer
from changesync.sync.errors import StoreWriteError

log = structlog.stdlib.get_logger()


def _default_id() -> str:
    return uuid.uuid4().hex


def _matches(record: dict[str, Any], where: dict[str, Any] | None) -> bool:
    if not where:
        return True
    return all(key in record and record[key] == value for key, value in where.items())


class InMemoryRecordStore(RecordStore):
    """
    Record store kept in process memory.

    Records are plain dictionaries keyed by the string form of their id.
    Every mutation entry point funnels into ``_commit``, which writes the
    record and reports the change to the tracker under one lock.
    """

    def __init__(
        self,
        model_name: str,
        id_field: str = "id",
        sequencer: CheckpointSequencer | None = None,
        change_log: ChangeLog | None = None,
        id_factory: Callable[[], str] | None = None,
        name: str | None = None,
    ):
        """
        Initialize an empty store.

        Args:
            model_name: Logical model/collection name
            id_field: Record field holding the id
            sequencer: Checkpoint sequencer owned by this store (a new one if None)
            change_log: Existing change log (a new one if None)
            id_factory: Generates ids for records created without one
            name: Name identifying this store in replication state (defaults to model_name)
        """
        self.model_name = model_name
        self.name = name or model_name
        self.id_field = id_field
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._id_factory = id_factory or _default_id
        self._tracker = ChangeTracker(
            model_name,
            sequencer=sequencer or CheckpointSequencer(name=model_name),
            change_log=change_log,
        )

    @property
    def change_log(self) -> ChangeLog:
        return self._tracker.change_log

    # Reads

    def read(self, model_id: Any) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(str(model_id))
            return deepcopy(record) if record is not None else None

    def find(self, where: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return [deepcopy(r) for r in self._records.values() if _matches(r, where)]

    def find_one(self, where: dict[str, Any] | None = None) -> dict[str, Any] | None:
        results = self.find(where)
        return results[0] if results else None

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    # Mutations

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Create a record.

        Args:
            data: Record fields; an id is generated when the id field is missing

        Returns:
            The created record

        Raises:
            ValueError: If a record with the same id already exists
        """
        record = deepcopy(dict(data))
        if record.get(self.id_field) is None:
            record[self.id_field] = self._id_factory()
        model_id = str(record[self.id_field])

        with self._lock:
            if model_id in self._records:
                raise ValueError(f"{self.model_name} record {model_id} already exists")
            self._commit(model_id, record)
        return deepcopy(record)

    def update(self, model_id: Any, data: dict[str, Any]) -> dict[str, Any]:
        """
        Replace a record's data.

        Raises:
            KeyError: If the record does not exist
        """
        model_id = str(model_id)
        record = deepcopy(dict(data))
        with self._lock:
            existing = self._records.get(model_id)
            if existing is None:
                raise KeyError(f"{self.model_name} record {model_id} not found")
            record[self.id_field] = existing[self.id_field]
            self._commit(model_id, record)
        return deepcopy(record)

    def update_attributes(self, model_id: Any, attributes: dict[str, Any]) -> dict[str, Any]:
        """
        Merge attributes into an existing record.

        Raises:
            KeyError: If the record does not exist
        """
        model_id = str(model_id)
        with self._lock:
            existing = self._records.get(model_id)
            if existing is None:
                raise KeyError(f"{self.model_name} record {model_id} not found")
            record = deepcopy(existing)
            record.update(deepcopy(attributes))
            record[self.id_field] = existing[self.id_field]
            self._commit(model_id, record)
        return deepcopy(record)

    def upsert(self, data: dict[str, Any]) -> dict[str, Any]:
        """Replace the record with the same id, or create it."""
        record = deepcopy(dict(data))
        if record.get(self.id_field) is None:
            return self.create(record)
        model_id = str(record[self.id_field])
        with self._lock:
            self._commit(model_id, record)
        return deepcopy(record)

    def find_or_create(
        self, where: dict[str, Any], data: dict[str, Any]
    ) -> tuple[dict[str, Any], bool]:
        """
        Return the first record matching ``where``, creating ``data`` if none does.

        Returns:
            Tuple of (record, created)
        """
        with self._lock:
            existing = self.find_one(where)
            if existing is not None:
                return existing, False
            return self.create(data), True

    def update_all(self, where: dict[str, Any] | None, attributes: dict[str, Any]) -> int:
        """Merge attributes into every matching record. Returns the number updated."""
        with self._lock:
            ids = [model_id for model_id, r in self._records.items() if _matches(r, where)]
            for model_id in ids:
                record = deepcopy(self._records[model_id])
                record.update(deepcopy(attributes))
                record[self.id_field] = self._records[model_id][self.id_field]
                self._commit(model_id, record)
        return len(ids)

    def delete_by_id(self, model_id: Any) -> bool:
        """Delete a record. Returns False if it did not exist."""
        model_id = str(model_id)
        with self._lock:
            if model_id not in self._records:
                return False
            self._commit(model_id, None)
        return True

    def delete_all(self, where: dict[str, Any] | None = None) -> int:
        """Delete every matching record. Returns the number deleted."""
        with self._lock:
            ids = [model_id for model_id, r in self._records.items() if _matches(r, where)]
            for model_id in ids:
                self._commit(model_id, None)
        return len(ids)

    def apply_batch(self, operations: Sequence[BatchOperation]) -> list[BatchOperation]:
        try:
            batch = [
                op if isinstance(op, BatchOperation) else BatchOperation.model_validate(op)
                for op in operations
            ]
        except ValidationError as e:
            log.error("invalid_batch_operation", model_name=self.model_name, error=str(e))
            raise StoreWriteError(f"Invalid batch for {self.model_name}: {e}") from e

        writes: list[tuple[BatchOperation, dict[str, Any] | None]] = []
        for op in batch:
            if op.type is ChangeType.DELETE:
                writes.append((op, None))
                continue
            record = deepcopy(op.data)
            if record.get(self.id_field) is None:
                record[self.id_field] = op.model_id
            elif str(record[self.id_field]) != op.model_id:
                raise StoreWriteError(
                    f"Batch data for {op.model_id} carries id {record[self.id_field]}"
                )
            writes.append((op, record))

        applied = 0
        rejected: list[BatchOperation] = []
        with self._lock:
            for op, record in writes:
                current_revision = self.change_log.current_revision(op.model_id)
                if op.is_stale(current_revision):
                    log.warning(
                        "stale_operation_rejected",
                        model_name=self.model_name,
                        model_id=op.model_id,
                        expected_revision=op.expected_revision,
                        current_revision=current_revision,
                    )
                    rejected.append(op)
                    continue
                if record is None and op.model_id not in self._records:
                    continue
                self._commit(op.model_id, record, replicated=True)
                applied += 1

        log.info(
            "batch_applied",
            model_name=self.model_name,
            operations=len(batch),
            applied=applied,
            rejected=len(rejected),
        )
        return rejected

    def _commit(
        self, model_id: str, record: dict[str, Any] | None, replicated: bool = False
    ) -> Change:
        # Callers hold self._lock
        previous = self._records.get(model_id)
        if record is None:
            self._records.pop(model_id, None)
        else:
            self._records[model_id] = record

        change: Change | None = None
        try:
            change = self._tracker.track(model_id, record, replicated=replicated)
            self._after_commit(change)
        except Exception:
            if change is not None:
                self.change_log._discard_last(change)
            if previous is None:
                self._records.pop(model_id, None)
            else:
                self._records[model_id] = previous
            raise

        return change

    def _after_commit(self, change: Change) -> None:
        """Hook for subclasses that persist after each committed change."""

    # Checkpoints and changes

    def current_checkpoint(self) -> int:
        return self._tracker.current_checkpoint()

    def bump_checkpoint(self) -> int:
        with self._lock:
            return self._tracker.bump()

    def changes_since(
        self, checkpoint: int, change_filter: ChangeFilter | None = None
    ) -> list[Change]:
        return self._tracker.changes_since(checkpoint, change_filter)

    def latest_change(self, model_id: Any, since: int = NEVER_SYNCED) -> Change | None:
        return self._tracker.change_log.latest_for(str(model_id), since)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(model_name={self.model_name!r}, "
            f"records={len(self._records)}, checkpoint={self.current_checkpoint()})"
        )
