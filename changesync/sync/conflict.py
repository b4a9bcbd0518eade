"""Conflicts between a source and a target change to the same record."""

from typing import TYPE_CHECKING, Any

import structlog

from changesync.models.change import BatchOperation, Change, ChangeType

if TYPE_CHECKING:
    from changesync.storage.base import RecordStore

log = structlog.stdlib.get_logger()


class Conflict:
    """
    A record changed on both stores since they last agreed.

    Conflicts are never resolved by the engine. Callers inspect them with
    ``type``, ``changes`` and ``models`` and may settle one explicitly with
    one of the ``resolve_*`` methods.
    """

    def __init__(
        self,
        model_id: str,
        source_change: Change,
        target_change: Change,
        source_store: "RecordStore",
        target_store: "RecordStore",
    ):
        """
        Initialize conflict.

        Args:
            model_id: Id of the conflicting record
            source_change: Latest source change for the record
            target_change: Latest target change for the record
            source_store: Store the source change came from
            target_store: Store the target change came from
        """
        self.model_id = str(model_id)
        self.source_change = source_change
        self.target_change = target_change
        self.source_store = source_store
        self.target_store = target_store

    def type(self) -> ChangeType:
        """DELETE if either side deleted the record, UPDATE otherwise."""
        if self.source_change.is_delete or self.target_change.is_delete:
            return ChangeType.DELETE
        return ChangeType.UPDATE

    def changes(self) -> tuple[Change, Change]:
        """Return ``(source_change, target_change)``."""
        return self.source_change, self.target_change

    def models(self) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
        """
        Read the record's current state from both stores.

        Returns:
            Tuple of (source record, target record); None on a side where
            the record no longer exists
        """
        return self.source_store.read(self.model_id), self.target_store.read(self.model_id)

    def swap_parties(self) -> "Conflict":
        """Return the same conflict seen from the target's side."""
        return Conflict(
            self.model_id,
            self.target_change,
            self.source_change,
            self.target_store,
            self.source_store,
        )

    def resolve_using_source(self) -> None:
        """Make the target match the source's current state of the record."""
        source, _ = self.models()
        self._write(self.target_store, source)
        log.info("conflict_resolved", model_id=self.model_id, resolution="source")

    def resolve_using_target(self) -> None:
        """Make the source match the target's current state of the record."""
        _, target = self.models()
        self._write(self.source_store, target)
        log.info("conflict_resolved", model_id=self.model_id, resolution="target")

    def resolve_manually(self, data: dict[str, Any] | None) -> None:
        """
        Write caller-chosen data to both stores.

        Args:
            data: Record data both sides should hold, or None to delete on both
        """
        self._write(self.source_store, data)
        self._write(self.target_store, data)
        log.info("conflict_resolved", model_id=self.model_id, resolution="manual")

    def _write(self, store: "RecordStore", data: dict[str, Any] | None) -> None:
        if data is None:
            operation = BatchOperation(model_id=self.model_id, type=ChangeType.DELETE)
        else:
            operation = BatchOperation(model_id=self.model_id, type=ChangeType.UPDATE, data=data)
        store.apply_batch([operation])

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary for serialization."""
        return {
            "model_id": self.model_id,
            "type": self.type().value,
            "source_change": self.source_change.to_dict(),
            "target_change": self.target_change.to_dict(),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Conflict):
            return NotImplemented
        return (
            self.model_id == other.model_id
            and self.source_change == other.source_change
            and self.target_change == other.target_change
        )

    def __repr__(self) -> str:
        return (
            f"Conflict(model_id={self.model_id!r}, type={self.type().value}, "
            f"source={self.source_change.type.value}, target={self.target_change.type.value})"
        )
