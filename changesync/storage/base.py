"""Record store interface consumed by the replication engine."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from changesync.models.change import BatchOperation, Change, ChangeFilter
from changesync.sync.checkpoint import NEVER_SYNCED


class RecordStore(ABC):
    """
    The narrow surface replication needs from a record store.

    A store owns its change log and its checkpoint sequencer. Every mutation
    it commits must be reported to its change tracker.
    """

    model_name: str
    name: str

    @abstractmethod
    def read(self, model_id: Any) -> dict[str, Any] | None:
        """Return the current record for an id, or None if it does not exist."""

    @abstractmethod
    def find(self, where: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Return all records whose fields equal the values in ``where``."""

    @abstractmethod
    def apply_batch(self, operations: Sequence[BatchOperation]) -> list[BatchOperation]:
        """
        Apply replicated upserts and deletes.

        Changes recorded for these writes are tagged as replicated. An
        operation with ``check_revision`` set is only applied while the
        record's current revision still equals its ``expected_revision``;
        the check and the write happen under the store's write lock.

        Returns:
            The operations rejected because the record moved on

        Raises:
            StoreWriteError: If the batch cannot be applied
        """

    @abstractmethod
    def current_checkpoint(self) -> int:
        """Return the last fenced checkpoint."""

    @abstractmethod
    def bump_checkpoint(self) -> int:
        """Fence the change history and return the new checkpoint."""

    @abstractmethod
    def changes_since(
        self, checkpoint: int, change_filter: ChangeFilter | None = None
    ) -> list[Change]:
        """Return changes with a checkpoint greater than ``checkpoint``, ascending."""

    @abstractmethod
    def latest_change(self, model_id: Any, since: int = NEVER_SYNCED) -> Change | None:
        """Return the record's latest change recorded after ``since``, if any."""

    def checkpoint(self) -> int:
        """Alias of ``bump_checkpoint``."""
        return self.bump_checkpoint()


def changes_since(
    store: RecordStore, checkpoint: int, change_filter: ChangeFilter | None = None
) -> list[Change]:
    """Module-level shortcut for ``store.changes_since``."""
    return store.changes_since(checkpoint, change_filter)
