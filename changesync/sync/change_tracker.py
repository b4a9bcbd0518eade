"""Change tracking for record stores."""

from collections.abc import Mapping
from typing import Any

import structlog

from changesync.models.change import Change, ChangeFilter
from changesync.sync.change_log import ChangeLog
from changesync.sync.checkpoint import CheckpointSequencer
from changesync.sync.revision import revision_for

log = structlog.stdlib.get_logger()


class ChangeTracker:
    """
    Records one Change for every committed mutation of a store.

    Stores call ``track`` from their single commit path, while holding the
    write lock that also guards ``bump``. That keeps each change atomic with
    the write it describes and stops a commit from straddling a checkpoint
    fence.
    """

    def __init__(
        self,
        model_name: str,
        sequencer: CheckpointSequencer | None = None,
        change_log: ChangeLog | None = None,
    ):
        """
        Initialize change tracker.

        Args:
            model_name: Logical store identifier
            sequencer: The store's own sequencer (a fresh one if None)
            change_log: Existing log to append to (a fresh one if None)
        """
        if change_log is not None and change_log.model_name != model_name:
            raise ValueError(
                f"change log belongs to {change_log.model_name!r}, not {model_name!r}"
            )
        self.model_name = model_name
        self.sequencer = sequencer or CheckpointSequencer(name=model_name)
        self.change_log = change_log if change_log is not None else ChangeLog(model_name)

    def track(
        self,
        model_id: Any,
        data: Mapping[str, Any] | None,
        replicated: bool = False,
    ) -> Change:
        """
        Record the change produced by a committed mutation.

        Args:
            model_id: Id of the mutated record
            data: Record data after the write, None if the record was deleted
            replicated: True when the write applied data from another store

        Returns:
            The recorded Change
        """
        revision = revision_for(data) if data is not None else None
        return self.change_log.record_change(
            model_id=str(model_id),
            revision=revision,
            checkpoint=self.sequencer.pending(),
            replicated=replicated,
        )

    def current_checkpoint(self) -> int:
        return self.sequencer.current()

    def bump(self) -> int:
        return self.sequencer.bump()

    def changes_since(
        self, checkpoint: int, change_filter: ChangeFilter | None = None
    ) -> list[Change]:
        return self.change_log.changes_since(checkpoint, change_filter)
