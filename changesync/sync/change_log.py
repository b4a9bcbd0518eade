"""
Append-only change log.

Holds the Change records of one model and answers "what changed since
checkpoint X" queries.
"""

import threading
from bisect import bisect_right
from collections.abc import Iterable, Iterator

import structlog

from changesync.models.change import Change, ChangeFilter, ChangeType
from changesync.sync.errors import ChangeLogCorruptError, InvalidSinceError

log = structlog.stdlib.get_logger()


def _check_checkpoint(checkpoint: object) -> int:
    if isinstance(checkpoint, bool) or not isinstance(checkpoint, int):
        raise InvalidSinceError(f"checkpoint must be an integer, got {checkpoint!r}")
    return checkpoint


class ChangeLog:
    """
    Append-only log of changes for one model.

    Changes are kept in commit order. Checkpoints never decrease along the
    log, which lets ``changes_since`` bisect instead of scanning.
    """

    def __init__(self, model_name: str):
        """
        Initialize an empty change log.

        Args:
            model_name: Logical store identifier stamped on every change
        """
        self.model_name = model_name
        self._changes: list[Change] = []
        self._checkpoints: list[int] = []
        self._latest: dict[str, Change] = {}
        self._pruned_horizon: int | None = None
        self._lock = threading.RLock()

    @classmethod
    def restore(
        cls,
        model_name: str,
        changes: Iterable[Change],
        pruned_horizon: int | None = None,
    ) -> "ChangeLog":
        """
        Rebuild a log from previously recorded changes.

        Args:
            model_name: Logical store identifier
            changes: Changes in commit order
            pruned_horizon: Horizon of an earlier ``prune`` call, if any

        Returns:
            ChangeLog holding the given changes

        Raises:
            ChangeLogCorruptError: If the changes break the hash chain
        """
        change_log = cls(model_name)
        change_log._pruned_horizon = pruned_horizon
        for change in changes:
            change_log._append(change)
        change_log.verify_chain()
        return change_log

    @property
    def pruned_horizon(self) -> int | None:
        return self._pruned_horizon

    def record_change(
        self,
        model_id: str,
        revision: str | None,
        checkpoint: int,
        replicated: bool = False,
    ) -> Change:
        """
        Append a change for a record.

        The change type and ``prev_revision`` are derived from the record's
        previous change: no live prior revision means CREATE, a ``None``
        revision means DELETE, anything else is an UPDATE.

        Args:
            model_id: Id of the changed record
            revision: Revision after the mutation, None for deletes
            checkpoint: Checkpoint in effect at commit time
            replicated: Whether the mutation applied data from another store

        Returns:
            The recorded Change
        """
        model_id = str(model_id)
        with self._lock:
            previous = self._latest.get(model_id)
            prev_revision = previous.revision if previous is not None else None

            if revision is None:
                change_type = ChangeType.DELETE
            elif prev_revision is None:
                change_type = ChangeType.CREATE
            else:
                change_type = ChangeType.UPDATE

            change = Change(
                model_name=self.model_name,
                model_id=model_id,
                revision=revision,
                prev_revision=prev_revision,
                checkpoint=checkpoint,
                type=change_type,
                replicated=replicated,
            )
            self._append(change)

        log.debug(
            "change_recorded",
            model_name=self.model_name,
            model_id=model_id,
            change_type=change_type.value,
            checkpoint=checkpoint,
            replicated=replicated,
        )
        return change

    def _append(self, change: Change) -> None:
        if change.model_name != self.model_name:
            raise ValueError(
                f"change for model {change.model_name!r} appended to log of {self.model_name!r}"
            )
        if self._checkpoints and change.checkpoint < self._checkpoints[-1]:
            raise ValueError(
                f"checkpoint {change.checkpoint} is older than the last recorded "
                f"checkpoint {self._checkpoints[-1]}"
            )
        self._changes.append(change)
        self._checkpoints.append(change.checkpoint)
        self._latest[change.model_id] = change

    def _discard_last(self, change: Change) -> None:
        """Take back the most recent change when its mutation was rolled back."""
        with self._lock:
            if not self._changes or self._changes[-1] is not change:
                raise ValueError(f"change of {change.model_id} is not the last recorded change")
            self._changes.pop()
            self._checkpoints.pop()
            # The previous latest change survives any prune, so it is still in the log
            earlier = next(
                (c for c in reversed(self._changes) if c.model_id == change.model_id), None
            )
            if earlier is None:
                del self._latest[change.model_id]
            else:
                self._latest[change.model_id] = earlier

        log.debug(
            "change_discarded",
            model_name=self.model_name,
            model_id=change.model_id,
            checkpoint=change.checkpoint,
        )

    def changes_since(
        self, checkpoint: int, change_filter: ChangeFilter | None = None
    ) -> list[Change]:
        """
        Get all changes committed after a checkpoint.

        Args:
            checkpoint: Return changes with a strictly greater checkpoint
            change_filter: Optional filter on ids, types and origin

        Returns:
            Matching changes in ascending checkpoint order, empty when none qualify

        Raises:
            InvalidSinceError: If checkpoint is not an integer
        """
        checkpoint = _check_checkpoint(checkpoint)
        with self._lock:
            start = bisect_right(self._checkpoints, checkpoint)
            changes = self._changes[start:]

        if change_filter is not None:
            changes = [change for change in changes if change_filter.matches(change)]
        return changes

    def latest_for(self, model_id: str, since: int | None = None) -> Change | None:
        """
        Get the most recent change of a record.

        Args:
            model_id: Record id
            since: If given, only a change with a greater checkpoint counts

        Returns:
            The latest change, or None
        """
        with self._lock:
            change = self._latest.get(str(model_id))
        if change is None:
            return None
        if since is not None and change.checkpoint <= _check_checkpoint(since):
            return None
        return change

    def changes_for(self, model_id: str) -> list[Change]:
        """Get every retained change of one record in commit order."""
        model_id = str(model_id)
        with self._lock:
            return [change for change in self._changes if change.model_id == model_id]

    def current_revision(self, model_id: str) -> str | None:
        """Revision of the record's latest change, None if deleted or unknown."""
        change = self.latest_for(model_id)
        return change.revision if change is not None else None

    def last_checkpoint(self) -> int | None:
        """Checkpoint of the most recent change, None for an empty log."""
        with self._lock:
            return self._checkpoints[-1] if self._checkpoints else None

    def verify_chain(self) -> None:
        """
        Check the hash-chain invariant for every record.

        Raises:
            ChangeLogCorruptError: If a change's prev_revision does not match
                the revision of the change before it
        """
        previous: dict[str, Change] = {}
        with self._lock:
            changes = list(self._changes)

        for change in changes:
            before = previous.get(change.model_id)
            if before is None:
                # After pruning, the first retained change may point at a dropped one
                if change.prev_revision is not None and self._pruned_horizon is None:
                    raise ChangeLogCorruptError(
                        f"first change of {change.model_id} at checkpoint "
                        f"{change.checkpoint} has prev_revision {change.prev_revision}"
                    )
            elif change.prev_revision != before.revision:
                raise ChangeLogCorruptError(
                    f"change of {change.model_id} at checkpoint {change.checkpoint} "
                    f"expected prev_revision {before.revision}, got {change.prev_revision}"
                )
            previous[change.model_id] = change

    def prune(self, horizon: int) -> int:
        """
        Drop changes at or below a checkpoint horizon.

        The latest change of every record is always retained so new changes
        keep chaining onto it.

        Args:
            horizon: Changes with checkpoint <= horizon become eligible for removal

        Returns:
            Number of changes removed
        """
        horizon = _check_checkpoint(horizon)
        with self._lock:
            latest_ids = {id(change) for change in self._latest.values()}
            kept = [
                change
                for change in self._changes
                if change.checkpoint > horizon or id(change) in latest_ids
            ]
            removed = len(self._changes) - len(kept)
            self._changes = kept
            self._checkpoints = [change.checkpoint for change in kept]
            if removed:
                self._pruned_horizon = max(horizon, self._pruned_horizon or horizon)

        log.info(
            "change_log_pruned",
            model_name=self.model_name,
            horizon=horizon,
            removed=removed,
        )
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._changes)

    def __iter__(self) -> Iterator[Change]:
        with self._lock:
            return iter(list(self._changes))
