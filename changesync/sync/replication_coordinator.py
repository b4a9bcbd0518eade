"""Replication coordinator for one source-to-target pass."""

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, TypeVar, Union

import structlog

from changesync.models.change import BatchOperation, Change, ChangeType
from changesync.sync.checkpoint import NEVER_SYNCED
from changesync.sync.checkpoint_tracker import CheckpointTracker
from changesync.sync.conflict import Conflict
from changesync.sync.differ import Differ, group_by_model_id
from changesync.sync.errors import (
    InvalidSinceError,
    ReplicationError,
    SequencerError,
    StoreReadError,
    StoreWriteError,
)
from changesync.sync.models import (
    CheckpointPair,
    DiffResult,
    ReplicationOptions,
    ReplicationResult,
    ReplicationState,
)
from changesync.utils.logging_config import pass_context

if TYPE_CHECKING:
    from changesync.storage.base import RecordStore

log = structlog.stdlib.get_logger()

T = TypeVar("T")

Since = Union[int, CheckpointPair, Mapping[str, int], None]


def _check_int(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidSinceError(f"{label} checkpoint must be an integer, got {value!r}")
    return value


def parse_since(since: Since) -> CheckpointPair | None:
    """
    Normalize the ``since`` argument of a pass.

    Args:
        since: None, one checkpoint for both sides, a CheckpointPair, or a
            mapping with "source" and "target" keys

    Returns:
        CheckpointPair, or None when the caller gave no bound

    Raises:
        InvalidSinceError: If since has any other shape
    """
    if since is None:
        return None
    if isinstance(since, CheckpointPair):
        return since
    if isinstance(since, Mapping):
        missing = {"source", "target"} - set(since)
        if missing:
            raise InvalidSinceError(f"since is missing {sorted(missing)}")
        return CheckpointPair(
            source=_check_int(since["source"], "source"),
            target=_check_int(since["target"], "target"),
        )
    value = _check_int(since, "since")
    return CheckpointPair(source=value, target=value)


class ReplicationCoordinator:
    """Orchestrates a replication pass from a source store to a target store."""

    def __init__(
        self,
        checkpoint_tracker: CheckpointTracker | None = None,
        differ: Differ | None = None,
    ):
        """
        Initialize replication coordinator.

        Args:
            checkpoint_tracker: Optional tracker supplying default ``since``
                values and recording the checkpoints of successful passes
            differ: Optional Differ instance
        """
        self._checkpoint_tracker = checkpoint_tracker
        self._differ: Differ = differ or Differ()

    def replicate(
        self,
        source: "RecordStore",
        target: "RecordStore",
        since: Since = None,
        options: ReplicationOptions | None = None,
    ) -> ReplicationResult:
        """
        Run one replication pass.

        This method:
        1. Fences both stores so later writes get higher checkpoints
        2. Reads source changes after ``since.source``
        3. Diffs them against target changes after ``since.target``
        4. Applies the safe subset, reporting records the target changed meanwhile
           as conflicts
        5. Reads both stores' checkpoints after the apply

        Args:
            source: Store changes are read from
            target: Store changes are applied to
            since: Lower bound(s) for the change queries; defaults to the
                tracked checkpoints of the last pass, or never-synced
            options: Filter and origin options

        Returns:
            ReplicationResult with conflicts and the checkpoints to resume from

        Raises:
            InvalidSinceError: If since is malformed
            StoreReadError: If reading either store fails
            StoreWriteError: If applying the batch fails
            SequencerError: If reading or bumping a checkpoint fails
        """
        if source is target:
            raise ValueError("source and target must be different stores")

        options = options or ReplicationOptions()
        with pass_context(source.name, target.name, source.model_name):
            return self._run(source, target, since, options)

    def _run(
        self,
        source: "RecordStore",
        target: "RecordStore",
        since: Since,
        options: ReplicationOptions,
    ) -> ReplicationResult:
        started_at = datetime.now(timezone.utc)
        bounds = parse_since(since) or self._default_since(source, target)

        log.info(
            "replication_started",
            source=source.name,
            target=target.name,
            model_name=source.model_name,
            source_since=bounds.source,
            target_since=bounds.target,
        )

        try:
            self._guard(source.bump_checkpoint, SequencerError, "fence source")
            self._guard(target.bump_checkpoint, SequencerError, "fence target")

            source_changes = self._read_source_changes(source, bounds.source, options)

            diff = self._guard(
                lambda: self._differ.diff(
                    target, bounds.target, source_changes, source_store=source
                ),
                StoreReadError,
                "diff against target",
            )

            applied, late_conflicts = self._apply(source, target, diff)

            # Sampled after the apply so concurrent writes fall into the next pass
            checkpoints = CheckpointPair(
                source=self._guard(
                    source.current_checkpoint, SequencerError, "read source checkpoint"
                ),
                target=self._guard(
                    target.current_checkpoint, SequencerError, "read target checkpoint"
                ),
            )
        except ReplicationError as e:
            log.error(
                "replication_failed",
                source=source.name,
                target=target.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        finished_at = datetime.now(timezone.utc)

        if self._checkpoint_tracker is not None:
            self._checkpoint_tracker.save_state(
                ReplicationState(
                    source=source.name,
                    target=target.name,
                    source_checkpoint=checkpoints.source,
                    target_checkpoint=checkpoints.target,
                    last_replicated_at=finished_at,
                )
            )

        result = ReplicationResult(
            conflicts=diff.conflicts + late_conflicts,
            checkpoints=checkpoints,
            applied=applied,
            started_at=started_at,
            finished_at=finished_at,
        )

        log.info(
            "replication_completed",
            source=source.name,
            target=target.name,
            changes_read=len(source_changes),
            applied=applied,
            skipped=len(diff.skipped),
            conflicts=len(result.conflicts),
            source_checkpoint=checkpoints.source,
            target_checkpoint=checkpoints.target,
            duration_seconds=result.duration_seconds,
        )
        return result

    def _default_since(self, source: "RecordStore", target: "RecordStore") -> CheckpointPair:
        if self._checkpoint_tracker is not None:
            state = self._checkpoint_tracker.load_state(source.name, target.name)
            if state is not None:
                return state.checkpoints
        return CheckpointPair(source=NEVER_SYNCED, target=NEVER_SYNCED)

    def _read_source_changes(
        self, source: "RecordStore", since: int, options: ReplicationOptions
    ) -> list[Change]:
        """
        Read the source window and keep the full history of every forwarded record.

        Origin and the user's filter are judged per record on the unfiltered
        window, so the Differ always sees each record's complete history.
        """
        changes = self._guard(
            lambda: source.changes_since(since),
            StoreReadError,
            "read source changes",
        )

        forwarded: set[str] = set()
        withheld = 0
        for model_id, history in group_by_model_id(changes).items():
            # A record whose latest source change was applied from elsewhere is not forwarded
            if not options.include_replicated and history[-1].replicated:
                withheld += 1
                continue
            if options.filter is not None and not options.filter.selects(history):
                continue
            forwarded.add(model_id)

        if withheld:
            log.debug("replicated_changes_withheld", source=source.name, records=withheld)
        return [change for change in changes if change.model_id in forwarded]

    def _apply(
        self, source: "RecordStore", target: "RecordStore", diff: DiffResult
    ) -> tuple[int, list[Conflict]]:
        """
        Write the appliable records to the target.

        Each operation carries the target revision the Differ judged it
        against. The target rejects operations whose record changed since,
        and those come back as conflicts instead of overwriting the edit.

        Returns:
            Tuple of (records applied, conflicts found while applying)
        """
        if not diff.to_apply:
            return 0, []

        batch: list[BatchOperation] = []
        for change in diff.to_apply:
            record = self._guard(
                lambda: source.read(change.model_id),
                StoreReadError,
                f"read source record {change.model_id}",
            )
            precondition = {
                "check_revision": change.model_id in diff.target_revisions,
                "expected_revision": diff.target_revisions.get(change.model_id),
            }
            if record is None:
                batch.append(
                    BatchOperation(
                        model_id=change.model_id, type=ChangeType.DELETE, **precondition
                    )
                )
            else:
                change_type = ChangeType.CREATE if change.is_delete else change.type
                batch.append(
                    BatchOperation(
                        model_id=change.model_id, type=change_type, data=record, **precondition
                    )
                )

        log.info("applying_changes", target=target.name, operations=len(batch))
        rejected = self._guard(lambda: target.apply_batch(batch), StoreWriteError, "apply batch")

        source_changes = {change.model_id: change for change in diff.to_apply}
        conflicts: list[Conflict] = []
        for op in rejected:
            target_change = self._guard(
                lambda: target.latest_change(op.model_id),
                StoreReadError,
                f"read target change {op.model_id}",
            )
            log.info(
                "conflict_detected",
                model_id=op.model_id,
                source_type=source_changes[op.model_id].type.value,
                target_type=target_change.type.value,
                target_changed_during_pass=True,
            )
            conflicts.append(
                Conflict(
                    op.model_id,
                    source_changes[op.model_id],
                    target_change,
                    source_store=source,
                    target_store=target,
                )
            )
        return len(batch) - len(rejected), conflicts

    @staticmethod
    def _guard(
        operation: Callable[[], T],
        error_cls: type[ReplicationError],
        action: str,
    ) -> T:
        try:
            return operation()
        except ReplicationError:
            raise
        except Exception as e:
            raise error_cls(f"Failed to {action}: {e}") from e


def replicate(
    source: "RecordStore",
    target: "RecordStore",
    since: Since = None,
    options: ReplicationOptions | None = None,
    checkpoint_tracker: CheckpointTracker | None = None,
) -> ReplicationResult:
    """Run one replication pass with a one-off coordinator."""
    return ReplicationCoordinator(checkpoint_tracker=checkpoint_tracker).replicate(
        source, target, since=since, options=options
    )
