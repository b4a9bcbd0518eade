"""Classification of incoming changes against a target store."""

from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from changesync.models.change import Change
from changesync.sync.conflict import Conflict
from changesync.sync.models import DiffResult

if TYPE_CHECKING:
    from changesync.storage.base import RecordStore

log = structlog.stdlib.get_logger()


def group_by_model_id(changes: Sequence[Change]) -> dict[str, list[Change]]:
    """Group changes by record id, keeping first-appearance order."""
    grouped: dict[str, list[Change]] = {}
    for change in changes:
        grouped.setdefault(change.model_id, []).append(change)
    return grouped


def _states_passed_through(history: Sequence[Change]) -> set[str | None]:
    """Every state of the record the source's history touched.

    ``None`` stands for "absent" and only counts when the source itself
    deleted the record; an unknown starting point is not evidence of absence.
    """
    states: set[str | None] = set()
    for change in history:
        states.add(change.revision)
        if change.prev_revision is not None:
            states.add(change.prev_revision)
    if not any(change.is_delete for change in history):
        states.discard(None)
    return states


class Differ:
    """Decides which incoming source changes are safe to apply to a target."""

    def diff(
        self,
        target_store: "RecordStore",
        since: int,
        incoming_changes: Sequence[Change],
        source_store: "RecordStore | None" = None,
    ) -> DiffResult:
        """
        Partition incoming changes into appliable ones and conflicts.

        For every record id in ``incoming_changes`` the target's latest change
        after ``since`` is compared with the source's history for that id:

        - no target change: apply
        - both sides deleted: nothing to do
        - same revision on both sides: nothing to do
        - target sits at a state the source's history passed through: apply
        - anything else, including missing history: conflict

        Args:
            target_store: Store the changes would be applied to
            since: Only target changes after this checkpoint count
            incoming_changes: Source changes in checkpoint order
            source_store: Store the changes came from, used by Conflict.models

        Returns:
            DiffResult with the source's latest change per appliable id, the
            target revision each of them was judged against and the detected
            conflicts
        """
        result = DiffResult()
        grouped = group_by_model_id(incoming_changes)

        for model_id, history in grouped.items():
            source_change = history[-1]
            target_change = target_store.latest_change(model_id, since)

            if target_change is None:
                current = target_store.latest_change(model_id)
                result.to_apply.append(source_change)
                result.target_revisions[model_id] = (
                    current.revision if current is not None else None
                )
                continue

            if source_change.is_delete and target_change.is_delete:
                result.skipped.append(model_id)
                continue

            if (
                source_change.revision is not None
                and source_change.revision == target_change.revision
            ):
                result.skipped.append(model_id)
                continue

            if target_change.revision in _states_passed_through(history):
                result.to_apply.append(source_change)
                result.target_revisions[model_id] = target_change.revision
                continue

            log.info(
                "conflict_detected",
                model_id=model_id,
                source_type=source_change.type.value,
                target_type=target_change.type.value,
                target_replicated=target_change.replicated,
            )
            result.conflicts.append(
                Conflict(
                    model_id,
                    source_change,
                    target_change,
                    source_store=source_store,
                    target_store=target_store,
                )
            )

        log.info(
            "changes_diffed",
            model_name=target_store.model_name,
            since=since,
            incoming=len(incoming_changes),
            records=len(grouped),
            to_apply=len(result.to_apply),
            conflicts=len(result.conflicts),
            skipped=len(result.skipped),
        )
        return result
