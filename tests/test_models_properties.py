"""Property-based tests for change and batch models."""

import pytest
import structlog
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from changesync.models import BatchOperation, Change, ChangeFilter, ChangeType

log = structlog.stdlib.get_logger()

revisions = st.text(alphabet="0123456789abcdef", min_size=40, max_size=40)


@st.composite
def change_strategy(draw: st.DrawFn) -> Change:
    """Generate a random, internally consistent Change."""
    change_type = draw(st.sampled_from(list(ChangeType)))
    revision = None if change_type is ChangeType.DELETE else draw(revisions)
    prev_revision = None if change_type is ChangeType.CREATE else draw(st.none() | revisions)
    return Change(
        model_name=draw(st.sampled_from(["notes", "tasks"])),
        model_id=draw(st.one_of(st.integers(min_value=0), st.text(min_size=1, max_size=8))),
        revision=revision,
        prev_revision=prev_revision,
        checkpoint=draw(st.integers(min_value=0, max_value=10_000)),
        type=change_type,
        replicated=draw(st.booleans()),
    )


class TestChange:
    @given(change=change_strategy())
    def test_serialization_preserves_change(self, change: Change) -> None:
        """A change read back from its dictionary form is equal to the original."""
        data = change.to_dict()

        assert data["type"] == change.type.value
        assert Change.from_dict(data) == change

    @given(model_id=st.integers())
    def test_numeric_ids_are_normalized_to_strings(self, model_id: int) -> None:
        change = Change(
            model_name="notes",
            model_id=model_id,
            revision="a" * 40,
            checkpoint=0,
            type=ChangeType.CREATE,
        )

        assert change.model_id == str(model_id)

    def test_delete_must_not_carry_revision(self) -> None:
        with pytest.raises(ValidationError):
            Change(
                model_name="notes",
                model_id="1",
                revision="a" * 40,
                checkpoint=0,
                type=ChangeType.DELETE,
            )

    @pytest.mark.parametrize("change_type", [ChangeType.CREATE, ChangeType.UPDATE])
    def test_non_delete_requires_revision(self, change_type: ChangeType) -> None:
        with pytest.raises(ValidationError):
            Change(model_name="notes", model_id="1", checkpoint=0, type=change_type)

    def test_empty_model_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Change(
                model_name="",
                model_id="1",
                revision="a" * 40,
                checkpoint=0,
                type=ChangeType.CREATE,
            )

    def test_changes_are_immutable(self) -> None:
        change = Change(
            model_name="notes",
            model_id="1",
            revision="a" * 40,
            checkpoint=0,
            type=ChangeType.CREATE,
        )

        with pytest.raises(ValidationError):
            change.checkpoint = 5

    def test_is_delete(self) -> None:
        deleted = Change(
            model_name="notes",
            model_id="1",
            prev_revision="a" * 40,
            checkpoint=3,
            type=ChangeType.DELETE,
        )

        assert deleted.is_delete
        assert deleted.revision is None


class TestChangeFilter:
    @given(change=change_strategy())
    def test_empty_filter_matches_everything(self, change: Change) -> None:
        assert ChangeFilter().matches(change)

    @given(change=change_strategy())
    def test_model_id_filter(self, change: Change) -> None:
        log.info("test_model_id_filter", model_id=change.model_id)

        assert ChangeFilter(model_ids=[change.model_id]).matches(change)
        assert not ChangeFilter(model_ids=[change.model_id + "x"]).matches(change)

    @given(change=change_strategy())
    def test_type_filter(self, change: Change) -> None:
        others = {t for t in ChangeType if t is not change.type}

        assert ChangeFilter(types={change.type}).matches(change)
        assert not ChangeFilter(types=others).matches(change)

    @given(change=change_strategy())
    def test_replicated_filter(self, change: Change) -> None:
        assert ChangeFilter(include_replicated=False).matches(change) is not change.replicated

    def test_model_ids_are_normalized(self) -> None:
        change_filter = ChangeFilter(model_ids=[1, "2"])

        assert change_filter.model_ids == {"1", "2"}


class TestBatchOperation:
    def test_upsert_requires_data(self) -> None:
        with pytest.raises(ValidationError):
            BatchOperation(model_id="1", type=ChangeType.UPDATE)

    def test_delete_without_data(self) -> None:
        operation = BatchOperation(model_id=7, type=ChangeType.DELETE)

        assert operation.model_id == "7"
        assert operation.data is None

    def test_from_plain_dict(self) -> None:
        operation = BatchOperation.model_validate(
            {"model_id": "1", "type": "create", "data": {"id": "1", "name": "a"}}
        )

        assert operation.type is ChangeType.CREATE
        assert operation.data == {"id": "1", "name": "a"}

    def test_revision_check_is_opt_in(self) -> None:
        unchecked = BatchOperation(model_id="1", type=ChangeType.DELETE, expected_revision="r1")
        checked = BatchOperation(
            model_id="1", type=ChangeType.DELETE, check_revision=True, expected_revision="r1"
        )
        absent = BatchOperation(model_id="1", type=ChangeType.DELETE, check_revision=True)

        assert not unchecked.is_stale("r2")
        assert not checked.is_stale("r1")
        assert checked.is_stale("r2")
        assert checked.is_stale(None)
        assert not absent.is_stale(None)
        assert absent.is_stale("r1")


def history_of(*steps: tuple[ChangeType, bool]) -> list[Change]:
    """Build a hash-chained history for record "1" from (type, replicated) steps."""
    history: list[Change] = []
    previous: str | None = None
    for checkpoint, (change_type, replicated) in enumerate(steps):
        revision = None if change_type is ChangeType.DELETE else f"r{checkpoint}"
        history.append(
            Change(
                model_name="notes",
                model_id="1",
                revision=revision,
                prev_revision=previous,
                checkpoint=checkpoint,
                type=change_type,
                replicated=replicated,
            )
        )
        previous = revision
    return history


class TestChangeFilterSelects:
    def test_type_matches_anywhere_in_the_history(self) -> None:
        history = history_of((ChangeType.CREATE, False), (ChangeType.UPDATE, False))

        assert ChangeFilter(types=["create"]).selects(history)
        assert ChangeFilter(types=["update"]).selects(history)
        assert not ChangeFilter(types=["delete"]).selects(history)

    def test_origin_is_judged_on_the_latest_change(self) -> None:
        foreign_now = history_of((ChangeType.CREATE, False), (ChangeType.UPDATE, True))
        local_now = history_of((ChangeType.CREATE, True), (ChangeType.UPDATE, False))

        assert not ChangeFilter(include_replicated=False).selects(foreign_now)
        assert ChangeFilter(include_replicated=False).selects(local_now)

    def test_model_ids_and_empty_history(self) -> None:
        history = history_of((ChangeType.CREATE, False))

        assert ChangeFilter(model_ids=["1"]).selects(history)
        assert not ChangeFilter(model_ids=["2"]).selects(history)
        assert not ChangeFilter().selects([])
