"""Pydantic models for change records and batch operations."""

from collections.abc import Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ChangeType(str, Enum):
    """Kind of mutation a change records."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Change(BaseModel):
    """One committed mutation of one record.

    Changes are append-only. For a given ``(model_name, model_id)`` the
    changes ordered by checkpoint form a hash chain: each ``prev_revision``
    equals the ``revision`` of the change before it.
    """

    model_config = ConfigDict(
        frozen=True,
        protected_namespaces=(),
        json_schema_extra={
            "example": {
                "model_name": "notes",
                "model_id": "42",
                "revision": "3f786850e387550fdab836ed7e6dc881de23001b",
                "prev_revision": "89e6c98d92887913cadf06b2adb97f26cde4849b",
                "checkpoint": 7,
                "type": "update",
                "replicated": False,
            }
        },
    )

    model_name: str = Field(default=..., min_length=1, description="Logical store identifier")
    model_id: str = Field(default=..., description="Record id, always a string")
    revision: str | None = Field(
        default=None, description="Content hash after the mutation, None for deletes"
    )
    prev_revision: str | None = Field(
        default=None, description="Revision of the preceding change for the same record"
    )
    checkpoint: int = Field(default=..., description="Checkpoint in effect at commit time")
    type: ChangeType = Field(default=..., description="Kind of mutation")
    replicated: bool = Field(
        default=False, description="True when produced by applying data from another store"
    )

    @field_validator("model_id", mode="before")
    @classmethod
    def normalize_model_id(cls, v: Any) -> str:
        """Coerce numeric and other ids to their string form."""
        if v is None:
            raise ValueError("model_id is required")
        return str(v)

    @model_validator(mode="after")
    def check_revision_matches_type(self) -> "Change":
        if self.type is ChangeType.DELETE and self.revision is not None:
            raise ValueError("delete changes carry no revision")
        if self.type is not ChangeType.DELETE and self.revision is None:
            raise ValueError(f"{self.type.value} changes require a revision")
        return self

    @property
    def is_delete(self) -> bool:
        return self.type is ChangeType.DELETE

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary for serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Change":
        """Create from a dictionary produced by ``to_dict``."""
        return cls.model_validate(d)


class ChangeFilter(BaseModel):
    """Optional restriction applied by ``changes_since``."""

    model_ids: set[str] | None = Field(
        default=None, description="Only return changes for these record ids"
    )
    types: set[ChangeType] | None = Field(
        default=None, description="Only return changes of these types"
    )
    include_replicated: bool = Field(
        default=True, description="Whether changes tagged as replicated are returned"
    )

    @field_validator("model_ids", mode="before")
    @classmethod
    def normalize_model_ids(cls, v: Any) -> set[str] | None:
        if v is None:
            return None
        return {str(item) for item in v}

    def matches(self, change: Change) -> bool:
        """Return True if the change passes this filter."""
        if self.model_ids is not None and change.model_id not in self.model_ids:
            return False
        if self.types is not None and change.type not in self.types:
            return False
        if not self.include_replicated and change.replicated:
            return False
        return True

    def selects(self, history: Sequence[Change]) -> bool:
        """
        Return True if a record with this change history passes the filter.

        Types are matched against any change in the history. Origin is judged
        on the latest change, which describes the record's current state.
        """
        if not history:
            return False
        latest = history[-1]
        if self.model_ids is not None and latest.model_id not in self.model_ids:
            return False
        if self.types is not None and not any(change.type in self.types for change in history):
            return False
        if not self.include_replicated and latest.replicated:
            return False
        return True


class BatchOperation(BaseModel):
    """One entry of a batch applied to a record store."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(default=..., description="Record id the operation targets")
    type: ChangeType = Field(default=..., description="CREATE/UPDATE upsert, DELETE removes")
    data: dict[str, Any] | None = Field(
        default=None, description="Full record data for upserts"
    )
    check_revision: bool = Field(
        default=False, description="Only apply while the store still holds expected_revision"
    )
    expected_revision: str | None = Field(
        default=None, description="Revision the operation was planned against, None if absent"
    )

    @field_validator("model_id", mode="before")
    @classmethod
    def normalize_model_id(cls, v: Any) -> str:
        return str(v)

    def is_stale(self, current_revision: str | None) -> bool:
        """Return True if a revision-checked operation no longer fits the store."""
        return self.check_revision and current_revision != self.expected_revision

    @model_validator(mode="after")
    def check_data_present(self) -> "BatchOperation":
        if self.type is not ChangeType.DELETE and self.data is None:
            raise ValueError(f"{self.type.value} operation for {self.model_id} requires data")
        return self
