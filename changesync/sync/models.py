"""Data models for replication passes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from changesync.models.change import Change, ChangeFilter
from changesync.sync.conflict import Conflict


class CheckpointPair(BaseModel):
    """A checkpoint for each side of a replication pass."""

    source: int = Field(default=..., description="Checkpoint of the source store")
    target: int = Field(default=..., description="Checkpoint of the target store")


class ReplicationOptions(BaseModel):
    """Options for one replication pass."""

    filter: ChangeFilter | None = Field(
        default=None, description="Restricts which source changes are considered"
    )
    include_replicated: bool = Field(
        default=False,
        description="Forward source changes that were themselves applied from another store",
    )


class DiffResult(BaseModel):
    """Partition of incoming changes produced by the Differ."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    to_apply: list[Change] = Field(
        default_factory=list, description="Source changes safe to apply to the target"
    )
    conflicts: list[Conflict] = Field(
        default_factory=list, description="Records changed on both sides"
    )
    skipped: list[str] = Field(
        default_factory=list, description="Record ids already reflected on the target"
    )
    target_revisions: dict[str, str | None] = Field(
        default_factory=dict,
        description="Target revision each to_apply decision was based on, None if absent",
    )


class ReplicationResult(BaseModel):
    """Outcome of one successful replication pass."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    conflicts: list[Conflict] = Field(default_factory=list, description="Detected conflicts")
    checkpoints: CheckpointPair = Field(
        default=..., description="Checkpoints to start the next pass from"
    )
    applied: int = Field(default=0, ge=0, description="Number of records written to the target")
    started_at: datetime = Field(default=..., description="Pass start timestamp")
    finished_at: datetime = Field(default=..., description="Pass end timestamp")

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain structures for JSON output."""
        return {
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "checkpoints": self.checkpoints.model_dump(),
            "applied": self.applied,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
        }


class ReplicationState(BaseModel):
    """Checkpoints confirmed by the last successful pass between two stores."""

    source: str = Field(default=..., description="Name of the source store")
    target: str = Field(default=..., description="Name of the target store")
    source_checkpoint: int = Field(default=..., description="Source checkpoint to resume from")
    target_checkpoint: int = Field(default=..., description="Target checkpoint to resume from")
    last_replicated_at: datetime = Field(default=..., description="When the pass finished")

    model_config = {
        "json_schema_extra": {
            "example": {
                "source": "laptop",
                "target": "server",
                "source_checkpoint": 12,
                "target_checkpoint": 4,
                "last_replicated_at": "2024-01-15T14:30:00Z",
            }
        }
    }

    @property
    def checkpoints(self) -> CheckpointPair:
        return CheckpointPair(source=self.source_checkpoint, target=self.target_checkpoint)
