"""Change tracking, diffing and replication between record stores."""

from changesync.sync.change_log import ChangeLog
from changesync.sync.change_tracker import ChangeTracker
from changesync.sync.checkpoint import NEVER_SYNCED, CheckpointSequencer
from changesync.sync.checkpoint_tracker import CheckpointTracker
from changesync.sync.conflict import Conflict
from changesync.sync.differ import Differ
from changesync.sync.errors import (
    ChangeLogCorruptError,
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
from changesync.sync.replication_coordinator import ReplicationCoordinator, replicate
from changesync.sync.revision import revision_for

__all__ = [
    "NEVER_SYNCED",
    "ChangeLog",
    "ChangeTracker",
    "CheckpointSequencer",
    "CheckpointTracker",
    "Conflict",
    "Differ",
    "DiffResult",
    "CheckpointPair",
    "ReplicationOptions",
    "ReplicationResult",
    "ReplicationState",
    "ReplicationCoordinator",
    "replicate",
    "revision_for",
    "ReplicationError",
    "StoreReadError",
    "StoreWriteError",
    "SequencerError",
    "InvalidSinceError",
    "ChangeLogCorruptError",
]
