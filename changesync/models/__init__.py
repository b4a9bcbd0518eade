"""Data models for the changesync replication engine."""

from changesync.models.change import BatchOperation, Change, ChangeFilter, ChangeType
from changesync.models.config import (
    AppConfig,
    LoggingConfig,
    ReplicationConfig,
    StoresConfig,
)

__all__ = [
    "Change",
    "ChangeType",
    "ChangeFilter",
    "BatchOperation",
    "AppConfig",
    "StoresConfig",
    "ReplicationConfig",
    "LoggingConfig",
]
