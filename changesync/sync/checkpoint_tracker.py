"""Tracking of confirmed replication checkpoints between store pairs."""

import json
import os
import threading
from pathlib import Path

import structlog
from pydantic import ValidationError

from changesync.sync.models import ReplicationState

log = structlog.stdlib.get_logger()


class CheckpointTracker:
    """Keeps the checkpoints returned by the last successful pass per store pair in a JSON file."""

    def __init__(self, state_file: str | Path):
        """
        Initialize checkpoint tracker.

        Args:
            state_file: JSON file holding one entry per (source, target) pair
        """
        self._state_file: Path = Path(state_file).expanduser()
        self._lock = threading.Lock()
        log.info("checkpoint_tracker_initialized", state_file=str(self._state_file))

    @staticmethod
    def _key(source: str, target: str) -> str:
        return f"{source}->{target}"

    def _read_all(self) -> dict[str, dict]:
        if not self._state_file.exists():
            return {}
        with open(self._state_file, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data

    def _write_all(self, data: dict[str, dict]) -> None:
        # Readers see either the old file or the new one, never a partial write
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._state_file.with_name(self._state_file.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._state_file)

    def save_state(self, state: ReplicationState) -> None:
        """
        Save the checkpoints of a successful pass.

        Args:
            state: Replication state to save

        Raises:
            RuntimeError: If the state file cannot be written
        """
        log.info(
            "saving_replication_state",
            source=state.source,
            target=state.target,
            source_checkpoint=state.source_checkpoint,
            target_checkpoint=state.target_checkpoint,
        )

        with self._lock:
            try:
                data = self._read_all()
                data[self._key(state.source, state.target)] = state.model_dump(mode="json")
                self._write_all(data)
            except (OSError, ValueError) as e:
                log.error(
                    "failed_to_save_replication_state",
                    source=state.source,
                    target=state.target,
                    error=str(e),
                )
                raise RuntimeError(f"Failed to save replication state: {e}") from e

        log.info("replication_state_saved", source=state.source, target=state.target)

    def load_state(self, source: str, target: str) -> ReplicationState | None:
        """
        Load the last confirmed checkpoints for a store pair.

        Args:
            source: Name of the source store
            target: Name of the target store

        Returns:
            ReplicationState if found, None otherwise

        Raises:
            RuntimeError: If the state file exists but cannot be read
        """
        with self._lock:
            try:
                entry = self._read_all().get(self._key(source, target))
                if entry is None:
                    log.info("no_replication_state_found", source=source, target=target)
                    return None
                state = ReplicationState.model_validate(entry)
            except (OSError, ValueError, ValidationError) as e:
                log.error(
                    "failed_to_load_replication_state",
                    source=source,
                    target=target,
                    error=str(e),
                )
                raise RuntimeError(f"Failed to load replication state: {e}") from e

        log.info(
            "replication_state_loaded",
            source=source,
            target=target,
            source_checkpoint=state.source_checkpoint,
            target_checkpoint=state.target_checkpoint,
        )
        return state

    def clear_state(self, source: str, target: str) -> bool:
        """Forget a store pair so its next pass starts from scratch. Returns True if removed."""
        with self._lock:
            try:
                data = self._read_all()
                if data.pop(self._key(source, target), None) is None:
                    return False
                self._write_all(data)
            except (OSError, ValueError) as e:
                log.error(
                    "failed_to_clear_replication_state", source=source, target=target, error=str(e)
                )
                raise RuntimeError(f"Failed to clear replication state: {e}") from e
        log.info("replication_state_cleared", source=source, target=target)
        return True
