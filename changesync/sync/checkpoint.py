"""Per-store checkpoint sequencing."""

import threading

import structlog

log = structlog.stdlib.get_logger()

NEVER_SYNCED: int = -1


class CheckpointSequencer:
    """
    Monotonically increasing checkpoint counter owned by one store.

    ``current()`` is the last fenced checkpoint. Mutations committed after a
    ``bump()`` belong to the open checkpoint ``current() + 1`` and therefore
    always sort strictly above the value ``bump()`` returned.

    Every store must construct or be given its own sequencer. Sharing one
    between stores makes checkpoint values meaningless across them.
    """

    def __init__(self, initial: int = NEVER_SYNCED, name: str | None = None):
        """
        Initialize sequencer.

        Args:
            initial: Starting value, below every checkpoint a change can carry
            name: Optional name used in log events
        """
        if isinstance(initial, bool) or not isinstance(initial, int):
            raise TypeError(f"initial checkpoint must be an int, got {initial!r}")
        self._seq: int = initial
        self._lock = threading.Lock()
        self.name = name

    def current(self) -> int:
        """Return the last fenced checkpoint without incrementing."""
        with self._lock:
            return self._seq

    def pending(self) -> int:
        """Return the open checkpoint new mutations are stamped with."""
        with self._lock:
            return self._seq + 1

    def bump(self) -> int:
        """Increment the counter and return the new value."""
        with self._lock:
            self._seq += 1
            value = self._seq
        log.debug("checkpoint_bumped", sequencer=self.name, checkpoint=value)
        return value

    def __repr__(self) -> str:
        return f"CheckpointSequencer(name={self.name!r}, current={self._seq})"
