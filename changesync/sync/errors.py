"""Errors raised by change tracking and replication."""


class ReplicationError(Exception):
    """Base class for replication failures."""

    pass


class StoreReadError(ReplicationError):
    """Reading records or changes from a store failed."""

    pass


class StoreWriteError(ReplicationError):
    """Applying a batch of operations to a store failed."""

    pass


class SequencerError(ReplicationError):
    """Reading or incrementing a checkpoint sequencer failed."""

    pass


class InvalidSinceError(ReplicationError, ValueError):
    """The ``since`` argument of a replication pass is malformed."""

    pass


class ChangeLogCorruptError(ReplicationError):
    """A change log violates its hash-chain invariant."""

    pass
