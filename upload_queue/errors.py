"""Queue store exceptions."""


class QueueStoreError(Exception):
    """Base class for queue store failures."""


class StorageFull(QueueStoreError):
    """Enqueue refused: the store holds `capacity` items already."""

    def __init__(self, capacity: int):
        super().__init__(f"Upload queue is full ({capacity} items)")
        self.capacity = capacity


class StorageIOError(QueueStoreError):
    """The backing database could not be read or written."""
