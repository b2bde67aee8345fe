"""
Persistent Upload Queue Module

Provides durable upload queue infrastructure using SQLite-backed persistence.
Items survive process restarts, crashes, and overlapping background wakes.
"""

from upload_queue.errors import QueueStoreError, StorageFull, StorageIOError
from upload_queue.models import ItemState, UploadItem
from upload_queue.store import QueueStore

__all__ = [
    'QueueStore',
    'UploadItem',
    'ItemState',
    'QueueStoreError',
    'StorageFull',
    'StorageIOError',
]
