"""
Upload item model and lifecycle states.

Persisted status codes follow persist-queue's AckStatus numbering:
    1 = ready (pending)
    2 = unack (in flight)
    5 = acked (done, never persisted: done rows are deleted)
    9 = ack_failed (failed, retained for inspection)
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ItemState(Enum):
    """Lifecycle state of an upload item."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    FAILED = "failed"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @classmethod
    def from_status_code(cls, code: int) -> 'ItemState':
        for state, state_code in _STATUS_CODES.items():
            if state_code == code:
                return state
        raise ValueError(f"Unknown item status code: {code}")


_STATUS_CODES = {
    ItemState.PENDING: 1,
    ItemState.IN_FLIGHT: 2,
    ItemState.DONE: 5,
    ItemState.FAILED: 9,
}


@dataclass
class UploadItem:
    """
    A unit of upload work: a reference to local content plus metadata.

    The core never reads the payload behind content_ref; metadata is passed
    through untouched to the upload operation.
    """

    id: str
    content_ref: str
    metadata: dict[str, str] = field(default_factory=dict)
    state: ItemState = ItemState.PENDING
    attempts: int = 0
    enqueued_at: float = 0.0
    not_before: float = 0.0
    claimed_at: Optional[float] = None
    claim_token: Optional[str] = None
    last_error: Optional[str] = None
    last_error_type: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (ItemState.DONE, ItemState.FAILED)

    @classmethod
    def from_row(cls, row) -> 'UploadItem':
        """Build an item from an ``upload_items`` row (sqlite3.Row or mapping)."""
        return cls(
            id=row['item_id'],
            content_ref=row['content_ref'],
            metadata=json.loads(row['metadata']) if row['metadata'] else {},
            state=ItemState.from_status_code(row['status']),
            attempts=row['attempts'],
            enqueued_at=row['enqueued_at'],
            not_before=row['not_before'] or 0.0,
            claimed_at=row['claimed_at'],
            claim_token=row['claim_token'],
            last_error=row['last_error'],
            last_error_type=row['last_error_type'],
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'content_ref': self.content_ref,
            'metadata': dict(self.metadata),
            'state': self.state.value,
            'attempts': self.attempts,
            'enqueued_at': self.enqueued_at,
            'not_before': self.not_before,
            'last_error': self.last_error,
            'last_error_type': self.last_error_type,
        }
