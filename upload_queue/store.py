"""
Durable upload queue backed by SQLite.

Items survive process restarts and unclean termination. Every state change is
a single IMMEDIATE transaction, so concurrent dispatcher runs (threads or
separate processes woken by overlapping host callbacks) never claim the same
item twice.

Crash recovery: an item left in flight longer than `stale_after` seconds is
assumed abandoned by a dead claimant and reverts to pending on the next store
access (open, count, claim_next, stats).
"""

import json
import os
import sqlite3
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Iterable, Optional

from shared.log import create_logger
from upload_queue.backoff import calculate_delay
from upload_queue.errors import StorageFull, StorageIOError
from upload_queue.models import ItemState, UploadItem
from validation.metadata import normalize_metadata

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Queue")

DB_FILENAME = 'queue.db'

PENDING = ItemState.PENDING.status_code
IN_FLIGHT = ItemState.IN_FLIGHT.status_code
FAILED = ItemState.FAILED.status_code

_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS upload_items (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        item_id TEXT NOT NULL UNIQUE,
        content_ref TEXT NOT NULL,
        metadata TEXT NOT NULL,
        status INTEGER NOT NULL,
        attempts INTEGER NOT NULL DEFAULT 0,
        enqueued_at REAL NOT NULL,
        not_before REAL NOT NULL DEFAULT 0,
        claimed_at REAL,
        claim_token TEXT,
        last_error TEXT,
        last_error_type TEXT,
        updated_at REAL NOT NULL
    )
'''

_INDEXES = (
    'CREATE INDEX IF NOT EXISTS idx_status_ready ON upload_items (status, not_before, enqueued_at)',
    'CREATE INDEX IF NOT EXISTS idx_claimed_at ON upload_items (status, claimed_at)',
)

# Longest error message kept per item
_MAX_ERROR_LENGTH = 500


class QueueStore:
    """
    SQLite-backed upload queue.

    Args:
        data_dir: Directory holding queue.db (created if missing)
        max_attempts: Failures before an item becomes terminally failed
        capacity: Maximum retained items (pending + in flight + failed)
        stale_after: Seconds an item may stay in flight before it is reclaimed
        backoff_base: Base retry delay in seconds (0 disables backoff)
        backoff_cap: Maximum retry delay in seconds
        clock: Wall-clock source, injectable for tests
        busy_timeout: Seconds to wait on a locked database

    Usage:
        store = QueueStore('/data/bgupload', max_attempts=5)
        item_id = store.enqueue('/photos/img_001.jpg', {'destination': 'https://...'})
        for item in store.claim_next(10):
            ...
            store.mark_done(item.id)
    """

    def __init__(
        self,
        data_dir: str,
        max_attempts: int = 5,
        capacity: int = 10000,
        stale_after: float = 120.0,
        backoff_base: float = 5.0,
        backoff_cap: float = 300.0,
        clock: Callable[[], float] = time.time,
        busy_timeout: float = 10.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self.data_dir = data_dir
        self.db_path = os.path.join(data_dir, DB_FILENAME)
        self.max_attempts = max_attempts
        self.capacity = capacity
        self.stale_after = stale_after
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self._clock = clock
        self._busy_timeout = busy_timeout

        try:
            os.makedirs(data_dir, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create queue directory {data_dir}: {e}") from e

        self._init_schema()
        recovered = self.recover_stale()
        if recovered:
            log_info(f"Recovered {recovered} stale in-flight item(s) from a previous run")

    # =========================================================================
    # Connection handling
    # =========================================================================

    @contextmanager
    def _get_connection(self):
        """Open a connection for one operation; always closed afterwards."""
        try:
            conn = sqlite3.connect(
                self.db_path,
                timeout=self._busy_timeout,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise StorageIOError(f"Cannot open queue database: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute('PRAGMA synchronous=FULL')
            yield conn
        except sqlite3.Error as e:
            raise StorageIOError(f"Queue database error: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self):
        """Run statements in one write transaction (BEGIN IMMEDIATE ... COMMIT)."""
        with self._get_connection() as conn:
            conn.execute('BEGIN IMMEDIATE')
            try:
                yield conn
            except BaseException:
                conn.execute('ROLLBACK')
                raise
            conn.execute('COMMIT')

    def _init_schema(self) -> None:
        with self._get_connection() as conn:
            conn.execute('PRAGMA journal_mode=WAL')
            conn.execute(_SCHEMA)
            for statement in _INDEXES:
                conn.execute(statement)

    def _recover_stale(self, conn, now: float) -> int:
        cursor = conn.execute(
            '''
            UPDATE upload_items
               SET status = ?, claimed_at = NULL, claim_token = NULL, updated_at = ?
             WHERE status = ? AND claimed_at <= ?
            ''',
            (PENDING, now, IN_FLIGHT, now - self.stale_after),
        )
        if cursor.rowcount:
            log_warn(f"Reverted {cursor.rowcount} stale in-flight item(s) to pending")
        return cursor.rowcount

    # =========================================================================
    # Producer side
    # =========================================================================

    def enqueue(self, content_ref: str, metadata: Optional[dict] = None) -> str:
        """
        Add a pending upload.

        Args:
            content_ref: Reference to local content (usually a file path)
            metadata: String key/value pairs passed through to the uploader

        Returns:
            The new item's id

        Raises:
            ValueError: content_ref empty or metadata invalid
            StorageFull: capacity already reached
            StorageIOError: database failure
        """
        if not content_ref:
            raise ValueError("content_ref is required")
        metadata_json = json.dumps(normalize_metadata(metadata))
        item_id = uuid.uuid4().hex
        now = self._clock()

        with self._transaction() as conn:
            (retained,) = conn.execute('SELECT COUNT(*) FROM upload_items').fetchone()
            if retained >= self.capacity:
                raise StorageFull(self.capacity)
            conn.execute(
                '''
                INSERT INTO upload_items
                    (item_id, content_ref, metadata, status, attempts,
                     enqueued_at, not_before, updated_at)
                VALUES (?, ?, ?, ?, 0, ?, 0, ?)
                ''',
                (item_id, content_ref, metadata_json, PENDING, now, now),
            )

        log_trace(f"Enqueued item {item_id} ({content_ref})")
        return item_id

    # =========================================================================
    # Dispatcher side
    # =========================================================================

    def count(self, states: Iterable[ItemState] = (ItemState.PENDING, ItemState.IN_FLIGHT)) -> int:
        """Number of items in any of the given states."""
        codes = [state.status_code for state in states]
        if not codes:
            return 0
        placeholders = ','.join('?' * len(codes))

        with self._transaction() as conn:
            self._recover_stale(conn, self._clock())
            (total,) = conn.execute(
                f'SELECT COUNT(*) FROM upload_items WHERE status IN ({placeholders})',
                codes,
            ).fetchone()
        return total

    def claim_next(self, limit: int, exclude_ids=None) -> list[UploadItem]:
        """
        Atomically move up to `limit` eligible pending items to in flight.

        Items are taken oldest first; items still inside their backoff window
        are skipped without blocking younger ones. Ids in `exclude_ids` are
        skipped the same way.

        Returns:
            Claimed items (state IN_FLIGHT, with claim_token set); empty list
            when nothing is eligible.
        """
        if limit < 1:
            return []

        now = self._clock()
        token = uuid.uuid4().hex

        with self._transaction() as conn:
            self._recover_stale(conn, now)
            excluded = list(exclude_ids or ())
            skip = f'AND item_id NOT IN ({",".join("?" * len(excluded))})' if excluded else ''
            rows = conn.execute(
                f'''
                SELECT seq FROM upload_items
                 WHERE status = ? AND not_before <= ? {skip}
                 ORDER BY enqueued_at, seq
                 LIMIT ?
                ''',
                [PENDING, now, *excluded, limit],
            ).fetchall()
            if not rows:
                return []

            seqs = [row['seq'] for row in rows]
            placeholders = ','.join('?' * len(seqs))
            conn.execute(
                f'''
                UPDATE upload_items
                   SET status = ?, claimed_at = ?, claim_token = ?, updated_at = ?
                 WHERE seq IN ({placeholders})
                ''',
                [IN_FLIGHT, now, token, now] + seqs,
            )
            claimed = conn.execute(
                f'SELECT * FROM upload_items WHERE seq IN ({placeholders}) ORDER BY enqueued_at, seq',
                seqs,
            ).fetchall()

        items = [UploadItem.from_row(row) for row in claimed]
        log_trace(f"Claimed {len(items)} item(s) with token {token[:8]}")
        return items

    def mark_done(self, item_id: str) -> None:
        """Remove a completed item. Unknown or already-removed ids are ignored."""
        with self._transaction() as conn:
            cursor = conn.execute('DELETE FROM upload_items WHERE item_id = ?', (item_id,))
        if cursor.rowcount:
            log_trace(f"Item {item_id} done")

    def mark_failed(
        self,
        item_id: str,
        error,
        claim_token: Optional[str] = None,
        permanent: bool = False,
    ) -> Optional[UploadItem]:
        """
        Record a failed attempt.

        Increments attempts. The item becomes terminally FAILED when attempts
        reach max_attempts or the failure is permanent; otherwise it returns to
        PENDING with a backoff not_before.

        Only in-flight items are affected, and when claim_token is given only
        if that claim still owns the item (a stale claim that was recovered and
        re-claimed elsewhere is ignored).

        Args:
            item_id: Item to fail
            error: Exception or message describing the failure
            claim_token: Token from the claim that attempted the upload
            permanent: Skip remaining retries

        Returns:
            The updated item, or None when nothing was changed
        """
        now = self._clock()
        if isinstance(error, BaseException):
            error_type = type(error).__name__
            message = str(error) or error_type
        else:
            error_type = None
            message = str(error)
        message = message[:_MAX_ERROR_LENGTH]

        with self._transaction() as conn:
            row = conn.execute(
                'SELECT * FROM upload_items WHERE item_id = ?', (item_id,)
            ).fetchone()
            if row is None or row['status'] != IN_FLIGHT:
                log_debug(f"mark_failed ignored for {item_id}: not in flight")
                return None
            if claim_token is not None and row['claim_token'] != claim_token:
                log_debug(f"mark_failed ignored for {item_id}: claim no longer owned")
                return None

            attempts = row['attempts'] + 1
            if permanent or attempts >= self.max_attempts:
                status = FAILED
                not_before = 0.0
            else:
                status = PENDING
                not_before = now + calculate_delay(attempts - 1, self.backoff_base, self.backoff_cap)

            conn.execute(
                '''
                UPDATE upload_items
                   SET status = ?, attempts = ?, not_before = ?, claimed_at = NULL,
                       claim_token = NULL, last_error = ?, last_error_type = ?, updated_at = ?
                 WHERE item_id = ?
                ''',
                (status, attempts, not_before, message, error_type, now, item_id),
            )
            updated = conn.execute(
                'SELECT * FROM upload_items WHERE item_id = ?', (item_id,)
            ).fetchone()

        item = UploadItem.from_row(updated)
        if item.state == ItemState.FAILED:
            log_warn(f"Item {item_id} failed permanently after {attempts} attempt(s): {message}")
        else:
            log_debug(
                f"Item {item_id} failed (attempt {attempts}/{self.max_attempts}), "
                f"retry in {max(0.0, not_before - now):.1f}s"
            )
        return item

    def release(self, item_id: str, claim_token: Optional[str] = None) -> bool:
        """
        Return an in-flight item to pending without counting an attempt.

        Used for claimed items whose upload never started (deadline reached).

        Returns:
            True if the item was released
        """
        now = self._clock()
        query = '''
            UPDATE upload_items
               SET status = ?, claimed_at = NULL, claim_token = NULL, updated_at = ?
             WHERE item_id = ? AND status = ?
        '''
        params = [PENDING, now, item_id, IN_FLIGHT]
        if claim_token is not None:
            query += ' AND claim_token = ?'
            params.append(claim_token)

        with self._transaction() as conn:
            cursor = conn.execute(query, params)
        return cursor.rowcount > 0

    def recover_stale(self) -> int:
        """Revert items in flight longer than stale_after to pending."""
        with self._transaction() as conn:
            return self._recover_stale(conn, self._clock())

    # =========================================================================
    # Administrative operations
    # =========================================================================

    def purge_failed(self) -> int:
        """Delete all terminally failed items. Returns number removed."""
        with self._transaction() as conn:
            cursor = conn.execute('DELETE FROM upload_items WHERE status = ?', (FAILED,))
        if cursor.rowcount:
            log_info(f"Purged {cursor.rowcount} failed item(s)")
        return cursor.rowcount

    def requeue(self, item_id: str) -> bool:
        """Manually re-enqueue a failed item with a fresh attempt count."""
        now = self._clock()
        with self._transaction() as conn:
            cursor = conn.execute(
                '''
                UPDATE upload_items
                   SET status = ?, attempts = 0, not_before = 0, updated_at = ?
                 WHERE item_id = ? AND status = ?
                ''',
                (PENDING, now, item_id, FAILED),
            )
        return cursor.rowcount > 0

    def requeue_failed(self) -> int:
        """Manually re-enqueue every failed item. Returns number requeued."""
        now = self._clock()
        with self._transaction() as conn:
            cursor = conn.execute(
                '''
                UPDATE upload_items
                   SET status = ?, attempts = 0, not_before = 0, updated_at = ?
                 WHERE status = ?
                ''',
                (PENDING, now, FAILED),
            )
        if cursor.rowcount:
            log_info(f"Requeued {cursor.rowcount} failed item(s)")
        return cursor.rowcount

    def get(self, item_id: str) -> Optional[UploadItem]:
        with self._get_connection() as conn:
            row = conn.execute(
                'SELECT * FROM upload_items WHERE item_id = ?', (item_id,)
            ).fetchone()
        return UploadItem.from_row(row) if row else None

    def list_failed(self, limit: int = 50) -> list[UploadItem]:
        """Most recently failed items first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                'SELECT * FROM upload_items WHERE status = ? ORDER BY updated_at DESC, seq DESC LIMIT ?',
                (FAILED, limit),
            ).fetchall()
        return [UploadItem.from_row(row) for row in rows]

    def stats(self) -> dict:
        """
        Counts by lifecycle state.

        Returns:
            Dict with 'pending' (all pending, including backing off),
            'backing_off', 'in_flight' and 'failed'.
        """
        now = self._clock()
        stats = {'pending': 0, 'backing_off': 0, 'in_flight': 0, 'failed': 0}

        with self._transaction() as conn:
            self._recover_stale(conn, now)
            cursor = conn.execute(
                '''
                SELECT status, not_before > ? AS waiting, COUNT(*) AS count
                  FROM upload_items
                 GROUP BY status, waiting
                ''',
                (now,),
            )
            for row in cursor:
                if row['status'] == PENDING:
                    stats['pending'] += row['count']
                    if row['waiting']:
                        stats['backing_off'] += row['count']
                elif row['status'] == IN_FLIGHT:
                    stats['in_flight'] += row['count']
                elif row['status'] == FAILED:
                    stats['failed'] += row['count']

        return stats
