"""
Dispatcher for draining the upload queue within a deadline.

Implements reliable item processing with the store's claim workflow:
- Claims pending items oldest first (items in backoff are skipped)
- Runs uploads on a bounded thread pool
- Marks successful items done, failed items failed (retry or terminal)
- Stops claiming new work at the deadline or when asked to stop
- Attempts each item at most once per run
"""

import asyncio
import inspect
import os
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Optional

from shared.log import create_logger
from upload_queue.errors import QueueStoreError
from upload_queue.models import ItemState, UploadItem
from worker.errors import PermanentError, UploadFailure
from worker.stats import UploadStats

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Dispatcher")

STATS_FILENAME = 'stats.json'


@dataclass
class DispatchOutcome:
    """Result of one dispatcher run."""
    uploaded_count: int = 0
    failed_count: int = 0
    timed_out: bool = False


class DispatchProgress:
    """Live upload/failure counters, safe to read from another thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._uploaded = 0
        self._failed = 0

    def record_success(self) -> None:
        with self._lock:
            self._uploaded += 1

    def record_failure(self) -> None:
        with self._lock:
            self._failed += 1

    def snapshot(self) -> tuple[int, int]:
        """Return (uploaded, failed) as of now."""
        with self._lock:
            return self._uploaded, self._failed


def _run_awaitable(awaitable):
    async def _await():
        return await awaitable
    return asyncio.run(_await())


class Dispatcher:
    """
    Drains the queue store against a deadline.

    Args:
        store: QueueStore to claim from
        batch_size: Items claimed per claim_next call
        fan_out: Maximum uploads running at once
        data_dir: Directory for cumulative stats.json (None = don't persist)
        clock: Monotonic clock used for deadlines, injectable for tests

    Usage:
        dispatcher = Dispatcher(store, batch_size=10, fan_out=2)
        outcome = dispatcher.run(time.monotonic() + 20.0, upload_fn)
    """

    def __init__(
        self,
        store,
        batch_size: int = 10,
        fan_out: int = 2,
        data_dir: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if fan_out < 1:
            raise ValueError("fan_out must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self.fan_out = fan_out
        self.data_dir = data_dir
        self._clock = clock

    def _should_stop(self, deadline: float, stop_event: Optional[threading.Event]) -> bool:
        if stop_event is not None and stop_event.is_set():
            return True
        return self._clock() >= deadline

    def run(
        self,
        deadline: float,
        upload_fn: Callable[[UploadItem], object],
        stop_event: Optional[threading.Event] = None,
        progress: Optional[DispatchProgress] = None,
    ) -> DispatchOutcome:
        """
        Process queued items until the queue is drained or time runs out.

        Never raises: store and upload errors are logged and reflected in the
        outcome counts. Each item is attempted at most once per run; an item
        that fails and is immediately eligible again waits for the next run.

        Args:
            deadline: Monotonic clock value after which no new upload starts
            upload_fn: Called with each claimed item; sync or async. Returning
                False or raising marks the attempt failed.
            stop_event: Set by the caller to stop claiming early
            progress: Shared live counters (created when not given)

        Returns:
            DispatchOutcome with counts as of return. Uploads still running
            when the deadline passes finish in the background and update the
            store, but are not included.
        """
        progress = progress if progress is not None else DispatchProgress()
        stats = UploadStats()
        stats_lock = threading.Lock()

        backlog: deque[UploadItem] = deque()
        in_progress: set = set()
        attempted: set[str] = set()
        exhausted = False
        timed_out = False

        executor = ThreadPoolExecutor(max_workers=self.fan_out, thread_name_prefix='bgupload-upload')
        try:
            while True:
                if self._should_stop(deadline, stop_event):
                    timed_out = True
                    break

                # Keep at most fan_out uploads running, claiming as needed
                while len(in_progress) < self.fan_out:
                    if not backlog:
                        if exhausted:
                            break
                        try:
                            # Items already tried this run wait for the next one
                            claimed = self.store.claim_next(self.batch_size, exclude_ids=attempted)
                        except QueueStoreError as e:
                            log_error(f"Claim failed, stopping run: {e}")
                            exhausted = True
                            break
                        if not claimed:
                            exhausted = True
                            break
                        log_debug(f"Claimed {len(claimed)} item(s)")
                        attempted.update(item.id for item in claimed)
                        backlog.extend(claimed)

                    if self._should_stop(deadline, stop_event):
                        break

                    item = backlog.popleft()
                    in_progress.add(executor.submit(
                        self._attempt, item, upload_fn, deadline, stop_event, progress, stats, stats_lock,
                    ))

                if not in_progress:
                    if backlog:
                        continue
                    break

                remaining = max(0.0, deadline - self._clock())
                done, in_progress = wait(in_progress, timeout=remaining, return_when=FIRST_COMPLETED)
                for future in done:
                    exc = future.exception()
                    if exc is not None:
                        log_error(f"Upload task crashed: {exc}")

        except Exception as e:
            log_error(f"Dispatcher run error: {e}")

        finally:
            for item in backlog:
                self._release(item)
            if backlog:
                log_debug(f"Released {len(backlog)} unstarted item(s) back to pending")
            executor.shutdown(wait=False)

        uploaded, failed = progress.snapshot()
        outcome = DispatchOutcome(uploaded_count=uploaded, failed_count=failed, timed_out=timed_out)

        if timed_out:
            log_info(
                f"Deadline reached: {uploaded} uploaded, {failed} failed, "
                f"{len(in_progress)} upload(s) still running"
            )
        elif uploaded or failed:
            log_info(f"Queue drained: {uploaded} uploaded, {failed} failed")

        self._save_stats(stats, stats_lock)
        return outcome

    def _attempt(
        self,
        item: UploadItem,
        upload_fn: Callable[[UploadItem], object],
        deadline: float,
        stop_event: Optional[threading.Event],
        progress: DispatchProgress,
        stats: UploadStats,
        stats_lock: threading.Lock,
    ) -> None:
        """Upload one claimed item and record the result in the store."""
        if self._should_stop(deadline, stop_event):
            self._release(item)
            return

        log_trace(f"Uploading item {item.id} (attempt {item.attempts + 1})")
        start = time.perf_counter()
        try:
            result = upload_fn(item)
            if inspect.isawaitable(result):
                result = _run_awaitable(result)
            if result is False:
                raise UploadFailure("upload operation reported failure")

        except Exception as e:
            elapsed = time.perf_counter() - start
            from validation.errors import classify_exception
            permanent = classify_exception(e) is PermanentError
            updated = None
            try:
                updated = self.store.mark_failed(
                    item.id, e, claim_token=item.claim_token, permanent=permanent,
                )
            except QueueStoreError as store_error:
                log_error(f"Could not record failure for item {item.id}: {store_error}")

            terminal = updated is not None and updated.state == ItemState.FAILED
            with stats_lock:
                stats.record_failure(type(e).__name__, elapsed, terminal=terminal)
            progress.record_failure()
            log_warn(f"Upload of item {item.id} failed: {type(e).__name__}: {e}")
            return

        elapsed = time.perf_counter() - start
        try:
            self.store.mark_done(item.id)
        except QueueStoreError as store_error:
            # Item stays in flight; stale recovery re-queues it
            log_error(f"Uploaded item {item.id} but could not mark it done: {store_error}")

        with stats_lock:
            stats.record_success(elapsed)
        progress.record_success()
        log_debug(f"Item {item.id} uploaded in {elapsed * 1000:.0f}ms")

    def _release(self, item: UploadItem) -> None:
        try:
            self.store.release(item.id, claim_token=item.claim_token)
        except QueueStoreError as e:
            log_error(f"Could not release item {item.id}: {e}")

    def _save_stats(self, stats: UploadStats, stats_lock: threading.Lock) -> None:
        if self.data_dir is None:
            return
        with stats_lock:
            if stats.items_processed == 0:
                return
            try:
                stats.save_to_file(os.path.join(self.data_dir, STATS_FILENAME))
            except OSError as e:
                log_warn(f"Failed to save upload stats: {e}")
