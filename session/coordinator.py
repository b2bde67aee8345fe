"""
Background wake handling.

The host OS wakes the process for a short, time-boxed window and expects
exactly one answer: new data, no data, or failed. SessionCoordinator checks
the queue, runs the Dispatcher on its own thread and races it against a
watchdog timer; whichever reports first wins and later reports are dropped.

States per wake:
- IDLE: not started / finished
- CHECKING: counting pending items
- DISPATCHING: dispatcher running
- REPORTING: result being delivered to the host
"""

import threading
import time
from datetime import timedelta
from enum import Enum
from typing import Callable, Optional, Union

from shared.log import create_logger
from upload_queue.errors import QueueStoreError
from upload_queue.models import ItemState
from worker.dispatcher import DispatchProgress

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Session")


class WakeResult(Enum):
    """Answer reported to the host for one wake."""
    NEW_DATA = "new_data"
    NO_DATA = "no_data"
    FAILED = "failed"


class SessionState(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    DISPATCHING = "dispatching"
    REPORTING = "reporting"


def result_for_counts(uploaded: int, failed: int) -> WakeResult:
    """Map upload counts to the host-visible result."""
    if uploaded > 0:
        return WakeResult.NEW_DATA
    if failed > 0:
        return WakeResult.FAILED
    return WakeResult.NO_DATA


class ResultSlot:
    """
    Single-assignment result holder.

    The first offer wins; every later offer is discarded. Waiters are released
    as soon as a value is set.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._set = threading.Event()
        self._value: Optional[WakeResult] = None
        self._source: Optional[str] = None

    def offer(self, value: WakeResult, source: str = "") -> bool:
        """Set the value if still empty. Returns True if this offer won."""
        with self._lock:
            if self._set.is_set():
                log_trace(f"Discarded {value.value} from {source}: already reported by {self._source}")
                return False
            self._value = value
            self._source = source
            self._set.set()
            return True

    def wait(self, timeout: Optional[float] = None) -> Optional[WakeResult]:
        self._set.wait(timeout)
        return self._value

    @property
    def is_set(self) -> bool:
        return self._set.is_set()

    @property
    def value(self) -> Optional[WakeResult]:
        return self._value

    @property
    def source(self) -> Optional[str]:
        return self._source


class WakeSession:
    """State and result slot for one handle_wake call."""

    def __init__(self, completion_handler: Optional[Callable[[WakeResult], None]] = None):
        self.state = SessionState.IDLE
        self.slot = ResultSlot()
        self.progress = DispatchProgress()
        self.stop_event = threading.Event()
        self._completion_handler = completion_handler

    def report(self, result: WakeResult, source: str) -> bool:
        """Deliver the result once; later calls are no-ops."""
        if not self.slot.offer(result, source):
            return False
        self.state = SessionState.REPORTING
        log_info(f"Wake result: {result.value} (reported by {source})")
        if self._completion_handler is not None:
            try:
                self._completion_handler(result)
            except Exception as e:
                log_error(f"Completion handler raised: {e}")
        self.state = SessionState.IDLE
        return True


class SessionCoordinator:
    """
    Entry point for host background wakes.

    Args:
        store: QueueStore holding pending uploads
        dispatcher: Dispatcher that drains the store
        upload_fn: Upload operation passed to the dispatcher
        safety_margin_ratio: Fraction of the budget kept in reserve
        min_safety_margin: Lower bound on the reserve (seconds)
        max_safety_margin: Upper bound on the reserve (seconds)

    The reserve never exceeds half the budget, so very short budgets still
    leave time for work.
    """

    def __init__(
        self,
        store,
        dispatcher,
        upload_fn: Callable,
        safety_margin_ratio: float = 0.15,
        min_safety_margin: float = 0.5,
        max_safety_margin: float = 5.0,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.upload_fn = upload_fn
        self.safety_margin_ratio = safety_margin_ratio
        self.min_safety_margin = min_safety_margin
        self.max_safety_margin = max_safety_margin
        self.last_session: Optional[WakeSession] = None

    def safety_margin(self, budget: float) -> float:
        """Seconds of the budget reserved for reporting back to the host."""
        margin = budget * self.safety_margin_ratio
        margin = max(self.min_safety_margin, min(self.max_safety_margin, margin))
        return min(margin, budget / 2)

    def handle_wake(
        self,
        budget: Union[float, timedelta],
        completion_handler: Optional[Callable[[WakeResult], None]] = None,
    ) -> WakeResult:
        """
        Handle one host wake.

        Args:
            budget: Time the host allows, seconds or timedelta
            completion_handler: Called exactly once with the result

        Returns:
            The reported WakeResult. Returns no later than the budget minus
            the safety margin; uploads still running continue in the
            background and update the store when they finish.
        """
        if isinstance(budget, timedelta):
            budget = budget.total_seconds()
        budget = max(0.0, float(budget))

        session = WakeSession(completion_handler)
        self.last_session = session

        session.state = SessionState.CHECKING
        try:
            pending = self.store.count([ItemState.PENDING])
        except QueueStoreError as e:
            log_error(f"Could not read queue size: {e}")
            session.report(WakeResult.FAILED, "checking")
            return session.slot.value

        if pending == 0:
            log_debug("Queue empty, nothing to upload")
            session.report(WakeResult.NO_DATA, "checking")
            return session.slot.value

        window = budget - self.safety_margin(budget)
        deadline = time.monotonic() + window
        log_info(f"Wake: {pending} pending item(s), {window:.1f}s of {budget:.1f}s budget")

        session.state = SessionState.DISPATCHING
        watchdog = threading.Timer(window, self._on_watchdog, args=(session,))
        watchdog.daemon = True
        runner = threading.Thread(
            target=self._run_dispatcher,
            args=(session, deadline, watchdog),
            name='bgupload-dispatch',
            daemon=True,
        )
        watchdog.start()
        runner.start()

        return session.slot.wait()

    def _run_dispatcher(self, session: WakeSession, deadline: float, watchdog: threading.Timer) -> None:
        result = None
        try:
            outcome = self.dispatcher.run(
                deadline,
                self.upload_fn,
                stop_event=session.stop_event,
                progress=session.progress,
            )
            result = result_for_counts(outcome.uploaded_count, outcome.failed_count)
        except Exception as e:
            log_error(f"Dispatcher crashed: {e}")
        finally:
            watchdog.cancel()
            # handle_wake blocks on the slot until someone reports
            if result is None:
                uploaded, _ = session.progress.snapshot()
                result = WakeResult.NEW_DATA if uploaded else WakeResult.FAILED
            session.report(result, "dispatcher")

    def _on_watchdog(self, session: WakeSession) -> None:
        session.stop_event.set()
        uploaded, failed = session.progress.snapshot()
        if session.report(result_for_counts(uploaded, failed), "watchdog"):
            log_warn(f"Watchdog fired before dispatcher finished ({uploaded} uploaded, {failed} failed)")
