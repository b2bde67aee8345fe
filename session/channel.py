"""
Method channel handler for the host bridge.

The native side of the app talks to the queue through a named channel with
two calls:

    getQueueCount -> int   items waiting or being uploaded
    processQueue  -> bool  True when the wake uploaded something new

Handlers must be fast and must never raise into the bridge for a known
method; queue errors are mapped to a negative answer.
"""

from typing import Optional

from shared.log import create_logger
from session.coordinator import WakeResult
from upload_queue.errors import QueueStoreError

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Channel")

CHANNEL_NAME = "bgupload/background"

GET_QUEUE_COUNT = "getQueueCount"
PROCESS_QUEUE = "processQueue"


class MethodNotImplemented(Exception):
    """The bridge called a method this channel doesn't handle."""

    def __init__(self, method: str):
        super().__init__(f"Method not implemented on {CHANNEL_NAME}: {method}")
        self.method = method


class MethodChannelHandler:
    """
    Dispatches channel calls to an UploaderRuntime.

    Args:
        runtime: Started UploaderRuntime

    Usage:
        handler = MethodChannelHandler(runtime)
        handler.handle("getQueueCount")                    # -> 3
        handler.handle("processQueue", {"budget": 25})     # -> True
    """

    def __init__(self, runtime):
        self.runtime = runtime
        self._handlers = {
            GET_QUEUE_COUNT: self._get_queue_count,
            PROCESS_QUEUE: self._process_queue,
        }

    def handle(self, method: str, arguments: Optional[dict] = None):
        handler = self._handlers.get(method)
        if handler is None:
            log_warn(f"Unknown method call: {method}")
            raise MethodNotImplemented(method)
        log_trace(f"Channel call: {method}")
        return handler(arguments or {})

    def _get_queue_count(self, arguments: dict) -> int:
        try:
            return self.runtime.queue_count()
        except QueueStoreError as e:
            log_error(f"getQueueCount failed: {e}")
            return 0

    def _process_queue(self, arguments: dict) -> bool:
        budget = arguments.get("budget")
        if budget is not None:
            try:
                budget = float(budget)
            except (TypeError, ValueError):
                log_warn(f"Ignoring invalid budget argument: {budget!r}")
                budget = None
        result = self.runtime.handle_wake(budget)
        return result == WakeResult.NEW_DATA
