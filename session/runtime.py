"""
Process-wide wiring for BgUpload.

UploaderRuntime owns the store, dispatcher, coordinator and upload operation
for one process. It is created explicitly by the host bridge (or the CLI),
started once and closed on teardown; nothing in the queue logic reaches for
it as a global.
"""

from datetime import timedelta
from typing import Callable, Optional, Union

from shared.log import create_logger
from session.coordinator import SessionCoordinator, WakeResult
from upload_queue.models import ItemState
from upload_queue.store import QueueStore
from worker.dispatcher import Dispatcher

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Runtime")


class UploaderRuntime:
    """
    Explicit init/teardown for the upload queue stack.

    Args:
        config: UploaderConfig
        upload_fn: Upload operation; defaults to an HttpUploader built from
                   config.upload_url / upload_token when omitted

    Usage:
        with UploaderRuntime(config) as runtime:
            runtime.enqueue('/photos/img_001.jpg', {'checksum': '...'})
            result = runtime.handle_wake(25.0)
    """

    def __init__(self, config, upload_fn: Optional[Callable] = None):
        self.config = config
        self._upload_fn = upload_fn
        self._http_uploader = None
        self.store: Optional[QueueStore] = None
        self.dispatcher: Optional[Dispatcher] = None
        self.coordinator: Optional[SessionCoordinator] = None

    @property
    def started(self) -> bool:
        return self.coordinator is not None

    def start(self) -> 'UploaderRuntime':
        """Open the store and build the dispatch stack. Idempotent."""
        if self.started:
            log_trace("Already started")
            return self

        upload_fn = self._upload_fn
        if upload_fn is None:
            if not self.config.upload_url:
                raise ValueError("No upload operation: pass upload_fn or configure upload_url")
            from transport.http_uploader import HttpUploader
            self._http_uploader = HttpUploader(
                url=self.config.upload_url,
                token=self.config.upload_token,
                connect_timeout=self.config.connect_timeout,
                read_timeout=self.config.read_timeout,
            )
            upload_fn = self._http_uploader

        self.store = QueueStore(
            self.config.data_dir,
            max_attempts=self.config.max_attempts,
            capacity=self.config.capacity,
            stale_after=self.config.stale_after,
            backoff_base=self.config.backoff_base,
            backoff_cap=self.config.backoff_cap,
        )
        self.dispatcher = Dispatcher(
            self.store,
            batch_size=self.config.batch_size,
            fan_out=self.config.fan_out,
            data_dir=self.config.data_dir,
        )
        self.coordinator = SessionCoordinator(
            self.store,
            self.dispatcher,
            upload_fn,
            safety_margin_ratio=self.config.safety_margin_ratio,
            min_safety_margin=self.config.min_safety_margin,
            max_safety_margin=self.config.max_safety_margin,
        )
        log_info(f"Started with queue at {self.store.db_path}")
        return self

    def close(self) -> None:
        """Release resources. Queued items stay on disk for the next start."""
        if not self.started:
            return
        log_info("Shutting down")
        if self._http_uploader is not None:
            self._http_uploader.close()
            self._http_uploader = None
        self.coordinator = None
        self.dispatcher = None
        self.store = None

    def __enter__(self) -> 'UploaderRuntime':
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _require_started(self) -> None:
        if not self.started:
            raise RuntimeError("UploaderRuntime is not started")

    def enqueue(self, content_ref: str, metadata: Optional[dict] = None) -> str:
        self._require_started()
        return self.store.enqueue(content_ref, metadata)

    def queue_count(self) -> int:
        """Items waiting or being uploaded."""
        self._require_started()
        return self.store.count((ItemState.PENDING, ItemState.IN_FLIGHT))

    def handle_wake(
        self,
        budget: Union[float, timedelta, None] = None,
        completion_handler: Optional[Callable[[WakeResult], None]] = None,
    ) -> WakeResult:
        """Handle a host wake; budget defaults to config.default_budget."""
        self._require_started()
        if budget is None:
            budget = self.config.default_budget
        return self.coordinator.handle_wake(budget, completion_handler)
