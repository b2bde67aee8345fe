"""
transport.http_uploader — Default upload operation over HTTP.

Design notes:
- Sync httpx.Client: the dispatcher already runs each upload on its own
  worker thread. Caller must call close() when done.
- One multipart POST per item: the file at content_ref as "file", every
  metadata entry as a form field.
- X-Upload-Id carries the item id so a server can drop duplicates when an
  item is re-sent after a crash between upload and mark_done.
- Errors are raised as TransientError / PermanentError so the dispatcher
  knows whether to retry.
"""

from __future__ import annotations

import os
from typing import Optional

import httpx

from shared.log import create_logger
from upload_queue.models import UploadItem
from validation.errors import classify_http_error
from worker.errors import PermanentError, TransientError

log_trace, log_debug, log_info, log_warn, log_error = create_logger("HTTP")

DESTINATION_KEY = 'destination'


class HttpUploader:
    """
    Upload operation that POSTs item content to an HTTP endpoint.

    Args:
        url: Default endpoint used when an item has no 'destination' metadata
        token: Optional bearer token
        connect_timeout: Seconds to establish a connection
        read_timeout: Seconds to wait for the response
        client: Pre-built httpx.Client (tests / custom transports)

    Usage:
        uploader = HttpUploader("https://api.example.com/uploads", token="...")
        uploader(item)   # raises TransientError / PermanentError on failure
        uploader.close()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 20.0,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
            headers=headers,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpUploader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def destination_for(self, item: UploadItem) -> str:
        destination = item.metadata.get(DESTINATION_KEY) or self.url
        if not destination:
            raise PermanentError(f"Item {item.id} has no destination and no upload_url is configured")
        return destination

    def __call__(self, item: UploadItem) -> bool:
        """
        Upload one item.

        Returns:
            True on a 2xx response

        Raises:
            PermanentError: content missing, no destination, or a non-retryable status
            TransientError: connection failure, timeout, 429 or 5xx
        """
        destination = self.destination_for(item)
        path = item.content_ref

        if not os.path.isfile(path):
            raise PermanentError(f"Content for item {item.id} not found: {path}")

        form = {k: v for k, v in item.metadata.items() if k != DESTINATION_KEY}
        try:
            with open(path, 'rb') as fh:
                response = self._client.post(
                    destination,
                    files={"file": (os.path.basename(path), fh)},
                    data=form,
                    headers={"X-Upload-Id": item.id},
                )
        except OSError as e:
            raise PermanentError(f"Cannot read content for item {item.id}: {e}") from e
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise TransientError(f"Upload endpoint unreachable: {e}") from e
        except httpx.HTTPError as e:
            raise TransientError(f"Upload request failed: {e}") from e

        if response.is_success:
            log_trace(f"Item {item.id} accepted by {destination} (HTTP {response.status_code})")
            return True

        error_class = classify_http_error(response.status_code)
        raise error_class(f"Upload of item {item.id} rejected with HTTP {response.status_code}")
