"""
Shared pytest fixtures for BgUpload tests.

Provides reusable fixtures for:
- A controllable wall clock for the queue store
- QueueStore instances on a temporary directory
- Configuration objects
- Sample content files and upload operations

The store fixtures use a real SQLite database under tmp_path; nothing here
touches the network.
"""

import threading

import pytest


# =============================================================================
# Clock Fixtures
# =============================================================================

class FakeClock:
    """Manually advanced clock. Call it to read the time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


@pytest.fixture
def clock():
    """
    Fake wall clock for QueueStore.

    Usage:
        def test_backoff(store, clock):
            clock.advance(10)
    """
    return FakeClock()


# =============================================================================
# Queue Store Fixtures
# =============================================================================

@pytest.fixture
def data_dir(tmp_path):
    """Directory holding queue.db and stats.json."""
    return str(tmp_path / "data")


@pytest.fixture
def make_store(data_dir, clock):
    """
    Factory for QueueStore instances sharing data_dir and the fake clock.

    Usage:
        def test_restart(make_store):
            first = make_store()
            second = make_store(max_attempts=2)
    """
    from upload_queue.store import QueueStore

    def _make(**kwargs):
        kwargs.setdefault('clock', clock)
        kwargs.setdefault('backoff_base', 0.0)
        return QueueStore(data_dir, **kwargs)

    return _make


@pytest.fixture
def store(make_store):
    """QueueStore with backoff disabled and default limits."""
    return make_store()


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def clean_env(monkeypatch):
    """Remove BGU_ environment variables so config defaults apply."""
    import os

    for key in list(os.environ):
        if key.startswith('BGU_'):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def config(clean_env, data_dir):
    """
    Valid UploaderConfig pointed at a temp data_dir.

    Backoff is disabled and the safety margin kept small so wakes in tests
    use nearly their whole budget.
    """
    from validation.config import UploaderConfig

    return UploaderConfig(
        data_dir=data_dir,
        backoff_base=0.0,
        backoff_cap=0.0,
        min_safety_margin=0.1,
        max_safety_margin=0.5,
    )


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def content_file(tmp_path):
    """A small file to upload."""
    path = tmp_path / "img_001.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0 fake jpeg payload")
    return str(path)


@pytest.fixture
def sample_metadata():
    return {
        'destination': 'https://uploads.example.com/v1/photos',
        'checksum': 'sha256:9f86d081884c7d65',
        'album': 'Holiday 2026',
    }


class RecordingUploader:
    """Upload operation that records calls and returns/raises on demand."""

    def __init__(self, outcome=True):
        self.outcome = outcome
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, item):
        with self._lock:
            self.calls.append(item)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        if callable(self.outcome):
            return self.outcome(item)
        return self.outcome

    @property
    def uploaded_ids(self):
        return [item.id for item in self.calls]


@pytest.fixture
def recording_uploader():
    """
    Upload operation that succeeds and remembers every item.

    Usage:
        def test_upload(recording_uploader):
            recording_uploader.outcome = TransientError("timeout")
    """
    return RecordingUploader()
