"""
Integration test fixtures for BgUpload.

These fixtures compose the unit test fixtures from tests/conftest.py into a
started UploaderRuntime over a real SQLite queue, so wake scenarios run the
store, dispatcher and coordinator together.

All integration tests should be marked with @pytest.mark.integration
"""

import time

import pytest


def _wait_until(predicate, timeout=5.0):
    """Poll until predicate() is truthy; background uploads finish after a wake returns."""
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_runtime(config):
    """
    Factory for started UploaderRuntime instances; all are closed at teardown.

    Usage:
        def test_wake(make_runtime, recording_uploader):
            runtime = make_runtime(recording_uploader, max_attempts=3)
    """
    from session.runtime import UploaderRuntime

    runtimes = []

    def _make(upload_fn, **overrides):
        for key, value in overrides.items():
            setattr(config, key, value)
        runtime = UploaderRuntime(config, upload_fn=upload_fn).start()
        runtimes.append(runtime)
        return runtime

    yield _make

    for runtime in runtimes:
        runtime.close()


@pytest.fixture
def wait_until():
    """Poll helper: wait_until(lambda: ..., timeout=5.0) -> bool."""
    return _wait_until
