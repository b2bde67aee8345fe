"""Tests for process_queue.py - manual queue tool."""

import json
import logging

import httpx
import pytest
import respx

import process_queue
from shared.log import TRACE
from upload_queue.models import ItemState
from upload_queue.store import QueueStore

UPLOAD_URL = "https://uploads.example.com/v1/photos"


@pytest.fixture(autouse=True)
def restore_root_logger(clean_env):
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    package_level = logging.getLogger("BgUpload").level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("BgUpload").setLevel(package_level)


@pytest.fixture
def run(data_dir):
    """Run main() against the temp data dir."""
    def _run(*args):
        return process_queue.main(['--data-dir', data_dir, *args])
    return _run


class TestParseMeta:

    def test_pairs(self):
        assert process_queue.parse_meta(['album=Trip', 'note=a=b']) == {'album': 'Trip', 'note': 'a=b'}

    def test_none(self):
        assert process_queue.parse_meta(None) == {}

    @pytest.mark.parametrize("pair", ["album", "=value"])
    def test_invalid_pair(self, pair):
        with pytest.raises(ValueError, match="KEY=VALUE"):
            process_queue.parse_meta([pair])


class TestAdminActions:

    def test_enqueue_prints_id(self, run, data_dir, capsys):
        assert run('--enqueue', '/photos/img_001.jpg', '--meta', 'album=Trip') == 0

        item_id = capsys.readouterr().out.strip()
        item = QueueStore(data_dir).get(item_id)
        assert item.metadata == {'album': 'Trip'}

    def test_stats_only(self, run, capsys):
        run('--enqueue', '/photos/img_001.jpg')
        capsys.readouterr()

        assert run('--stats-only') == 0

        stats = json.loads(capsys.readouterr().out)
        assert stats['pending'] == 1

    def test_failed_item_admin(self, run, data_dir, capsys):
        store = QueueStore(data_dir, max_attempts=1)
        item_id = store.enqueue('/photos/img_001.jpg')
        [item] = store.claim_next(1)
        store.mark_failed(item.id, 'HTTP 400', claim_token=item.claim_token)

        assert run('--list-failed') == 0
        listed = json.loads(capsys.readouterr().out)
        assert [entry['id'] for entry in listed] == [item_id]

        assert run('--retry-failed') == 0
        assert store.get(item_id).state == ItemState.PENDING

    def test_purge_failed(self, run, data_dir):
        store = QueueStore(data_dir, max_attempts=1)
        store.enqueue('/photos/img_001.jpg')
        [item] = store.claim_next(1)
        store.mark_failed(item.id, 'HTTP 400', permanent=True)

        assert run('--purge-failed') == 0
        assert store.count([ItemState.FAILED]) == 0

    def test_invalid_meta_returns_error(self, run):
        assert run('--enqueue', '/photos/img_001.jpg', '--meta', 'oops') == 1

    def test_debug_flag_enables_trace(self, run):
        assert run('--debug', '--stats-only') == 0
        assert logging.getLogger('BgUpload.Queue').isEnabledFor(TRACE)


class TestProcessQueue:

    def test_drains_queue_over_http(self, run, data_dir, content_file):
        store = QueueStore(data_dir)
        store.enqueue(content_file, {'album': 'Trip'})

        with respx.mock:
            route = respx.post(UPLOAD_URL).mock(return_value=httpx.Response(200))
            assert run('--upload-url', UPLOAD_URL, '--budget', '5') == 0

        assert route.call_count == 1
        assert store.count() == 0

    def test_failed_wake_returns_one(self, run, data_dir, content_file):
        QueueStore(data_dir).enqueue(content_file)

        with respx.mock:
            respx.post(UPLOAD_URL).mock(return_value=httpx.Response(503))
            assert run('--upload-url', UPLOAD_URL, '--budget', '5') == 1

    def test_empty_queue_returns_zero(self, run):
        assert run('--upload-url', UPLOAD_URL, '--budget', '5') == 0

    def test_missing_upload_url_returns_error(self, run):
        assert run('--budget', '5') == 1

    def test_invalid_config_returns_error(self, run):
        assert run('--upload-url', 'ftp://uploads.example.com') == 1
