#!/usr/bin/env python3
"""
Manual queue tool for BgUpload.

Run this script to inspect the upload queue or drain it outside a host wake.
Useful when the queue has stalled because the OS stopped granting background
time, or to retry uploads that failed permanently.

Usage:
    python process_queue.py [--data-dir /path/to/data] [--budget 25]
    python process_queue.py --stats-only
    python process_queue.py --list-failed | --retry-failed | --purge-failed
    python process_queue.py --enqueue /path/to/file --meta destination=https://...
"""

import argparse
import json
import logging
import sys

logger = logging.getLogger('BgUpload.manual')


def parse_meta(pairs):
    """Turn ["key=value", ...] into an ordered dict."""
    metadata = {}
    for pair in pairs or []:
        key, sep, value = pair.partition('=')
        if not sep or not key:
            raise ValueError(f"--meta expects KEY=VALUE, got: {pair}")
        metadata[key] = value
    return metadata


def build_config(args):
    """Build UploaderConfig from BGU_ env vars overridden by command line args."""
    from validation.config import validate_config

    overrides = {}
    if args.data_dir:
        overrides['data_dir'] = args.data_dir
    if args.upload_url:
        overrides['upload_url'] = args.upload_url
    if args.log_level:
        overrides['log_level'] = args.log_level
    if args.json_logs:
        overrides['json_logs'] = True
    if args.debug:
        overrides['debug_logging'] = True

    return validate_config(overrides)


def run_admin(args, config):
    """Actions that only need the store."""
    from upload_queue.store import QueueStore

    if not (args.stats_only or args.list_failed or args.retry_failed
            or args.purge_failed or args.enqueue):
        return None

    store = QueueStore(
        config.data_dir,
        max_attempts=config.max_attempts,
        capacity=config.capacity,
        stale_after=config.stale_after,
        backoff_base=config.backoff_base,
        backoff_cap=config.backoff_cap,
    )

    if args.stats_only:
        print(json.dumps(store.stats(), indent=2))
        return 0

    if args.list_failed:
        failed = [item.to_dict() for item in store.list_failed(limit=args.limit)]
        print(json.dumps(failed, indent=2))
        return 0

    if args.retry_failed:
        count = store.requeue_failed()
        logger.info(f"Requeued {count} failed item(s)")
        return 0

    if args.purge_failed:
        count = store.purge_failed()
        logger.info(f"Purged {count} failed item(s)")
        return 0

    if args.enqueue:
        item_id = store.enqueue(args.enqueue, parse_meta(args.meta))
        print(item_id)
        return 0


def process_queue(config, budget):
    """Run one wake against the queue and report the result."""
    from session.coordinator import WakeResult
    from session.runtime import UploaderRuntime

    config.log_config()
    with UploaderRuntime(config) as runtime:
        pending = runtime.queue_count()
        logger.info(f"Queue has {pending} item(s) waiting or in flight")
        result = runtime.handle_wake(budget)
        logger.info(f"Wake result: {result.value}")
        logger.info(f"Final queue stats: {runtime.store.stats()}")
    return 1 if result == WakeResult.FAILED else 0


def main(argv=None):
    parser = argparse.ArgumentParser(description='Inspect or drain the BgUpload queue')
    parser.add_argument('--data-dir', '-d', help='Queue data directory (or set BGU_DATA_DIR)')
    parser.add_argument('--upload-url', help='Default upload endpoint (or set BGU_UPLOAD_URL)')
    parser.add_argument('--budget', '-b', type=float, help='Seconds allowed for processing')
    parser.add_argument('--log-level', help='trace, debug, info, warning or error')
    parser.add_argument('--json-logs', action='store_true', help='Emit JSON log lines')
    parser.add_argument('--debug', action='store_true', help='Log every claim and upload attempt (TRACE)')

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument('--stats-only', '-s', action='store_true', help='Only show queue stats')
    actions.add_argument('--list-failed', action='store_true', help='Show permanently failed items')
    actions.add_argument('--retry-failed', action='store_true', help='Requeue permanently failed items')
    actions.add_argument('--purge-failed', action='store_true', help='Delete permanently failed items')
    actions.add_argument('--enqueue', metavar='PATH', help='Add a file to the queue')

    parser.add_argument('--meta', action='append', metavar='KEY=VALUE', help='Metadata for --enqueue')
    parser.add_argument('--limit', type=int, default=50, help='Rows for --list-failed')

    args = parser.parse_args(argv)

    config, error = build_config(args)
    if config is None:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Invalid configuration: {error}")
        return 1

    from shared.logging_config import configure_logging
    configure_logging(config.log_level, json_output=config.json_logs, debug=config.debug_logging)

    from upload_queue.errors import QueueStoreError

    try:
        handled = run_admin(args, config)
        if handled is not None:
            return handled
        return process_queue(config, args.budget if args.budget is not None else config.default_budget)
    except (QueueStoreError, ValueError) as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
