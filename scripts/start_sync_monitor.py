#!/usr/bin/env python3
"""Run the sync status monitor in the foreground.

Polls queue depth and backend reachability, and drains the offline
queue automatically whenever connectivity comes back.

Usage:
    python scripts/start_sync_monitor.py
    python scripts/start_sync_monitor.py --retry-every-tick
"""

import argparse
import logging
import sys
import time
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))


def main() -> None:
    parser = argparse.ArgumentParser(description="FieldSync status monitor")
    parser.add_argument(
        "--retry-every-tick",
        action="store_true",
        help="Also retry leftover entries on every poll while online",
    )
    args = parser.parse_args()

    from fieldsync.config import MONITOR_LOG_FILE, ensure_data_dirs
    from fieldsync.backend import backend_from_config
    from fieldsync.reconciler import QueueReconciler
    from fieldsync.sync_status import SyncStatusReporter

    ensure_data_dirs()
    handlers = [logging.FileHandler(str(MONITOR_LOG_FILE))]
    try:
        sys.stderr.write("")  # Test if stderr is usable
        handlers.append(logging.StreamHandler(sys.stderr))
    except (OSError, ValueError, AttributeError):
        pass
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=handlers,
    )

    reporter = SyncStatusReporter(
        QueueReconciler(backend_from_config()),
        drain_on_poll=args.retry_every_tick,
    )
    reporter.subscribe(lambda msg: logging.getLogger("fieldsync.monitor").info(msg))
    reporter.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        reporter.stop()


if __name__ == "__main__":
    main()
