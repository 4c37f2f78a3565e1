#!/usr/bin/env python3
"""Run a one-shot offline queue sync (manual trigger).

Usage:
    python scripts/sync_now.py            # drain the queue
    python scripts/sync_now.py --list     # show what is queued
    python scripts/sync_now.py --clear    # drop everything queued
"""

import argparse
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from fieldsync import mutation_log  # noqa: E402
from fieldsync.backend import backend_from_config  # noqa: E402
from fieldsync.reconciler import QueueReconciler  # noqa: E402
from fieldsync.sync_status import SyncStatusReporter  # noqa: E402


def _describe(item) -> str:
    payload = item.payload
    if "project" in item.type.value:
        label = payload.get("name") or payload.get("project_number") or payload.get("id") or "Project"
    else:
        label = payload.get("identifier") or payload.get("id") or "Chamber"
    return f"{item.created_at:%Y-%m-%d %H:%M}  {item.type.value:<15} {label}"


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync the offline mutation queue")
    parser.add_argument("--list", action="store_true", help="List queued mutations")
    parser.add_argument("--clear", action="store_true", help="Clear the queue")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.list:
        queue = mutation_log.list_queue()
        if not queue:
            print("No queued items.")
        for item in queue:
            print(_describe(item))
        return 0

    reporter = SyncStatusReporter(QueueReconciler(backend_from_config()))
    if args.clear:
        removed = reporter.clear_queue()
        print(f"Cleared offline queue ({removed} entries).")
        return 0

    if reporter.reconciler.backend is None:
        print("Backend not configured (set SUPABASE_URL and SUPABASE_ANON_KEY).", file=sys.stderr)
        return 2

    reporter.subscribe(print)
    result = reporter.sync_now()
    print(f"Queue depth now {reporter.depth}")
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
