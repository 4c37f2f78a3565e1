"""Sync status reporter -- queue depth, connectivity, and sync triggers.

Polls the mutation log's depth on a fixed interval (APScheduler 3.x
background scheduler) and probes the backend for reachability. An
offline -> online transition triggers an automatic drain. UI code can
also call sync_now() for a manual pass, notify_focus() when the app
regains focus, and subscribe() to receive status strings.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from . import config, mutation_log
from .models import DrainResult
from .reconciler import QueueReconciler

logger = logging.getLogger(__name__)

POLL_JOB_ID = "sync_status_poll"


def format_result(result: DrainResult) -> str:
    """Human-readable summary of a drain pass."""
    if result.skipped:
        return "Sync already in progress"
    if result.failed:
        return f"Synced {result.success}, failed {result.failed}"
    return f"Synced {result.success}"


class SyncStatusReporter:
    """Keeps queue depth and online state fresh and drives replays."""

    def __init__(
        self,
        reconciler: QueueReconciler,
        ping: Optional[Callable[[], bool]] = None,
        poll_interval: Optional[int] = None,
        auto_sync: bool = True,
        drain_on_poll: bool = False,
    ) -> None:
        self.reconciler = reconciler
        self._ping = ping or self._default_ping
        self.poll_interval = poll_interval or config.SYNC_POLL_INTERVAL_SECONDS
        self.auto_sync = auto_sync
        self.drain_on_poll = drain_on_poll
        self.depth = 0
        self.is_online: Optional[bool] = None
        self.last_message = ""
        self.last_result: Optional[DrainResult] = None
        self.last_polled_at: Optional[datetime] = None
        self._listeners: list[Callable[[str], None]] = []
        self._lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

    def _default_ping(self) -> bool:
        backend = self.reconciler.backend
        if backend is None or not hasattr(backend, "ping"):
            return False
        return backend.ping()

    # --- Listeners ---

    def subscribe(self, callback: Callable[[str], None]) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[str], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, message: str) -> None:
        self.last_message = message
        for callback in list(self._listeners):
            try:
                callback(message)
            except Exception as e:
                logger.warning("Status listener raised: %s", e)

    # --- Polling ---

    def queue_depth(self) -> int:
        self.depth = mutation_log.queue_depth()
        return self.depth

    def check_online(self) -> bool:
        """Probe connectivity; drain automatically when coming back online."""
        try:
            online = bool(self._ping())
        except Exception as e:
            logger.debug("Connectivity probe failed: %s", e)
            online = False

        with self._lock:
            was_online = self.is_online
            self.is_online = online

        if was_online is not None and was_online != online:
            logger.info("Connectivity changed: %s", "online" if online else "offline")
            self._emit("Online: connected" if online else "Offline: changes will queue and sync later")
            if online and self.auto_sync and self.depth > 0:
                self.sync_now()
        return online

    def refresh(self) -> None:
        """One poll tick. Failures are logged; the next tick retries."""
        try:
            self.queue_depth()
            was_online = self.is_online
            online = self.check_online()
            self.last_polled_at = datetime.now(timezone.utc)
            # Leftovers are retried on every tick while staying online
            if self.drain_on_poll and online and was_online and self.depth > 0:
                self.sync_now()
        except Exception as e:
            logger.warning("Sync status poll failed: %s", e, exc_info=True)

    def notify_focus(self) -> None:
        """App regained focus/visibility; refresh right away."""
        self.refresh()

    # --- Triggers ---

    def sync_now(self) -> DrainResult:
        """Run a drain pass now and report its counts."""
        self._emit("Syncing...")
        result = self.reconciler.drain(on_status=self._emit)
        if not result.skipped:
            self.last_result = result
        self._emit(format_result(result))
        self.queue_depth()
        return result

    def clear_queue(self) -> int:
        removed = mutation_log.clear()
        self._emit("Cleared offline queue.")
        self.queue_depth()
        return removed

    def status(self) -> dict:
        return {
            "queued": self.depth,
            "online": self.is_online,
            "syncing": self.reconciler.draining,
            "last_message": self.last_message,
            "last_result": self.last_result.model_dump() if self.last_result else None,
            "last_polled_at": self.last_polled_at.isoformat() if self.last_polled_at else None,
        }

    # --- Lifecycle ---

    def start(self) -> None:
        """Start background polling."""
        if self._scheduler is not None:
            return
        self.refresh()
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self.refresh,
            trigger=IntervalTrigger(seconds=self.poll_interval),
            id=POLL_JOB_ID,
            name=POLL_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info("Sync status polling every %ss", self.poll_interval)

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Sync status polling stopped")

    @property
    def running(self) -> bool:
        return self._scheduler is not None
