"""
Background expiry sweeper.

Runs SparkStore.sweep on a fixed interval in a daemon thread. The
owner calls start() at startup and stop() at shutdown; nothing runs
until start() is called.
"""

import logging
import threading
from typing import List, Optional

from sparks.config import settings
from sparks.models import Group
from sparks.storage import SparkStore

logger = logging.getLogger(__name__)


class ExpirySweeper:

    def __init__(self, store: SparkStore, interval_seconds: Optional[float] = None):
        if interval_seconds is None:
            interval_seconds = settings.SWEEP_INTERVAL_SECONDS
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.store = store
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._in_flight = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sweep loop. No-op if it is already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Expiry sweeper started (interval={self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal the loop to exit and wait for the thread."""
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Expiry sweeper did not stop within timeout")
        else:
            self._thread = None
            logger.info("Expiry sweeper stopped")

    def run_once(self) -> List[Group]:
        """
        Sweep now, unless another sweep is already in flight.

        Returns:
            Groups evicted by this call
        """
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Sweep already in flight, skipping")
            return []
        try:
            expired = self.store.sweep()
        finally:
            self._in_flight.release()

        if expired:
            logger.info(f"Sweeper evicted {len(expired)} groups", extra={"group_ids": [g.id for g in expired]})
        return expired

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                # keep the timer alive; the next tick retries
                logger.exception("Expiry sweep failed")
