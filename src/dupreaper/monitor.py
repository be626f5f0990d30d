"""Background duplicate watcher for dupreaper."""

import logging
import threading
import time
from dataclasses import dataclass
from queue import Queue

from dupreaper.models import ProcessRecord, ReapReport
from dupreaper.reaper import Reaper

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DuplicateSnapshot:
    """Duplicates seen at one poll. taken_at is a monotonic clock reading."""

    taken_at: float
    report: ReapReport

    @property
    def self_record(self) -> ProcessRecord | None:
        return self.report.self_record

    @property
    def duplicates(self) -> list[ProcessRecord]:
        return self.report.matched


class DuplicateMonitor:
    """
    Periodically scans for duplicates of the caller without killing them.

    Runs in a separate daemon thread and pushes updates to a thread-safe Queue.
    Errors in a single poll are logged and the loop keeps running.
    """

    def __init__(
        self,
        reaper: Reaper,
        update_queue: Queue[DuplicateSnapshot],
        poll_rate: float = 2.0,
    ) -> None:
        """
        Initialize the DuplicateMonitor.

        Args:
            reaper: Reaper used for dry-run scans.
            update_queue: Thread-safe queue to push updates to.
            poll_rate: How often to scan (in seconds). Default 2.0s.
        """
        self._reaper = reaper
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="DuplicateMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def scan(self) -> DuplicateSnapshot:
        """Run a single dry-run scan."""
        taken_at = time.monotonic()
        report = self._reaper.reap(dry_run=True)
        return DuplicateSnapshot(taken_at=taken_at, report=report)

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.scan())
            except Exception:
                logger.exception("Duplicate scan failed")

            self._stop_event.wait(timeout=self._poll_rate)
