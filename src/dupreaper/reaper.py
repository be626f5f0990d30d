"""Duplicate-process reaper.

Finds every process running the same executable image as the caller and
terminates all of them except the caller.

The scan works on a snapshot of pids that is not atomic with the actions
taken on it: a process may exit before it is queried, a new duplicate
started after the snapshot survives, and two reapers running at once may
both try to terminate the same process. These races are inherent to the
OS enumeration API and are tolerated, not prevented.
"""

import logging
from collections.abc import Iterator

from dupreaper.backends import ProcessBackend, default_backend
from dupreaper.config import ReaperConfig
from dupreaper.errors import EnumerationError, ProcessAccessError, SelfIdentityError
from dupreaper.models import ProcessRecord, ReapReport, ReapStatus

logger = logging.getLogger(__name__)


class Reaper:
    """
    Scan the process table for duplicates of the caller and terminate them.

    Only two failures abort a pass: the caller's own identity cannot be
    resolved, or the process table cannot be listed. Both are logged and
    reported through ReapReport.status. Failures on a single candidate
    skip that candidate and never escape the scan.
    """

    def __init__(
        self,
        backend: ProcessBackend | None = None,
        config: ReaperConfig | None = None,
    ) -> None:
        """
        Initialize the Reaper.

        Args:
            backend: OS primitives to use. Defaults to the one named in config.
            config: Settings. Defaults to ReaperConfig().
        """
        self._config = config if config is not None else ReaperConfig()
        self._backend = backend if backend is not None else default_backend(self._config)

    @property
    def config(self) -> ReaperConfig:
        return self._config

    @property
    def backend(self) -> ProcessBackend:
        return self._backend

    def reap(self, dry_run: bool | None = None) -> ReapReport:
        """
        Run one pass: find duplicates of the caller and terminate them.

        Args:
            dry_run: Only report matches. Defaults to config.dry_run.
        """
        if dry_run is None:
            dry_run = self._config.dry_run
        report = ReapReport(status=ReapStatus.COMPLETED, dry_run=dry_run)

        try:
            self._backend.initialize()
            me = self._backend.current_process()
        except SelfIdentityError as exc:
            logger.error("Error querying the current process: %s", exc)
            report.status = ReapStatus.SELF_IDENTITY_FAILED
            return report
        report.self_record = me

        try:
            pids = self._backend.list_pids(self._config.max_process_ids)
        except EnumerationError as exc:
            logger.error("Error enumerating processes: %s", exc)
            report.status = ReapStatus.ENUMERATION_FAILED
            return report
        report.snapshot_size = len(pids)

        for record in self._matches(me, pids):
            report.matched.append(record)
            if dry_run:
                logger.info("Would kill process %d (%s)", record.pid, record.image_path)
                continue
            if self._kill(record.pid):
                report.terminated.append(record.pid)
            else:
                report.failed.append(record.pid)

        logger.debug(
            "Reap finished: %d matched, %d terminated out of %d processes",
            len(report.matched),
            report.count,
            report.snapshot_size,
        )
        return report

    def find_duplicates(self) -> list[ProcessRecord]:
        """Return the duplicates of the caller without terminating anything."""
        return self.reap(dry_run=True).matched

    def _matches(self, me: ProcessRecord, pids: list[int]) -> Iterator[ProcessRecord]:
        """Yield a record for each pid whose image matches the caller's."""
        for pid in pids:
            if pid == me.pid:
                continue
            try:
                path = self._backend.image_path(pid)
            except ProcessAccessError as exc:
                logger.debug("Skipping %s", exc)
                continue

            candidate = ProcessRecord(pid=pid, image_path=path)
            if candidate.same_image(me):
                yield candidate

    def _kill(self, pid: int) -> bool:
        """Open, terminate and release a single process."""
        try:
            with self._backend.open_process(pid) as handle:
                logger.info("Killing process %d", pid)
                return self._backend.terminate(handle)
        except ProcessAccessError as exc:
            logger.debug("Skipping %s", exc)
            return False


def kill_duplicates(
    backend: ProcessBackend | None = None,
    config: ReaperConfig | None = None,
) -> int:
    """
    Terminate every other process running the caller's executable image.

    Returns the number of processes terminated. 0 means either that no
    duplicate was found or that the pass aborted early; use Reaper.reap()
    to tell these apart.
    """
    return Reaper(backend, config).reap().count
