"""OS process primitives used by the reaper."""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Protocol, runtime_checkable

import psutil

from dupreaper.config import ReaperConfig
from dupreaper.errors import EnumerationError, ProcessAccessError, SelfIdentityError
from dupreaper.models import ProcessRecord
from dupreaper.win32 import Win32Backend

logger = logging.getLogger(__name__)

# A process that exited, is a zombie, is off limits or has an invalid pid.
PROCESS_ERRORS = (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess, OSError, ValueError)


@runtime_checkable
class ProcessBackend(Protocol):
    """Process enumeration, query and termination primitives."""

    initialized: bool

    def initialize(self) -> None:
        """One-time setup. Must be idempotent. Raises SelfIdentityError."""

    def current_process(self) -> ProcessRecord:
        """Return the caller's own record. Raises SelfIdentityError."""

    def list_pids(self, limit: int | None = None) -> list[int]:
        """Return live pids, at most ``limit`` of them. Raises EnumerationError."""

    def image_path(self, pid: int) -> str:
        """Return the executable path of ``pid``. Raises ProcessAccessError."""

    def open_process(self, pid: int) -> AbstractContextManager[Any]:
        """Open ``pid`` for query and terminate. Raises ProcessAccessError."""

    def terminate(self, handle: Any) -> bool:
        """Terminate an opened process. Returns False on failure."""


class PsutilBackend:
    """
    Portable backend built on psutil.

    psutil opens and closes the OS handle inside each call, so the handle
    yielded by open_process is a psutil.Process bound to the pid and its
    creation time. A pid recycled between open and terminate is refused by
    psutil rather than killed.
    """

    def __init__(self) -> None:
        self.initialized = False

    def initialize(self) -> None:
        """Mark the backend ready. psutil needs no explicit loading."""
        self.initialized = True

    def current_process(self) -> ProcessRecord:
        pid = os.getpid()
        try:
            path = psutil.Process(pid).exe()
        except PROCESS_ERRORS as exc:
            raise SelfIdentityError(f"cannot resolve image path of pid {pid}: {exc}") from exc
        if not path:
            raise SelfIdentityError(f"empty image path for pid {pid}")
        return ProcessRecord(pid=pid, image_path=path)

    def list_pids(self, limit: int | None = None) -> list[int]:
        try:
            pids = psutil.pids()
        except (psutil.Error, OSError) as exc:
            raise EnumerationError(f"cannot list processes: {exc}") from exc
        if limit is not None and len(pids) > limit:
            logger.debug("Snapshot truncated to %d of %d processes", limit, len(pids))
            pids = pids[:limit]
        return pids

    def image_path(self, pid: int) -> str:
        try:
            path = psutil.Process(pid).exe()
        except PROCESS_ERRORS as exc:
            raise ProcessAccessError(pid, str(exc)) from exc
        if not path:
            raise ProcessAccessError(pid, "empty image path")
        return path

    @contextmanager
    def open_process(self, pid: int) -> Iterator[psutil.Process]:
        try:
            proc = psutil.Process(pid)
        except PROCESS_ERRORS as exc:
            raise ProcessAccessError(pid, str(exc)) from exc
        yield proc

    def terminate(self, handle: psutil.Process) -> bool:
        try:
            handle.kill()
        except PROCESS_ERRORS:
            return False
        return True


def default_backend(config: ReaperConfig | None = None) -> ProcessBackend:
    """
    Build the backend named by the configuration.

    "auto" picks the Win32 backend on Windows, where it can terminate with
    exit status 0, and psutil everywhere else.
    """
    name = config.backend if config is not None else "auto"
    if name == "auto":
        name = "win32" if sys.platform == "win32" else "psutil"
    if name == "win32":
        return Win32Backend()
    return PsutilBackend()
