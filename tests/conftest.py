"""Shared fixtures for dupreaper tests."""

from contextlib import contextmanager

import pytest

from dupreaper.errors import EnumerationError, ProcessAccessError, SelfIdentityError
from dupreaper.models import ProcessRecord

SELF_PID = 100
DRIVER = "C:\\Program Files\\HP\\LoadRunner\\bin\\mmdrv.exe"
OTHER = "C:\\Windows\\System32\\notepad.exe"


class FakeBackend:
    """
    In-memory process table that records every call made to it.

    ``processes`` maps pid to image path; a path of None means the process
    cannot be queried.
    """

    def __init__(
        self,
        processes: dict[int, str | None] | None = None,
        self_pid: int = SELF_PID,
        self_path: str = DRIVER,
        fail_self: bool = False,
        fail_enum: bool = False,
        fail_open: set[int] | None = None,
        fail_terminate: set[int] | None = None,
    ) -> None:
        # The caller is listed first, like a fresh snapshot taken by it.
        self.processes: dict[int, str | None] = {self_pid: self_path}
        self.processes.update(processes or {})
        self.self_pid = self_pid
        self.self_path = self_path
        self.fail_self = fail_self
        self.fail_enum = fail_enum
        self.fail_open = fail_open or set()
        self.fail_terminate = fail_terminate or set()

        self.initialized = False
        self.initialize_calls = 0
        self.list_calls: list[int | None] = []
        self.queried: list[int] = []
        self.opened: list[int] = []
        self.released: list[int] = []
        self.terminated: list[int] = []

    def initialize(self) -> None:
        self.initialize_calls += 1
        self.initialized = True

    def current_process(self) -> ProcessRecord:
        if self.fail_self:
            raise SelfIdentityError("self query failed")
        return ProcessRecord(pid=self.self_pid, image_path=self.self_path)

    def list_pids(self, limit: int | None = None) -> list[int]:
        self.list_calls.append(limit)
        if self.fail_enum:
            raise EnumerationError("enumeration failed")
        pids = list(self.processes)
        return pids[:limit] if limit is not None else pids

    def image_path(self, pid: int) -> str:
        self.queried.append(pid)
        path = self.processes.get(pid)
        if not path:
            raise ProcessAccessError(pid, "access denied")
        return path

    @contextmanager
    def open_process(self, pid: int):
        if pid in self.fail_open or pid not in self.processes:
            raise ProcessAccessError(pid, "open failed")
        self.opened.append(pid)
        try:
            yield pid
        finally:
            self.released.append(pid)

    def terminate(self, handle: int) -> bool:
        self.terminated.append(handle)
        if handle in self.fail_terminate:
            return False
        del self.processes[handle]
        return True


@pytest.fixture
def make_backend():
    """Factory for FakeBackend instances."""
    return FakeBackend


@pytest.fixture
def self_pid():
    """Pid FakeBackend reports for the caller."""
    return SELF_PID


@pytest.fixture
def driver():
    """Image path of the caller and its duplicates."""
    return DRIVER


@pytest.fixture
def other():
    """Image path of an unrelated program."""
    return OTHER
