"""Verification Test: reaping real duplicate processes.

Child processes are started from the interpreter running the tests, so
they share its executable image. The backend's snapshot is restricted to
the test process and its children so that no unrelated process on the
machine can be touched.
"""

import os
import shutil
import subprocess
import sys
import time

import psutil
import pytest

from dupreaper.backends import PsutilBackend
from dupreaper.models import ReapStatus
from dupreaper.reaper import Reaper, kill_duplicates

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]


class ChildrenOnlyBackend(PsutilBackend):
    """PsutilBackend whose snapshot is limited to a known set of pids."""

    def __init__(self, pids: list[int]) -> None:
        super().__init__()
        self._pids = pids

    def list_pids(self, limit: int | None = None) -> list[int]:
        pids = [os.getpid(), *self._pids]
        return pids[:limit] if limit is not None else pids


def wait_for_exit(procs: list[subprocess.Popen], timeout: float = 10.0) -> None:
    """Wait until every process has exited."""
    for proc in procs:
        proc.wait(timeout=timeout)


@pytest.fixture
def spawn():
    """Start processes and make sure they are gone at teardown."""
    started: list[subprocess.Popen] = []

    def _spawn(args: list[str]) -> subprocess.Popen:
        proc = subprocess.Popen(args)
        started.append(proc)
        return proc

    yield _spawn

    for proc in started:
        if proc.poll() is None:
            proc.kill()
    for proc in started:
        proc.wait(timeout=5)


def wait_until_exec(proc: subprocess.Popen, expected: str, timeout: float = 5.0) -> None:
    """Wait until the child reports the expected executable."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            if psutil.Process(proc.pid).exe() == expected:
                return
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            pass
        time.sleep(0.05)


class TestReapChildren:
    """Reap duplicates among spawned children."""

    def test_reaps_all_duplicates(self, spawn):
        children = [spawn(SLEEPER) for _ in range(3)]
        backend = ChildrenOnlyBackend([p.pid for p in children])

        count = kill_duplicates(backend)

        assert count == 3
        wait_for_exit(children)
        assert all(p.returncode is not None for p in children)

    def test_second_pass_is_empty(self, spawn):
        children = [spawn(SLEEPER) for _ in range(2)]
        backend = ChildrenOnlyBackend([p.pid for p in children])

        assert kill_duplicates(backend) == 2
        wait_for_exit(children)

        assert kill_duplicates(backend) == 0

    def test_caller_survives(self, spawn):
        children = [spawn(SLEEPER)]
        backend = ChildrenOnlyBackend([p.pid for p in children])

        report = Reaper(backend).reap()

        assert report.status is ReapStatus.COMPLETED
        assert os.getpid() not in report.terminated
        assert psutil.Process(os.getpid()).is_running()

    def test_exited_child_is_skipped(self, spawn):
        alive = spawn(SLEEPER)
        gone = spawn([sys.executable, "-c", "pass"])
        gone.wait(timeout=10)
        backend = ChildrenOnlyBackend([gone.pid, alive.pid])

        report = Reaper(backend).reap()

        assert report.terminated == [alive.pid]
        assert gone.pid not in report.failed

    @pytest.mark.skipif(shutil.which("sleep") is None, reason="no sleep binary")
    def test_other_image_is_left_alone(self, spawn):
        sleep_bin = shutil.which("sleep")
        stranger = spawn([sleep_bin, "60"])
        wait_until_exec(stranger, os.path.realpath(sleep_bin))
        duplicate = spawn(SLEEPER)
        backend = ChildrenOnlyBackend([stranger.pid, duplicate.pid])

        report = Reaper(backend).reap()

        assert report.terminated == [duplicate.pid]
        assert stranger.poll() is None

    def test_dry_run_leaves_children_running(self, spawn):
        children = [spawn(SLEEPER) for _ in range(2)]
        backend = ChildrenOnlyBackend([p.pid for p in children])

        report = Reaper(backend).reap(dry_run=True)

        assert sorted(r.pid for r in report.matched) == sorted(p.pid for p in children)
        assert all(p.poll() is None for p in children)
