"""Windows backend talking to kernel32 and psapi through ctypes."""

import ctypes
import logging
import sys
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager

from dupreaper.errors import EnumerationError, ProcessAccessError, SelfIdentityError
from dupreaper.models import ProcessRecord

logger = logging.getLogger(__name__)

# Win32 types with their Windows sizes. ctypes.wintypes is not used so that
# this module imports on every platform.
DWORD = ctypes.c_uint32
BOOL = ctypes.c_int32
UINT = ctypes.c_uint32
HANDLE = ctypes.c_void_p
LPWSTR = ctypes.c_wchar_p

# Process access rights
PROCESS_TERMINATE = 0x0001
PROCESS_QUERY_LIMITED_INFORMATION = 0x1000

# Extended-length paths may reach 32767 characters.
MAX_IMAGE_PATH = 32768

# First EnumProcesses buffer size when the snapshot is not capped.
INITIAL_PID_CAPACITY = 1024


class Win32Backend:
    """
    Backend using the raw Win32 process API.

    Every handle is opened inside a context manager and closed on all exit
    paths. initialize() loads the DLLs once and records it in
    ``initialized``.
    """

    def __init__(self, exit_code: int = 0) -> None:
        self.exit_code = exit_code
        self.initialized = False
        self._kernel32 = None
        self._psapi = None
        self._get_last_error = None

    def initialize(self) -> None:
        """
        Load kernel32 and psapi and declare the prototypes used.

        Raises:
            SelfIdentityError: If the DLLs cannot be loaded, since no
                process, the caller included, can be queried without them.
        """
        if self.initialized:
            return
        if sys.platform != "win32":
            raise SelfIdentityError("the win32 backend is only available on Windows")

        try:
            kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
            psapi = ctypes.WinDLL("psapi", use_last_error=True)
        except OSError as exc:
            raise SelfIdentityError(f"cannot load kernel32/psapi: {exc}") from exc

        kernel32.GetCurrentProcessId.argtypes = []
        kernel32.GetCurrentProcessId.restype = DWORD
        kernel32.OpenProcess.argtypes = [DWORD, BOOL, DWORD]
        kernel32.OpenProcess.restype = HANDLE
        kernel32.CloseHandle.argtypes = [HANDLE]
        kernel32.CloseHandle.restype = BOOL
        kernel32.TerminateProcess.argtypes = [HANDLE, UINT]
        kernel32.TerminateProcess.restype = BOOL
        kernel32.QueryFullProcessImageNameW.argtypes = [HANDLE, DWORD, LPWSTR, ctypes.POINTER(DWORD)]
        kernel32.QueryFullProcessImageNameW.restype = BOOL
        psapi.EnumProcesses.argtypes = [ctypes.POINTER(DWORD), DWORD, ctypes.POINTER(DWORD)]
        psapi.EnumProcesses.restype = BOOL

        self._kernel32 = kernel32
        self._psapi = psapi
        self._get_last_error = ctypes.get_last_error
        self.initialized = True
        logger.debug("Loaded kernel32 and psapi")

    def current_process(self) -> ProcessRecord:
        self.initialize()
        pid = int(self._kernel32.GetCurrentProcessId())
        try:
            path = self.image_path(pid)
        except ProcessAccessError as exc:
            raise SelfIdentityError(f"cannot query the current process: {exc}") from exc
        return ProcessRecord(pid=pid, image_path=path)

    def list_pids(self, limit: int | None = None) -> list[int]:
        """
        Enumerate pids with EnumProcesses.

        Without a limit the buffer doubles until the call returns fewer ids
        than it can hold, so the snapshot is never silently truncated.
        """
        self.initialize()
        item_size = ctypes.sizeof(DWORD)
        capacity = limit if limit is not None else INITIAL_PID_CAPACITY

        while True:
            buffer = (DWORD * capacity)()
            returned = DWORD()
            ok = self._psapi.EnumProcesses(buffer, ctypes.sizeof(buffer), ctypes.byref(returned))
            if not ok:
                raise EnumerationError(f"EnumProcesses failed (error {self._get_last_error()})")

            count = returned.value // item_size
            if limit is not None or count < capacity:
                return [int(pid) for pid in buffer[:count]]
            capacity *= 2

    def image_path(self, pid: int) -> str:
        self.initialize()
        with self._handle(pid, PROCESS_QUERY_LIMITED_INFORMATION) as handle:
            buffer = ctypes.create_unicode_buffer(MAX_IMAGE_PATH)
            size = DWORD(MAX_IMAGE_PATH)
            if not self._kernel32.QueryFullProcessImageNameW(handle, 0, buffer, ctypes.byref(size)):
                raise ProcessAccessError(
                    pid, f"QueryFullProcessImageNameW failed (error {self._get_last_error()})"
                )
            path = buffer.value
        if not path:
            raise ProcessAccessError(pid, "empty image path")
        return path

    def open_process(self, pid: int) -> AbstractContextManager[int]:
        self.initialize()
        return self._handle(pid, PROCESS_QUERY_LIMITED_INFORMATION | PROCESS_TERMINATE)

    def terminate(self, handle: int) -> bool:
        return bool(self._kernel32.TerminateProcess(handle, self.exit_code))

    @contextmanager
    def _handle(self, pid: int, access: int) -> Iterator[int]:
        handle = self._kernel32.OpenProcess(access, False, pid)
        if not handle:
            raise ProcessAccessError(pid, f"OpenProcess failed (error {self._get_last_error()})")
        try:
            yield handle
        finally:
            self._kernel32.CloseHandle(handle)
