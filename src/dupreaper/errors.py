"""Exceptions raised by dupreaper."""


class ReaperError(Exception):
    """Base class for dupreaper errors."""


class SelfIdentityError(ReaperError):
    """The calling process's own pid or image path could not be resolved."""


class EnumerationError(ReaperError):
    """The OS process listing failed."""


class ProcessAccessError(ReaperError):
    """A single process could not be queried, opened or terminated.

    Raised by backends for one candidate; the reaper skips that candidate.
    """

    def __init__(self, pid: int, reason: str = "") -> None:
        self.pid = pid
        self.reason = reason
        message = f"process {pid} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
