"""Data models for dupreaper."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of a process and the executable it was launched from."""

    pid: int
    image_path: str

    def same_image(self, other: "ProcessRecord") -> bool:
        """Case-insensitive exact comparison of image paths.

        Paths are not normalised: separators, relative forms and symlinks
        are compared as spelled.
        """
        if not self.image_path or not other.image_path:
            return False
        return self.image_path.casefold() == other.image_path.casefold()


class ReapStatus(Enum):
    """Outcome of a reap pass."""

    COMPLETED = "completed"
    SELF_IDENTITY_FAILED = "self_identity_failed"
    ENUMERATION_FAILED = "enumeration_failed"


@dataclass(slots=True)
class ReapReport:
    """Result of a single reap pass."""

    status: ReapStatus
    self_record: ProcessRecord | None = None
    snapshot_size: int = 0
    matched: list[ProcessRecord] = field(default_factory=list)
    terminated: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    dry_run: bool = False

    @property
    def count(self) -> int:
        """Number of processes successfully terminated."""
        return len(self.terminated)

    @property
    def aborted(self) -> bool:
        """True when the pass stopped before scanning."""
        return self.status is not ReapStatus.COMPLETED
