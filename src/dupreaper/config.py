"""Configuration for dupreaper.

Values are resolved defaults -> environment -> command line, each layer
overriding the previous one.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

# Fixed EnumProcesses buffer size of the historical C helper.
LEGACY_MAX_PROCESS_IDS = 1024

BACKENDS = ("auto", "psutil", "win32")

ENV_PREFIX = "DUPREAPER_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(slots=True, frozen=True)
class ReaperConfig:
    """Settings for a reap pass and the watch screen."""

    max_process_ids: int | None = None  # None: grow on demand
    backend: str = "auto"  # win32 on Windows, psutil elsewhere
    poll_rate: float = 2.0
    dry_run: bool = False

    def __post_init__(self) -> None:
        if self.max_process_ids is not None and self.max_process_ids <= 0:
            raise ValueError(f"max_process_ids must be positive, got {self.max_process_ids}")
        if self.backend not in BACKENDS:
            raise ValueError(f"unknown backend {self.backend!r}, expected one of {BACKENDS}")
        if self.poll_rate <= 0:
            raise ValueError(f"poll_rate must be positive, got {self.poll_rate}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ReaperConfig":
        """
        Build a config from DUPREAPER_* environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        raw = env.get(f"{ENV_PREFIX}MAX_PROCESS_IDS")
        if raw is not None and raw.strip():
            values["max_process_ids"] = _parse_int("MAX_PROCESS_IDS", raw)

        raw = env.get(f"{ENV_PREFIX}BACKEND")
        if raw is not None and raw.strip():
            values["backend"] = raw.strip().lower()

        raw = env.get(f"{ENV_PREFIX}POLL_RATE")
        if raw is not None and raw.strip():
            try:
                values["poll_rate"] = float(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}POLL_RATE must be a number, got {raw!r}") from None

        raw = env.get(f"{ENV_PREFIX}DRY_RUN")
        if raw is not None:
            values["dry_run"] = _parse_bool("DRY_RUN", raw)

        return cls(**values)

    def merged(self, overrides: Mapping[str, Any]) -> "ReaperConfig":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")
