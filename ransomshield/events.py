"""
Shared data model for RansomShield.

Defines the event record the monitor emits and the detection engine
consumes, the statistics snapshot the engine publishes, and the result
record returned for every external command.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EventKind(str, Enum):
    """Kinds of file-system change the monitor reports."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileEvent:
    """A single file-system change observed by the monitor.

    Attributes:
        path:      Absolute path of the affected entry.
        kind:      What happened to it.
        timestamp: Unix epoch time the event was observed.
    """

    path: str
    kind: EventKind
    timestamp: float


@dataclass(frozen=True)
class DetectionStatistics:
    """Snapshot of the detection engine's lifetime counters."""

    total_modifications: int = 0
    total_deletions: int = 0
    alerts_triggered: int = 0


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command.

    ``exit_code`` is -1 when the command did not finish before its timeout.
    """

    finished: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    pid: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.finished and self.exit_code == 0
