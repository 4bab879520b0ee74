"""
Burst detection for RansomShield.

The engine keeps one sliding time window per tracked event kind
(modifications and deletions).  Every recorded event is appended, stale
entries are evicted, and the live count is compared with the kind's
threshold.  Reaching the threshold raises a "ransomware detected" alert.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, List

from ransomshield.callbacks import LoggingSink
from ransomshield.config import (
    DELETION_THRESHOLD, MODIFICATION_THRESHOLD, TIME_WINDOW_SECONDS
)
from ransomshield.events import DetectionStatistics, EventKind, FileEvent

logger = logging.getLogger("RansomShield.DetectionEngine")


class SlidingWindow:
    """Insertion-ordered buffer of recent events for one event kind."""

    def __init__(self, max_age: float):
        self.max_age = max_age
        self._events: Deque[FileEvent] = deque()

    def add(self, event: FileEvent) -> None:
        self._events.append(event)

    def evict(self, now: float) -> None:
        """Drop every event strictly older than ``now - max_age``."""
        cutoff = now - self.max_age
        while self._events and self._events[0].timestamp < cutoff:
            self._events.popleft()

    def clear(self) -> None:
        self._events.clear()

    def paths(self) -> List[str]:
        return [event.path for event in self._events]

    def __len__(self) -> int:
        return len(self._events)


class DetectionEngine:
    """
    Sliding-window rate classifier for file modifications and deletions.

    ``record_modification`` and ``record_deletion`` run as one critical
    section each: append, count, evict, publish statistics and check the
    threshold all happen under the same lock, so callbacks observe
    snapshots in the order events were recorded.

    A modification alert empties the modification window so one burst
    alerts once.  Deletion alerts leave their window untouched, so a
    deletion burst keeps alerting on every further deletion while it lasts.
    """

    def __init__(
        self,
        sink=None,
        modification_threshold: int = MODIFICATION_THRESHOLD,
        deletion_threshold: int = DELETION_THRESHOLD,
        time_window: float = TIME_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the detection engine.

        Args:
            sink: DetectionSink receiving alerts and statistics (logs if omitted)
            modification_threshold: In-window modifications that trigger an alert
            deletion_threshold: In-window deletions that trigger an alert
            time_window: Window length in seconds
            clock: Source of the current time, in epoch seconds
        """
        if modification_threshold < 1 or deletion_threshold < 1:
            raise ValueError("Detection thresholds must be at least 1")
        if time_window <= 0:
            raise ValueError("Detection time window must be positive")

        self.sink = sink if sink is not None else LoggingSink()
        self.modification_threshold = modification_threshold
        self.deletion_threshold = deletion_threshold
        self.time_window = time_window
        self._clock = clock

        self._lock = threading.RLock()
        self._modifications = SlidingWindow(time_window)
        self._deletions = SlidingWindow(time_window)

        # Last published values, readable without taking the lock
        self._modification_count = 0
        self._deletion_count = 0
        self._total_modifications = 0
        self._total_deletions = 0
        self._alerts_triggered = 0

        logger.info(
            f"Detection engine ready (modifications>={modification_threshold}, "
            f"deletions>={deletion_threshold}, window={time_window}s)"
        )

    @property
    def window_seconds(self):
        """The window length as reported to alert callbacks."""
        if float(self.time_window).is_integer():
            return int(self.time_window)
        return self.time_window

    # -------------------- Recording --------------------

    def record_modification(self, path: str) -> None:
        """Record one file modification and check for a modification burst."""
        with self._lock:
            now = self._clock()
            self._modifications.add(FileEvent(str(path), EventKind.MODIFIED, now))
            self._total_modifications += 1

            self._modifications.evict(now)
            count = len(self._modifications)
            self._modification_count = count

            self._publish_statistics()

            if count >= self.modification_threshold:
                try:
                    self._raise_alert(EventKind.MODIFIED, count, self._modifications)
                finally:
                    # The burst is consumed even if the alert callback fails
                    self._modifications.clear()
                    self._modification_count = 0
            else:
                logger.debug(f"File modifications in window: {count}/{self.modification_threshold}")

    def record_deletion(self, path: str) -> None:
        """Record one file deletion and check for a deletion burst."""
        with self._lock:
            now = self._clock()
            self._deletions.add(FileEvent(str(path), EventKind.DELETED, now))
            self._total_deletions += 1

            self._deletions.evict(now)
            count = len(self._deletions)
            self._deletion_count = count

            self._publish_statistics()

            if count >= self.deletion_threshold:
                self._raise_alert(EventKind.DELETED, count, self._deletions)
            else:
                logger.debug(f"File deletions in window: {count}/{self.deletion_threshold}")

    def reset(self) -> None:
        """Clear both windows and all counters, then publish the zeroed statistics."""
        with self._lock:
            self._modifications.clear()
            self._deletions.clear()
            self._modification_count = 0
            self._deletion_count = 0
            self._total_modifications = 0
            self._total_deletions = 0
            self._alerts_triggered = 0
            self._publish_statistics()
        logger.info("Detection statistics reset")

    # -------------------- Queries --------------------

    def current_modification_count(self) -> int:
        return self._modification_count

    def current_deletion_count(self) -> int:
        return self._deletion_count

    @property
    def total_modifications(self) -> int:
        return self._total_modifications

    @property
    def total_deletions(self) -> int:
        return self._total_deletions

    @property
    def alerts_triggered(self) -> int:
        return self._alerts_triggered

    def statistics(self) -> DetectionStatistics:
        return DetectionStatistics(
            total_modifications=self._total_modifications,
            total_deletions=self._total_deletions,
            alerts_triggered=self._alerts_triggered,
        )

    # -------------------- Internals --------------------

    def _publish_statistics(self) -> None:
        self.sink.on_statistics(
            self._total_modifications, self._total_deletions, self._alerts_triggered
        )

    def _raise_alert(self, kind: EventKind, count: int, window: SlidingWindow) -> None:
        self._alerts_triggered += 1
        logger.warning(
            f"RANSOMWARE DETECTED: {count} files {kind.value} in {self.window_seconds} seconds. "
            f"Files: {'; '.join(window.paths())}"
        )
        self.sink.on_alert(kind, count, self.window_seconds)
