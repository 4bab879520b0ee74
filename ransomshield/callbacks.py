"""
Callback contracts between the core components and whatever presents them.

Each component consumes exactly one of these interfaces.  A presentation
layer may implement all three on one object, or hand each component a
different object; nothing here requires them to be related.
"""

from __future__ import annotations

import logging
from typing import Protocol, Union

from ransomshield.events import EventKind

logger = logging.getLogger("RansomShield.Events")


class FileEventSink(Protocol):
    """Receives raw file activity and monitor lifecycle notifications."""

    def on_event(self, kind: EventKind, path: str) -> None: ...

    def on_monitor_started(self, path: str) -> None: ...

    def on_monitor_stopped(self) -> None: ...

    def on_monitor_error(self, error: Exception) -> None: ...


class DetectionSink(Protocol):
    """Receives burst alerts and per-event statistics snapshots."""

    def on_alert(self, kind: EventKind, count: int, window_seconds: Union[int, float]) -> None: ...

    def on_statistics(self, total_modifications: int, total_deletions: int, alerts: int) -> None: ...


class EmergencySink(Protocol):
    """Receives progress of a containment sequence."""

    def on_started(self) -> None: ...

    def on_network_disconnected(self, success: bool) -> None: ...

    def on_shutdown_initiated(self) -> None: ...

    def on_complete(self) -> None: ...

    def on_error(self, error: Exception) -> None: ...


class LoggingSink:
    """
    Implements every callback contract by writing to the log.

    Used when a component is created without a sink, and by the command
    line front end as its whole presentation layer.
    """

    # -------------------- File events --------------------

    def on_event(self, kind, path):
        logger.debug(f"File {kind.value}: {path}")

    def on_monitor_started(self, path):
        logger.info(f"Started monitoring {path}")

    def on_monitor_stopped(self):
        logger.info("Stopped monitoring")

    def on_monitor_error(self, error):
        logger.error(f"ERROR: {error}")

    # -------------------- Detection --------------------

    def on_alert(self, kind, count, window_seconds):
        logger.critical(f"Ransomware detected: {count} files {kind.value} in {window_seconds}s")

    def on_statistics(self, total_modifications, total_deletions, alerts):
        logger.debug(
            f"Modified: {total_modifications} | Deleted: {total_deletions} | Alerts: {alerts}"
        )

    # -------------------- Emergency response --------------------

    def on_started(self):
        logger.critical("Emergency started!")

    def on_network_disconnected(self, success):
        if success:
            logger.warning("Network disconnected")
        else:
            logger.error("Failed to disconnect network")

    def on_shutdown_initiated(self):
        logger.critical("System shutdown initiated")

    def on_complete(self):
        logger.info("Emergency complete")

    def on_error(self, error):
        logger.error(f"Emergency error: {error}")
