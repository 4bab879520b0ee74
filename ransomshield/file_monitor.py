"""
File system monitoring for RansomShield.

This module watches one directory tree with watchdog, normalizes raw
notifications into FileEvent records and routes them to the detection
engine: modifications and deletions are counted, creations are only
reported to the event sink.

Directories are registered once, when monitoring starts.  Directories
created afterwards are not watched unless the monitor is created with
``follow_new_directories=True``.
"""

import os
import time
import threading
import logging
from typing import List, Optional, Set

from watchdog.events import (
    EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from ransomshield.callbacks import LoggingSink
from ransomshield.events import EventKind, FileEvent
from ransomshield.exceptions import InvalidMonitorPath

logger = logging.getLogger("RansomShield.FileMonitor")

# Seconds to wait for the observer thread when stopping
STOP_JOIN_TIMEOUT = 5.0

_EVENT_KINDS = {
    EVENT_TYPE_CREATED: EventKind.CREATED,
    EVENT_TYPE_MODIFIED: EventKind.MODIFIED,
    EVENT_TYPE_DELETED: EventKind.DELETED,
}


def _raise(error: OSError) -> None:
    raise error


class FileMonitorHandler(FileSystemEventHandler):
    """
    Turns watchdog events into FileEvents and routes them.

    Runs on the observer's single dispatch thread, so events are handled
    one at a time in the order the OS delivered them.
    """

    def __init__(self, monitor: "FilesystemMonitor", root: str, watched_dirs: List[str],
                 observer: Optional[Observer] = None):
        super().__init__()
        self.monitor = monitor
        self.root = root
        self.watched_dirs = set(watched_dirs)
        # The session this handler belongs to; None means "whatever is current"
        self.observer = observer
        self._gone_dirs: Set[str] = set()

    def on_any_event(self, event) -> None:
        """Entry point for every raw notification from the observer."""
        if not self.monitor._is_current(self.observer):
            return

        try:
            if event.event_type == EVENT_TYPE_MOVED:
                # A rename is a deletion of the old name and a creation of the new one
                self._handle(EventKind.DELETED, event.src_path, event.is_directory)
                self._handle(EventKind.CREATED, event.dest_path, event.is_directory)
                return

            kind = _EVENT_KINDS.get(event.event_type)
            if kind is None:
                return
            self._handle(kind, event.src_path, event.is_directory)

        except Exception as e:
            logger.error(f"Exception in event handler: {e}", exc_info=True)
            self.monitor._fail(e, self.observer)

    def _handle(self, kind: EventKind, raw_path, is_directory: bool) -> None:
        # Overflow notifications carry no path
        if not raw_path:
            return
        # Directory metadata changes are not entry changes
        if is_directory and kind is EventKind.MODIFIED:
            return

        path = os.path.abspath(os.fsdecode(raw_path))

        if is_directory and kind is EventKind.DELETED:
            if path == self.root:
                logger.warning(f"Monitored directory was removed: {path}")
                self.monitor._watch_invalidated(self.observer)
                return
            # A watched subdirectory reports its own removal as well as its parent
            if path in self._gone_dirs:
                self._gone_dirs.discard(path)
                return
            if path in self.watched_dirs:
                self._gone_dirs.add(path)
        elif is_directory and kind is EventKind.CREATED:
            self._gone_dirs.discard(path)

        event = FileEvent(path=path, kind=kind, timestamp=time.time())
        logger.debug(f"File event: {event.kind.value} - {event.path}")

        self.monitor.sink.on_event(event.kind, event.path)

        if event.kind is EventKind.MODIFIED:
            self.monitor.detection_engine.record_modification(event.path)
        elif event.kind is EventKind.DELETED:
            self.monitor.detection_engine.record_deletion(event.path)


class FilesystemMonitor:
    """
    Watches a directory tree and feeds its activity to a DetectionEngine.

    One watchdog observer per session provides the single background
    observation thread.  ``start`` may be called again after ``stop`` or
    after the session ended on its own.
    """

    def __init__(self, detection_engine, sink=None, follow_new_directories: bool = False):
        """
        Initialize the monitor.

        Args:
            detection_engine: Receives record_modification / record_deletion calls
            sink: FileEventSink for raw events and lifecycle notifications
            follow_new_directories: Also watch directories created after start
        """
        self.detection_engine = detection_engine
        self.sink = sink if sink is not None else LoggingSink()
        self.follow_new_directories = follow_new_directories

        self._lock = threading.RLock()
        self._observer: Optional[Observer] = None
        self._root: Optional[str] = None
        self._active = False

    # -------------------- Lifecycle --------------------

    def start(self, root) -> None:
        """
        Start monitoring ``root`` and every directory below it.

        Args:
            root: Directory to watch

        Raises:
            InvalidMonitorPath: If root does not exist or is not a directory
            OSError: If a directory could not be registered for notifications
        """
        root_path = os.path.abspath(os.fspath(root))
        if not os.path.isdir(root_path):
            raise InvalidMonitorPath(f"Path must be an existing directory: {root}")

        # Outside the lock: the old dispatch thread may need it to finish
        self.stop()

        with self._lock:
            observer = Observer()
            observer.daemon = True
            observer.name = "FileMonitor-Thread"

            try:
                watched_dirs = self._register_tree(root_path)
                handler = FileMonitorHandler(self, root_path, watched_dirs, observer)
                for directory in watched_dirs:
                    observer.schedule(handler, directory, recursive=self.follow_new_directories)
                # Mark active first so events queued during start are not dropped
                self._observer = observer
                self._root = root_path
                self._active = True
                observer.start()
            except Exception:
                self._observer = None
                self._root = None
                self._active = False
                observer.stop()
                raise

        logger.info(f"Started monitoring: {root_path} ({len(watched_dirs)} directories)")
        self.sink.on_monitor_started(root_path)

    def stop(self) -> None:
        """Stop monitoring and release every watch.  Safe to call at any time."""
        self._stop_session(None)

    def _stop_session(self, expected: Optional[Observer]) -> None:
        """Stop the running session, but only if it is ``expected`` (any session for None)."""
        with self._lock:
            observer = self._observer
            if observer is None:
                return
            if expected is not None and observer is not expected:
                logger.debug("Ignoring stop request from a finished session")
                return
            self._observer = None
            self._active = False

        observer.stop()
        if threading.current_thread() is not observer:
            observer.join(timeout=STOP_JOIN_TIMEOUT)

        logger.info("Stopped monitoring")
        self.sink.on_monitor_stopped()

    # -------------------- Queries --------------------

    def is_active(self) -> bool:
        return self._active

    def current_root(self) -> Optional[str]:
        return self._root

    # -------------------- Internals --------------------

    def _register_tree(self, root: str) -> List[str]:
        """
        Collect the directories to schedule, parents before children.

        With ``follow_new_directories`` only the root is scheduled, recursively.
        """
        if self.follow_new_directories:
            return [root]

        directories = []
        for dirpath, _dirnames, _filenames in os.walk(root, topdown=True, onerror=_raise):
            directories.append(os.path.abspath(dirpath))
        logger.debug(f"Registering {len(directories)} directories under {root}")
        return list(dict.fromkeys(directories))

    def _is_current(self, observer: Optional[Observer]) -> bool:
        """True while ``observer``'s session (or any session, for None) is running."""
        with self._lock:
            if not self._active:
                return False
            return observer is None or observer is self._observer

    def _watch_invalidated(self, observer: Optional[Observer] = None) -> None:
        """The watched root disappeared; end the session cleanly."""
        self._stop_session(observer)

    def _fail(self, error: Exception, observer: Optional[Observer] = None) -> None:
        """Report a failure of the observation loop and end the session."""
        if not self._is_current(observer):
            logger.debug(f"Ignoring failure from a finished session: {error}")
            return
        try:
            self.sink.on_monitor_error(error)
        finally:
            self._stop_session(observer)
