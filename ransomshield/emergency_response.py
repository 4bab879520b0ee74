"""
Emergency response for RansomShield.

When a burst is detected (or an operator asks for a test run) the
orchestrator isolates the host from the network, waits briefly for the
change to take effect and then powers the machine off.  Only one sequence
can run at a time, and once started it runs to the end.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ransomshield.callbacks import LoggingSink
from ransomshield.config import CommandTimeouts, POST_ISOLATION_DELAY, SHUTDOWN_MESSAGE
from ransomshield.exceptions import UnsupportedPlatform
from ransomshield.network import UNIX, WINDOWS, NetworkIsolator
from ransomshield.process_runner import ProcessRunner

logger = logging.getLogger("RansomShield.EmergencyResponse")


class EmergencyResponseOrchestrator:
    """
    Runs the containment sequence: isolate network, delay, shut down.

    The sequence runs on its own thread.  Progress is reported through an
    ``EmergencySink``; failures inside the sequence are reported through
    ``on_error`` and never escape the worker thread.
    """

    def __init__(
        self,
        sink=None,
        runner: Optional[ProcessRunner] = None,
        system: Optional[str] = None,
        post_isolation_delay: float = POST_ISOLATION_DELAY,
        timeouts: Optional[CommandTimeouts] = None,
        isolator: Optional[NetworkIsolator] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            sink: EmergencySink receiving progress callbacks (logs if omitted)
            runner: Command runner for every OS action
            system: Operating system name override (current host if omitted)
            post_isolation_delay: Seconds between isolation and shutdown
            timeouts: Per-command timeouts for the isolation chains
            isolator: Pre-built NetworkIsolator, mainly for tests
            sleep: Delay function used between isolation and shutdown
        """
        self.sink = sink if sink is not None else LoggingSink()
        self.runner = runner if runner is not None else ProcessRunner()
        self.isolator = isolator if isolator is not None else NetworkIsolator(
            runner=self.runner, system=system, timeouts=timeouts
        )
        self.post_isolation_delay = post_isolation_delay
        self._sleep = sleep

        self._lock = threading.Lock()
        self._active = False
        self._worker: Optional[threading.Thread] = None

    # -------------------- Public API --------------------

    def execute(self) -> bool:
        """
        Start the containment sequence in the background.

        Returns:
            bool: True if a new sequence was started, False if one is already running
        """
        with self._lock:
            if self._active:
                logger.warning("Emergency response already in progress")
                return False
            self._active = True

            logger.critical("EXECUTING EMERGENCY RESPONSE - RANSOMWARE DETECTED!")
            worker = threading.Thread(target=self._run_sequence, daemon=True)
            worker.name = "EmergencyResponse"
            self._worker = worker

        try:
            worker.start()
        except RuntimeError:
            with self._lock:
                self._active = False
            raise
        return True

    def handle_alert(self, kind, count, window_seconds) -> bool:
        """Start the sequence in response to a detection alert."""
        logger.critical(f"Alert received ({count} files {kind.value} in {window_seconds}s)")
        return self.execute()

    def is_active(self) -> bool:
        return self._active

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the current sequence (if any) has finished.

        Returns:
            bool: True if no sequence is running anymore
        """
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
        return not self._active

    def check_capability(self) -> bool:
        """Report whether network isolation looks possible on this host."""
        available = self.isolator.check()
        logger.info(f"Network isolation capability: {'available' if available else 'unavailable'}")
        return available

    # -------------------- Sequence --------------------

    def _run_sequence(self) -> None:
        try:
            self.sink.on_started()

            disconnected = self.isolator.isolate()
            if disconnected:
                logger.info("Network disconnected successfully")
            else:
                logger.warning("Failed to disconnect network")
            self.sink.on_network_disconnected(disconnected)

            # Let the network stack settle before powering off
            self._sleep(self.post_isolation_delay)

            self.sink.on_shutdown_initiated()
            self._initiate_shutdown()

            self.sink.on_complete()
        except Exception as e:
            logger.error(f"Error during emergency response: {e}", exc_info=True)
            self._report_error(e)
        finally:
            with self._lock:
                self._active = False

    def _initiate_shutdown(self) -> None:
        """Launch the platform shutdown command without waiting for it."""
        logger.critical("INITIATING EMERGENCY SYSTEM SHUTDOWN")
        try:
            command = self._shutdown_command()
        except UnsupportedPlatform as e:
            logger.critical(str(e))
            return

        self.runner.launch(*command)
        logger.info("System shutdown command executed")

    def _shutdown_command(self):
        family = self.isolator.family
        if family == WINDOWS:
            return ("shutdown", "/s", "/t", "0", "/f", "/c", SHUTDOWN_MESSAGE)
        if family == UNIX:
            return ("shutdown", "now", SHUTDOWN_MESSAGE)
        raise UnsupportedPlatform(f"Unsupported operating system for shutdown: {self.isolator.system}")

    def _report_error(self, error: Exception) -> None:
        try:
            self.sink.on_error(error)
        except Exception:
            logger.exception("Emergency error callback raised")
