"""
External command execution for RansomShield.

Every OS action the agent takes (capability checks, interface listing,
network isolation, shutdown) goes through ``ProcessRunner`` so that
timeouts, output capture and forced termination behave the same way
everywhere.
"""

import logging
import platform
import subprocess
import threading
from typing import List, Optional

import psutil

from ransomshield.events import CommandResult

logger = logging.getLogger("RansomShield.ProcessRunner")

# How long to wait for the output drain threads once the process is gone
READER_JOIN_TIMEOUT = 2.0


class ProcessRunner:
    """
    Runs external commands with a hard timeout.

    Output of both streams is drained on two helper threads while the
    caller waits for the process, so a chatty command can never block on a
    full pipe.
    """

    def run(self, timeout: float, *command: str) -> CommandResult:
        """
        Run a command and wait for it, at most ``timeout`` seconds.

        A non-zero exit code is a normal result.  When the timeout expires
        the process and all of its children are killed and the result is
        marked as not finished with exit code -1.

        Args:
            timeout: Seconds to wait for the command to exit
            *command: Program followed by its arguments

        Returns:
            CommandResult: Completion flag, exit code and captured output

        Raises:
            OSError: If the command could not be started at all
        """
        logger.debug(f"Running (timeout={timeout}s): {' '.join(command)}")

        process = subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )

        stdout_chunks: List[str] = []
        stderr_chunks: List[str] = []
        readers = [
            self._start_reader(process.stdout, stdout_chunks, f"{command[0]}-stdout"),
            self._start_reader(process.stderr, stderr_chunks, f"{command[0]}-stderr"),
        ]

        try:
            exit_code = process.wait(timeout=timeout)
            finished = True
        except subprocess.TimeoutExpired:
            logger.warning(f"Command timed out after {timeout}s, killing it: {' '.join(command)}")
            self._kill_tree(process)
            finished = False
            exit_code = -1

        for reader in readers:
            reader.join(timeout=READER_JOIN_TIMEOUT)

        result = CommandResult(
            finished=finished,
            exit_code=exit_code,
            stdout="".join(stdout_chunks),
            stderr="".join(stderr_chunks),
            pid=process.pid,
        )
        logger.debug(f"Command {command[0]} finished={result.finished} exit={result.exit_code}")
        return result

    def launch(self, *command: str) -> int:
        """
        Start a command without waiting for it.

        Used for actions that may take this process down with them, such
        as a system shutdown.  Output is discarded.

        Returns:
            int: PID of the started process
        """
        logger.info(f"Launching: {' '.join(command)}")
        process = subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        return process.pid

    def which(self, name: str, timeout: float, system: Optional[str] = None) -> bool:
        """
        Check whether ``name`` resolves to an executable.

        Uses ``where`` on Windows and ``which`` everywhere else.  A lookup
        tool that is itself missing counts as "not found".
        """
        system = system if system is not None else platform.system()
        lookup = "where" if "windows" in system.lower() else "which"
        try:
            return self.run(timeout, lookup, name).succeeded
        except OSError as e:
            logger.debug(f"Could not run {lookup}: {e}")
            return False

    # -------------------- Helpers --------------------

    @staticmethod
    def _start_reader(stream, sink: List[str], name: str) -> threading.Thread:
        """Drain ``stream`` into ``sink`` on a daemon thread."""
        def drain():
            try:
                for chunk in iter(stream.readline, ""):
                    sink.append(chunk)
            except (OSError, ValueError) as e:
                logger.debug(f"Output reader {name} stopped: {e}")
            finally:
                stream.close()

        thread = threading.Thread(target=drain, daemon=True)
        thread.name = name
        thread.start()
        return thread

    @staticmethod
    def _kill_tree(process: subprocess.Popen) -> None:
        """Forcibly terminate a process and everything it spawned."""
        try:
            children = psutil.Process(process.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []

        for child in children:
            try:
                child.kill()
            except psutil.NoSuchProcess:
                pass

        process.kill()
        process.wait()
        psutil.wait_procs(children, timeout=READER_JOIN_TIMEOUT)


class DryRunRunner(ProcessRunner):
    """
    A runner that only logs the commands it is given.

    Every command "succeeds" with empty output, which lets the whole
    containment sequence be rehearsed without touching the network or
    powering anything off.
    """

    def __init__(self):
        self.commands: List[tuple] = []

    def run(self, timeout: float, *command: str) -> CommandResult:
        logger.warning(f"[dry-run] would run (timeout={timeout}s): {' '.join(command)}")
        self.commands.append(command)
        return CommandResult(finished=True, exit_code=0)

    def launch(self, *command: str) -> int:
        logger.warning(f"[dry-run] would launch: {' '.join(command)}")
        self.commands.append(command)
        return 0
