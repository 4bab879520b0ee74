import os
import shutil
import tempfile
import threading
import time

import pytest

from ransomshield.events import CommandResult
from ransomshield.process_runner import ProcessRunner


@pytest.fixture
def temp_dir():
    """Provide a clean temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield temp_path
    if os.path.exists(temp_path):
        shutil.rmtree(temp_path, ignore_errors=True)


class RecordingSink:
    """Implements every callback interface and records each call in order."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, name, *args):
        with self._lock:
            self.calls.append((name,) + args)

    def named(self, name):
        """Argument tuples of every recorded call to ``name``."""
        with self._lock:
            return [call[1:] for call in self.calls if call[0] == name]

    def names(self):
        with self._lock:
            return [call[0] for call in self.calls]

    def wait_for(self, name, count=1, timeout=5.0):
        """Poll until ``name`` was called at least ``count`` times."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            if len(self.named(name)) >= count:
                return True
            time.sleep(0.05)
        return len(self.named(name)) >= count

    # FileEventSink
    def on_event(self, kind, path):
        self._record("on_event", kind, path)

    def on_monitor_started(self, path):
        self._record("on_monitor_started", path)

    def on_monitor_stopped(self):
        self._record("on_monitor_stopped")

    def on_monitor_error(self, error):
        self._record("on_monitor_error", error)

    # DetectionSink
    def on_alert(self, kind, count, window_seconds):
        self._record("on_alert", kind, count, window_seconds)

    def on_statistics(self, total_modifications, total_deletions, alerts):
        self._record("on_statistics", total_modifications, total_deletions, alerts)

    # EmergencySink
    def on_started(self):
        self._record("on_started")

    def on_network_disconnected(self, success):
        self._record("on_network_disconnected", success)

    def on_shutdown_initiated(self):
        self._record("on_shutdown_initiated")

    def on_complete(self):
        self._record("on_complete")

    def on_error(self, error):
        self._record("on_error", error)


class FakeRunner(ProcessRunner):
    """
    Scripted stand-in for ProcessRunner.

    Responses are registered per command prefix; the longest matching
    prefix wins.  Commands with no registered response exit with code 1.
    """

    def __init__(self):
        self.responses = {}
        self.commands = []
        self.timeouts = []
        self.launched = []
        self.launch_error = None

    def succeed(self, *command, stdout=""):
        self.responses[command] = CommandResult(finished=True, exit_code=0, stdout=stdout)

    def fail(self, *command, exit_code=1):
        self.responses[command] = CommandResult(finished=True, exit_code=exit_code)

    def time_out(self, *command):
        self.responses[command] = CommandResult(finished=False, exit_code=-1)

    def refuse(self, *command):
        self.responses[command] = FileNotFoundError(2, "No such file or directory", command[0])

    def run(self, timeout, *command):
        self.commands.append(command)
        self.timeouts.append((command, timeout))
        for length in range(len(command), 0, -1):
            response = self.responses.get(command[:length])
            if response is None:
                continue
            if isinstance(response, Exception):
                raise response
            return response
        return CommandResult(finished=True, exit_code=1)

    def launch(self, *command):
        if self.launch_error is not None:
            raise self.launch_error
        self.launched.append(command)
        return 4242

    def timeout_for(self, *command):
        for recorded, timeout in self.timeouts:
            if recorded == command:
                return timeout
        return None


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def fake_runner():
    return FakeRunner()


class FakeClock:
    """Manually advanced time source for the detection engine."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
