import threading

import pytest

from ransomshield.config import SHUTDOWN_MESSAGE
from ransomshield.emergency_response import EmergencyResponseOrchestrator
from ransomshield.events import EventKind
from ransomshield.network import UNIX, WINDOWS


class BlockingIsolator:
    """Isolator that holds the sequence until released."""

    family = UNIX
    system = "Linux"

    def __init__(self, result=True):
        self.result = result
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def isolate(self):
        self.calls += 1
        self.entered.set()
        self.release.wait(10)
        return self.result

    def check(self):
        return True


class TestEmergencyResponse:
    """Tests for the isolate / delay / shutdown sequence."""

    @pytest.fixture
    def delays(self):
        return []

    def _orchestrator(self, sink, runner, delays, system="Linux", **kwargs):
        return EmergencyResponseOrchestrator(
            sink=sink, runner=runner, system=system, sleep=delays.append, **kwargs
        )

    def test_full_sequence_on_linux(self, recording_sink, fake_runner, delays):
        """Test the complete isolate, delay and shutdown sequence on Linux."""
        fake_runner.succeed("which", "nmcli")
        fake_runner.succeed("nmcli", "networking", "off")
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays)

        assert orchestrator.execute() == True
        assert orchestrator.wait(5) == True

        assert recording_sink.calls == [
            ("on_started",),
            ("on_network_disconnected", True),
            ("on_shutdown_initiated",),
            ("on_complete",),
        ]
        assert delays == [1.0]
        assert fake_runner.launched == [("shutdown", "now", SHUTDOWN_MESSAGE)]
        assert orchestrator.is_active() == False

    def test_windows_shutdown_command(self, recording_sink, fake_runner, delays):
        """Test the shutdown command issued on Windows."""
        fake_runner.succeed("ipconfig", "/release")
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays, system="Windows")

        orchestrator.execute()
        orchestrator.wait(5)

        assert fake_runner.launched == [
            ("shutdown", "/s", "/t", "0", "/f", "/c", "Emergency shutdown - Ransomware detected")
        ]

    def test_failed_isolation_still_shuts_down(self, recording_sink, fake_runner, delays):
        """Test that the host is shut down even when isolation fails."""
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays)

        orchestrator.execute()
        orchestrator.wait(5)

        assert recording_sink.named("on_network_disconnected") == [(False,)]
        assert recording_sink.names()[-1] == "on_complete"
        assert len(fake_runner.launched) == 1

    def test_unsupported_platform(self, recording_sink, fake_runner, delays):
        """Test the sequence on an operating system with no containment commands."""
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays, system="Darwin")

        orchestrator.execute()
        orchestrator.wait(5)

        assert recording_sink.calls == [
            ("on_started",),
            ("on_network_disconnected", False),
            ("on_shutdown_initiated",),
            ("on_complete",),
        ]
        assert fake_runner.commands == []
        assert fake_runner.launched == []

    def test_custom_delay(self, recording_sink, fake_runner, delays):
        """Test a configured delay between isolation and shutdown."""
        orchestrator = self._orchestrator(
            recording_sink, fake_runner, delays, post_isolation_delay=0.25
        )
        orchestrator.execute()
        orchestrator.wait(5)
        assert delays == [0.25]

    def test_second_request_ignored_while_running(self, recording_sink, fake_runner, delays):
        """Test that a running sequence ignores further requests."""
        isolator = BlockingIsolator()
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays, isolator=isolator)

        assert orchestrator.execute() == True
        # Active as soon as execute returns
        assert orchestrator.is_active() == True
        assert isolator.entered.wait(5)

        assert orchestrator.execute() == False
        assert orchestrator.handle_alert(EventKind.DELETED, 6, 2) == False

        isolator.release.set()
        assert orchestrator.wait(5) == True

        assert recording_sink.named("on_started") == [()]
        assert isolator.calls == 1
        assert len(fake_runner.launched) == 1

    def test_simultaneous_requests_start_one_sequence(self, recording_sink, fake_runner, delays):
        """Test that concurrent requests start exactly one sequence."""
        isolator = BlockingIsolator()
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays, isolator=isolator)
        barrier = threading.Barrier(8)
        results = []

        def request():
            barrier.wait()
            results.append(orchestrator.execute())

        threads = [threading.Thread(target=request) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        isolator.release.set()
        orchestrator.wait(5)

        assert sorted(results) == [False] * 7 + [True]
        assert isolator.calls == 1

    def test_error_reported_and_idle_again(self, recording_sink, fake_runner, delays):
        """Test error reporting and that a new sequence can start afterwards."""
        fake_runner.launch_error = PermissionError("shutdown not permitted")
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays)

        orchestrator.execute()
        assert orchestrator.wait(5) == True

        errors = recording_sink.named("on_error")
        assert len(errors) == 1
        assert isinstance(errors[0][0], PermissionError)
        assert recording_sink.named("on_complete") == []

        # A new sequence may start after a failed one
        fake_runner.launch_error = None
        assert orchestrator.execute() == True
        orchestrator.wait(5)
        assert recording_sink.named("on_complete") == [()]

    def test_handle_alert_starts_sequence(self, recording_sink, fake_runner, delays):
        """Test that a detection alert starts the sequence."""
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays)

        assert orchestrator.handle_alert(EventKind.MODIFIED, 10, 2) == True
        orchestrator.wait(5)
        assert recording_sink.named("on_started") == [()]

    def test_check_capability(self, recording_sink, fake_runner, delays):
        """Test the capability check without side effects."""
        fake_runner.succeed("which", "ifconfig")
        orchestrator = self._orchestrator(recording_sink, fake_runner, delays)

        assert orchestrator.check_capability() == True
        assert fake_runner.launched == []
        assert recording_sink.calls == []

    def test_windows_family_detected(self, fake_runner, delays):
        """Test platform detection for Windows version strings."""
        orchestrator = EmergencyResponseOrchestrator(runner=fake_runner, system="Windows 10")
        assert orchestrator.isolator.family == WINDOWS
