"""
RansomShield - burst-activity ransomware early warning.

Watches a directory tree, recognizes bursts of file modifications or
deletions and responds by isolating the host from the network and
shutting it down.
"""

from .events import CommandResult, DetectionStatistics, EventKind, FileEvent
from .exceptions import InvalidMonitorPath, RansomShieldError, UnsupportedPlatform
from .process_runner import DryRunRunner, ProcessRunner
from .detection_engine import DetectionEngine, SlidingWindow
from .file_monitor import FilesystemMonitor
from .network import NetworkIsolator
from .emergency_response import EmergencyResponseOrchestrator
from .callbacks import DetectionSink, EmergencySink, FileEventSink, LoggingSink

__version__ = "1.0.0"

__all__ = [
    'CommandResult', 'DetectionStatistics', 'EventKind', 'FileEvent',
    'InvalidMonitorPath', 'RansomShieldError', 'UnsupportedPlatform',
    'DryRunRunner', 'ProcessRunner',
    'DetectionEngine', 'SlidingWindow',
    'FilesystemMonitor',
    'NetworkIsolator',
    'EmergencyResponseOrchestrator',
    'DetectionSink', 'EmergencySink', 'FileEventSink', 'LoggingSink',
]
