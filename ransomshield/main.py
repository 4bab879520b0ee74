"""
Main script to start RansomShield.

This module provides the command-line interface and main entry point:
it wires the file monitor, the detection engine and the emergency
response together and keeps them running until interrupted.
"""

import os
import sys
import argparse
import time
from datetime import datetime

from ransomshield.callbacks import LoggingSink
from ransomshield.config import (
    DELETION_THRESHOLD, MODIFICATION_THRESHOLD, POST_ISOLATION_DELAY,
    TIME_WINDOW_SECONDS, configure_logging, logger
)
from ransomshield.detection_engine import DetectionEngine
from ransomshield.emergency_response import EmergencyResponseOrchestrator
from ransomshield.exceptions import InvalidMonitorPath
from ransomshield.file_monitor import FilesystemMonitor
from ransomshield.process_runner import DryRunRunner, ProcessRunner


class ConsoleSink(LoggingSink):
    """
    Console presentation: logs everything, prints the important parts and
    hands every alert to the emergency response.
    """

    def __init__(self):
        self.orchestrator = None
        self.engine = None

    def on_alert(self, kind, count, window_seconds):
        super().on_alert(kind, count, window_seconds)
        print(f"\n[!] RANSOMWARE DETECTED: {count} files {kind.value} in {window_seconds}s")
        if self.orchestrator is not None:
            self.orchestrator.handle_alert(kind, count, window_seconds)

    def on_statistics(self, total_modifications, total_deletions, alerts):
        super().on_statistics(total_modifications, total_deletions, alerts)
        if self.engine is not None:
            logger.debug(
                f"Current: {self.engine.current_modification_count()}/{self.engine.modification_threshold} "
                f"modifications, {self.engine.current_deletion_count()}/{self.engine.deletion_threshold} deletions"
            )

    def on_started(self):
        super().on_started()
        print("[!] Emergency response started")

    def on_network_disconnected(self, success):
        super().on_network_disconnected(success)
        print("[+] Network disconnected" if success else "[-] Failed to disconnect network")

    def on_shutdown_initiated(self):
        super().on_shutdown_initiated()
        print("[!] System shutdown initiated")

    def on_error(self, error):
        super().on_error(error)
        print(f"[-] Emergency error: {error}")


def setup_arg_parser():
    """
    Set up command line argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog='ransomshield',
        description='RansomShield - burst-activity ransomware early warning'
    )

    parser.add_argument('path', nargs='?',
                        help='Directory tree to monitor')
    parser.add_argument('--modification-threshold', type=int, default=MODIFICATION_THRESHOLD,
                        help='Modifications inside the window that trigger an alert')
    parser.add_argument('--deletion-threshold', type=int, default=DELETION_THRESHOLD,
                        help='Deletions inside the window that trigger an alert')
    parser.add_argument('--window', type=float, default=TIME_WINDOW_SECONDS,
                        help='Detection window in seconds')
    parser.add_argument('--delay', type=float, default=POST_ISOLATION_DELAY,
                        help='Seconds between network isolation and shutdown')
    parser.add_argument('--follow-new-dirs', action='store_true',
                        help='Also watch directories created after monitoring starts')
    parser.add_argument('--dry-run', action='store_true',
                        help='Log containment commands instead of running them')
    parser.add_argument('--check', action='store_true',
                        help='Only check whether network isolation is possible')
    parser.add_argument('--test-emergency', action='store_true',
                        help='Run the emergency response once and exit')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO', help='Set the logging level')
    parser.add_argument('--log-file', type=str,
                        help='Log file path (default: ransomshield_TIMESTAMP.log)')

    return parser


def build_components(args, sink):
    """
    Create the engine, monitor and orchestrator from parsed arguments.

    Returns:
        tuple: (engine, monitor, orchestrator)
    """
    runner = DryRunRunner() if args.dry_run else ProcessRunner()

    engine = DetectionEngine(
        sink=sink,
        modification_threshold=args.modification_threshold,
        deletion_threshold=args.deletion_threshold,
        time_window=args.window,
    )
    monitor = FilesystemMonitor(engine, sink=sink, follow_new_directories=args.follow_new_dirs)
    orchestrator = EmergencyResponseOrchestrator(
        sink=sink, runner=runner, post_isolation_delay=args.delay
    )

    sink.engine = engine
    sink.orchestrator = orchestrator
    return engine, monitor, orchestrator


def display_startup_banner(args, root, log_path):
    """Display a startup banner with the monitor configuration."""
    print(f"""
==================================================
              RansomShield Started
==================================================
 Watching:        {root}
 Modifications:   {args.modification_threshold} in {args.window}s
 Deletions:       {args.deletion_threshold} in {args.window}s
 New directories: {'followed' if args.follow_new_dirs else 'not followed'}
 Response mode:   {'dry run' if args.dry_run else 'LIVE (isolate + shutdown)'}
 Log File:        {os.path.basename(log_path)}
==================================================

Press Ctrl+C to stop monitoring...
""")


def main(argv=None):
    """
    Main function to parse args and run the selected mode.

    Returns:
        int: Process exit code
    """
    parser = setup_arg_parser()
    args = parser.parse_args(argv)

    log_path = args.log_file or f"ransomshield_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    configure_logging(args.log_level, log_path)

    sink = ConsoleSink()
    try:
        _, monitor, orchestrator = build_components(args, sink)
    except ValueError as e:
        parser.error(str(e))

    if args.check:
        available = orchestrator.check_capability()
        print(f"Network isolation: {'available' if available else 'NOT available'}")
        return 0 if available else 1

    if args.test_emergency:
        logger.warning("Manual emergency response test requested")
        orchestrator.execute()
        orchestrator.wait()
        return 0

    if not args.path:
        parser.error("a directory to monitor is required")

    try:
        monitor.start(args.path)
    except InvalidMonitorPath as e:
        logger.error(str(e))
        print(f"Error: {e}")
        return 2
    except OSError as e:
        logger.critical(f"Failed to start monitoring: {e}", exc_info=True)
        print(f"Error: {e}")
        return 1

    display_startup_banner(args, monitor.current_root(), log_path)

    try:
        # Keep the main thread alive while the observer works
        while True:
            time.sleep(1)
            if not monitor.is_active() and not orchestrator.is_active():
                logger.warning("Monitoring ended, exiting")
                return 1
    except KeyboardInterrupt:
        print("\nShutting down RansomShield...")
    finally:
        monitor.stop()
        orchestrator.wait(timeout=5)

    print("Shutdown complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
