#!/usr/bin/env python3
"""
Configuration and constants for RansomShield
"""

import logging
from dataclasses import dataclass

#------------------------------------------------------------------------------
# LOGGING CONFIGURATION
#------------------------------------------------------------------------------
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

logger = logging.getLogger("RansomShield")


def configure_logging(level="INFO", log_file=None):
    """
    Attach console (and optionally file) handlers to the package logger.

    Safe to call more than once; existing handlers are replaced.

    Args:
        level: Logging level name or number
        log_file: Optional path of a log file to write as well

    Returns:
        logging.Logger: The configured package logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(level)
    logger.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    return logger

#------------------------------------------------------------------------------
# DETECTION THRESHOLDS AND TIMING
#------------------------------------------------------------------------------
MODIFICATION_THRESHOLD = 10     # Modifications inside the window that count as a burst
DELETION_THRESHOLD = 5          # Deletions inside the window that count as a burst
TIME_WINDOW_SECONDS = 2         # Length of the sliding detection window

#------------------------------------------------------------------------------
# EMERGENCY RESPONSE SETTINGS
#------------------------------------------------------------------------------
POST_ISOLATION_DELAY = 1.0      # Seconds to let the network stack settle before shutdown
SHUTDOWN_MESSAGE = "Emergency shutdown - Ransomware detected"

# Per-command timeouts in seconds
IPCONFIG_RELEASE_TIMEOUT = 10
NETSH_DISABLE_TIMEOUT = 8
NMCLI_TIMEOUT = 10
IP_LINK_TIMEOUT = 5
IFCONFIG_TIMEOUT = 5
LISTING_TIMEOUT = 10            # Interface enumeration (netsh / ip / ifconfig)
CHECK_TIMEOUT = 5               # Capability checks and executable lookups

# Fallback locations for the iproute2 binary when it is not on PATH
IP_FALLBACK_PATHS = ['/usr/sbin/ip', '/sbin/ip']


@dataclass
class CommandTimeouts:
    """Timeouts applied to each external command of the isolation chains."""

    ipconfig_release: float = IPCONFIG_RELEASE_TIMEOUT
    netsh_disable: float = NETSH_DISABLE_TIMEOUT
    nmcli: float = NMCLI_TIMEOUT
    ip_link: float = IP_LINK_TIMEOUT
    ifconfig: float = IFCONFIG_TIMEOUT
    listing: float = LISTING_TIMEOUT
    check: float = CHECK_TIMEOUT
