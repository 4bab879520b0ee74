"""
Exception types raised by RansomShield.
"""


class RansomShieldError(Exception):
    """Base class for all RansomShield errors."""


class InvalidMonitorPath(RansomShieldError, ValueError):
    """The monitor root does not exist or is not a directory."""


class UnsupportedPlatform(RansomShieldError, OSError):
    """A containment action was requested on an operating system we cannot drive."""
