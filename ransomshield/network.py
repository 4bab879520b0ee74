"""
Network isolation for RansomShield.

Each supported platform gets an ordered chain of mechanisms that are tried
until one of them cuts the host off the network.  Individual command
failures only move the chain on to the next mechanism; the caller sees a
single success flag.

The parsers that turn ``netsh``, ``ip`` and ``ifconfig`` output into
interface names live here as plain functions so they can be tested
against captured output.
"""

import logging
import os
import platform
import re
from typing import Callable, Iterable, List, Optional

from ransomshield.config import CommandTimeouts, IP_FALLBACK_PATHS
from ransomshield.exceptions import UnsupportedPlatform
from ransomshield.process_runner import ProcessRunner

logger = logging.getLogger("RansomShield.Network")

WINDOWS = "windows"
UNIX = "unix"

NETSH_NAME_HEADER = "Interface Name"

_IP_LINK_LINE = re.compile(r"^\s*\d+:\s*([^:\s]+):")
_LOOPBACK_NAME = re.compile(r"lo\d*")


def platform_family(system: Optional[str] = None) -> Optional[str]:
    """
    Classify an operating system name.

    Args:
        system: OS name as reported by ``platform.system()`` (current host if omitted)

    Returns:
        str: ``WINDOWS``, ``UNIX`` or None for anything we cannot drive
    """
    name = (system if system is not None else platform.system()).lower()
    if "windows" in name:
        return WINDOWS
    if "linux" in name or "unix" in name:
        return UNIX
    return None

# -------------------- Output parsers --------------------

def _unique(names: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    return result


def parse_netsh_interfaces(text: str) -> List[str]:
    """
    Extract interface names from ``netsh interface show interface``.

    The name column starts at the offset of the ``Interface Name`` header.
    Everything up to the header and the dashed separator under it is
    skipped, as are loopback entries.
    """
    offset = None
    names = []
    for line in text.splitlines():
        if offset is None:
            index = line.find(NETSH_NAME_HEADER)
            if index >= 0:
                offset = index
            continue

        stripped = line.strip()
        if not stripped or set(stripped) == {"-"}:
            continue
        if len(line) <= offset:
            continue

        name = line[offset:].strip()
        if "loopback" in name.lower():
            continue
        names.append(name)
    return _unique(names)


def parse_ip_link_interfaces(text: str) -> List[str]:
    """
    Extract interface names from ``ip -o link show``.

    Lines look like ``2: eth0@if3: <BROADCAST,...> ...``; the ``@peer``
    suffix is dropped and ``lo`` is skipped.
    """
    names = []
    for line in text.splitlines():
        match = _IP_LINK_LINE.match(line)
        if not match:
            continue
        name = match.group(1).split("@", 1)[0]
        if name == "lo":
            continue
        names.append(name)
    return _unique(names)


def parse_ifconfig_interfaces(text: str) -> List[str]:
    """
    Extract interface names from ``ifconfig -a``.

    A new interface block starts at column 0; its name is the first token,
    cut at the first ``:``.  Indented lines are details of the current
    block.
    """
    names = []
    for line in text.splitlines():
        if not line or line[0].isspace():
            continue
        name = line.split()[0].split(":", 1)[0]
        if _LOOPBACK_NAME.fullmatch(name):
            continue
        names.append(name)
    return _unique(names)


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)

# -------------------- Isolation chains --------------------

class NetworkIsolator:
    """
    Disconnects the host from the network using whatever tools it has.

    Windows: ``ipconfig /release``, then disabling every interface with
    ``netsh``.  Linux/Unix: ``nmcli networking off``, then bringing every
    interface down with ``ip``, then with ``ifconfig``.
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        system: Optional[str] = None,
        timeouts: Optional[CommandTimeouts] = None,
        ip_fallback_paths: Iterable[str] = IP_FALLBACK_PATHS,
        is_executable: Callable[[str], bool] = _is_executable,
    ):
        self.runner = runner if runner is not None else ProcessRunner()
        self.system = system if system is not None else platform.system()
        self.family = platform_family(self.system)
        self.timeouts = timeouts if timeouts is not None else CommandTimeouts()
        self.ip_fallback_paths = list(ip_fallback_paths)
        self._is_executable = is_executable

    def isolate(self) -> bool:
        """
        Cut network connectivity.

        Returns:
            bool: True if one of the mechanisms reported success
        """
        try:
            if self.family == WINDOWS:
                return self._isolate_windows()
            if self.family == UNIX:
                return self._isolate_unix()
            raise UnsupportedPlatform(
                f"Unsupported operating system for network disconnection: {self.system}"
            )
        except UnsupportedPlatform as e:
            logger.warning(str(e))
            return False
        except Exception as e:
            logger.error(f"Failed to disconnect network: {e}", exc_info=True)
            return False

    def check(self) -> bool:
        """
        Check whether isolation looks possible, without changing anything.

        Returns:
            bool: True if at least one isolation mechanism is available
        """
        try:
            if self.family == WINDOWS:
                result = self._capture(self.timeouts.check, "ipconfig", "/?")
                return result is not None and result.succeeded
            if self.family == UNIX:
                return (
                    self.command_exists("nmcli")
                    or self._resolve_ip() is not None
                    or self.command_exists("ifconfig")
                )
            logger.warning(f"No isolation mechanism known for {self.system}")
        except Exception as e:
            logger.warning(f"Failed to test network disconnection capabilities: {e}", exc_info=True)
        return False

    def command_exists(self, name: str) -> bool:
        """Resolve an executable on PATH with ``where`` (Windows) or ``which``."""
        return self.runner.which(name, self.timeouts.check, system=self.system)

    # -------------------- Windows --------------------

    def _isolate_windows(self) -> bool:
        logger.info("Disconnecting Windows network...")
        if self._succeeds(self.timeouts.ipconfig_release, "ipconfig", "/release"):
            logger.info("Windows network disconnected with ipconfig /release")
            return True

        logger.warning("ipconfig /release failed, disabling interfaces with netsh")
        listing = self._capture(self.timeouts.listing, "netsh", "interface", "show", "interface")
        if listing is None or not listing.succeeded:
            logger.warning("Could not list interfaces with netsh")
            return False

        return self._disable_all(
            parse_netsh_interfaces(listing.stdout),
            lambda name: ("netsh", "interface", "set", "interface", f'name="{name}"', "admin=disabled"),
            self.timeouts.netsh_disable,
        )

    # -------------------- Linux / Unix --------------------

    def _isolate_unix(self) -> bool:
        logger.info("Disconnecting Linux network...")
        if self.command_exists("nmcli"):
            if self._succeeds(self.timeouts.nmcli, "nmcli", "networking", "off"):
                logger.info("Network disconnected with nmcli")
                return True
            logger.warning("nmcli networking off failed, bringing interfaces down instead")
        else:
            logger.info("nmcli not available, bringing interfaces down instead")

        ip = self._resolve_ip()
        if ip is not None:
            interfaces = self._list_interfaces(parse_ip_link_interfaces, ip, "-o", "link", "show")
            if interfaces:
                return self._disable_all(
                    interfaces,
                    lambda name: (ip, "link", "set", "dev", name, "down"),
                    self.timeouts.ip_link,
                )
            logger.warning("Could not list interfaces with ip, falling back to ifconfig")
        else:
            logger.info("ip not available, falling back to ifconfig")

        interfaces = self._list_interfaces(parse_ifconfig_interfaces, "ifconfig", "-a")
        return self._disable_all(
            interfaces,
            lambda name: ("ifconfig", name, "down"),
            self.timeouts.ifconfig,
        )

    def _resolve_ip(self) -> Optional[str]:
        """Find an iproute2 binary: on PATH first, then the usual sbin locations."""
        if self.command_exists("ip"):
            return "ip"
        for path in self.ip_fallback_paths:
            if self._is_executable(path):
                return path
        return None

    # -------------------- Helpers --------------------

    def _list_interfaces(self, parser, *command) -> List[str]:
        result = self._capture(self.timeouts.listing, *command)
        if result is None or not result.succeeded:
            return []
        return parser(result.stdout)

    def _disable_all(self, interfaces: List[str], build_command, timeout: float) -> bool:
        """Disable every interface; success needs a non-empty list and no failures."""
        if not interfaces:
            logger.warning("No network interfaces found to disable")
            return False

        all_disabled = True
        for name in interfaces:
            if self._succeeds(timeout, *build_command(name)):
                logger.info(f"Disabled interface {name}")
            else:
                logger.warning(f"Failed to disable interface {name}")
                all_disabled = False
        return all_disabled

    def _capture(self, timeout: float, *command):
        """Run a command, treating a failure to start it as a missing result."""
        try:
            return self.runner.run(timeout, *command)
        except OSError as e:
            logger.debug(f"Could not run {command[0]}: {e}")
            return None

    def _succeeds(self, timeout: float, *command) -> bool:
        result = self._capture(timeout, *command)
        if result is None:
            return False
        if not result.finished:
            logger.warning(f"{' '.join(command)} timed out after {timeout}s")
        elif result.exit_code != 0:
            logger.warning(f"{' '.join(command)} failed with exit code: {result.exit_code}")
        return result.succeeded
