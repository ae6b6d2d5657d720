"""Occupant resolver: map an occupied port to the process listening on it.

There is no portable OS API for this, so each platform gets a strategy that
shells out to a text-based utility and parses its output:

  LsofStrategy      macOS / Linux   lsof -nP -iTCP:<port> -sTCP:LISTEN
  ProcNetStrategy   Linux           /proc/net/tcp{,6} + /proc/<pid>/fd
  NetstatStrategy   Windows         netstat -ano, then tasklist for the name

Parsing is best-effort. Strategies raise ResolutionUnavailableError when their
utility is missing or fails; the resolver turns that into ``None`` ("occupied
but unidentified"). Nothing is cached: a process may exit or restart between
calls, so every resolve re-queries the OS.
"""

import csv
import logging
import os
import platform
from abc import ABC, abstractmethod
from pathlib import Path

from devports.config import settings
from devports.core.prober import validate_port
from devports.core.shell import CommandFailed, run_command
from devports.exceptions import ResolutionUnavailableError
from devports.models import Occupant

logger = logging.getLogger(__name__)

UNKNOWN_PROCESS_NAME = "Unknown"

# /proc/net/tcp socket state for LISTEN
_TCP_LISTEN = "0A"


class OccupantLookupStrategy(ABC):
    """One platform-specific way of finding a port's listener."""

    name = "abstract"

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    @abstractmethod
    def lookup(self, port: int) -> Occupant | None:
        """Return the listener on *port*, or None if none was found.

        Raises ResolutionUnavailableError when the lookup itself cannot run.
        """

    def _run(self, args: list[str]) -> str:
        try:
            return run_command(args, timeout=self.timeout)
        except CommandFailed as e:
            raise ResolutionUnavailableError(str(e)) from e


class LsofStrategy(OccupantLookupStrategy):
    """POSIX lookup via lsof."""

    name = "lsof"

    def lookup(self, port: int) -> Occupant | None:
        # lsof exits 1 when nothing matches; that surfaces as unavailable
        output = self._run(["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN"])
        return self.parse(output)

    @staticmethod
    def parse(output: str) -> Occupant | None:
        """Pick COMMAND and PID from the first LISTEN row."""
        for line in output.splitlines()[1:]:
            if "LISTEN" not in line:
                continue
            parts = line.split()
            if len(parts) < 2 or not parts[1].isdigit():
                continue
            return Occupant(pid=int(parts[1]), process_name=parts[0])
        return None


class ProcNetStrategy(OccupantLookupStrategy):
    """Linux lookup through procfs, used when lsof is not installed."""

    name = "procfs"

    def __init__(self, timeout: float | None = None, proc_root: Path = Path("/proc")):
        super().__init__(timeout)
        self.proc_root = proc_root

    def lookup(self, port: int) -> Occupant | None:
        inodes = self._listening_inodes(port)
        if not inodes:
            return None
        pid = self._find_pid_for_inodes(inodes)
        if pid is None:
            return None
        return Occupant(pid=pid, process_name=self._process_name(pid))

    def _listening_inodes(self, port: int) -> set[str]:
        tables = [self.proc_root / "net" / "tcp", self.proc_root / "net" / "tcp6"]
        found_any = False
        inodes = set()
        for table in tables:
            try:
                lines = table.read_text().splitlines()
            except OSError:
                continue
            found_any = True
            inodes.update(self.parse_tcp_table(lines, port))
        if not found_any:
            raise ResolutionUnavailableError(f"{self.proc_root}/net/tcp is not readable")
        return inodes

    @staticmethod
    def parse_tcp_table(lines: list[str], port: int) -> set[str]:
        """Return inodes of LISTEN sockets bound to *port* in a /proc/net/tcp dump."""
        inodes = set()
        for line in lines[1:]:  # header
            fields = line.split()
            if len(fields) < 10:
                continue
            _, _, hex_port = fields[1].rpartition(":")
            try:
                local_port = int(hex_port, 16)
            except ValueError:
                continue
            if local_port == port and fields[3] == _TCP_LISTEN and fields[9] != "0":
                inodes.add(fields[9])
        return inodes

    def _find_pid_for_inodes(self, inodes: set[str]) -> int | None:
        targets = {f"socket:[{inode}]" for inode in inodes}
        try:
            entries = sorted(
                (e for e in os.listdir(self.proc_root) if e.isdigit()), key=int
            )
        except OSError as e:
            raise ResolutionUnavailableError(f"cannot list {self.proc_root}: {e}") from e

        for entry in entries:
            fd_dir = self.proc_root / entry / "fd"
            try:
                fds = os.listdir(fd_dir)
            except OSError:
                # other users' processes, or exited since listdir
                continue
            for fd in fds:
                try:
                    link = os.readlink(fd_dir / fd)
                except OSError:
                    continue
                if link in targets:
                    return int(entry)
        return None

    def _process_name(self, pid: int) -> str:
        try:
            return (self.proc_root / str(pid) / "comm").read_text().strip() or UNKNOWN_PROCESS_NAME
        except OSError:
            return UNKNOWN_PROCESS_NAME


class NetstatStrategy(OccupantLookupStrategy):
    """Windows lookup via netstat and tasklist."""

    name = "netstat"

    def lookup(self, port: int) -> Occupant | None:
        pid = self.parse_netstat(self._run(["netstat", "-ano"]), port)
        if pid is None:
            return None
        return Occupant(pid=pid, process_name=self._process_name(pid))

    @staticmethod
    def parse_netstat(output: str, port: int) -> int | None:
        """Return the pid of the first LISTENING row whose local address is on *port*."""
        for line in output.splitlines():
            parts = line.split()
            if len(parts) < 5 or parts[0].upper() != "TCP" or "LISTENING" not in parts:
                continue
            _, _, local_port = parts[1].rpartition(":")
            if local_port == str(port) and parts[-1].isdigit():
                return int(parts[-1])
        return None

    def _process_name(self, pid: int) -> str:
        try:
            output = self._run(["tasklist", "/FI", f"PID eq {pid}", "/FO", "CSV", "/NH"])
        except ResolutionUnavailableError as e:
            logger.debug("tasklist failed for PID %d: %s", pid, e)
            return UNKNOWN_PROCESS_NAME
        return self.parse_tasklist(output, pid)

    @staticmethod
    def parse_tasklist(output: str, pid: int) -> str:
        """Image name from ``tasklist /FO CSV /NH`` output."""
        for row in csv.reader(output.splitlines()):
            if len(row) >= 2 and row[1].strip() == str(pid):
                return row[0].strip() or UNKNOWN_PROCESS_NAME
        return UNKNOWN_PROCESS_NAME


def select_strategies(
    platform_name: str | None = None,
    timeout: float | None = None,
) -> list[OccupantLookupStrategy]:
    """Pick lookup strategies for the running platform, in preference order."""
    platform_name = platform_name or platform.system()
    if platform_name == "Windows":
        return [NetstatStrategy(timeout)]
    if platform_name == "Linux":
        return [LsofStrategy(timeout), ProcNetStrategy(timeout)]
    return [LsofStrategy(timeout)]


class OccupantResolver:
    """Resolve ports to their listening process, independent of platform."""

    def __init__(
        self,
        strategies: list[OccupantLookupStrategy] | None = None,
        platform_name: str | None = None,
        timeout: float | None = None,
    ):
        if timeout is None:
            timeout = settings.command_timeout
        self.platform_name = platform_name or platform.system()
        self.strategies = (
            strategies
            if strategies is not None
            else select_strategies(self.platform_name, timeout)
        )

    def resolve(self, port: int) -> Occupant | None:
        """Return the occupant of *port*, or None if it cannot be identified."""
        port = validate_port(port)
        for strategy in self.strategies:
            try:
                occupant = strategy.lookup(port)
            except ResolutionUnavailableError as e:
                logger.debug("Port %d: %s lookup unavailable: %s", port, strategy.name, e)
                continue
            except Exception:
                logger.exception("Port %d: %s lookup crashed", port, strategy.name)
                continue
            if occupant is not None:
                logger.debug(
                    "Port %d held by %s (PID %d) via %s",
                    port, occupant.process_name, occupant.pid, strategy.name,
                )
            return occupant
        return None
