"""Forceful termination of a single pid."""

import logging
import os
import platform
import signal

from devports.config import settings
from devports.core.shell import CommandFailed, run_command
from devports.exceptions import TerminationFailedError

logger = logging.getLogger(__name__)


class Terminator:
    """Kill a process outright: SIGKILL on POSIX, ``taskkill /F`` on Windows.

    There is no graceful SIGTERM phase; this mirrors ``kill -9``.
    """

    def __init__(self, platform_name: str | None = None, timeout: float | None = None):
        self.platform_name = platform_name or platform.system()
        self.timeout = timeout if timeout is not None else settings.command_timeout

    @property
    def signal_name(self) -> str:
        if self.platform_name == "Windows":
            return "taskkill /F"
        return "SIGKILL"

    def terminate(self, pid: int) -> None:
        """Terminate *pid*; raise TerminationFailedError if delivery fails."""
        if pid <= 0:
            raise TerminationFailedError(pid, "refusing to signal a non-positive PID")

        logger.info("Terminating PID %d with %s", pid, self.signal_name)
        if self.platform_name == "Windows":
            self._taskkill(pid)
        else:
            self._kill(pid)

    def _kill(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            raise TerminationFailedError(pid, "no such process") from None
        except PermissionError:
            raise TerminationFailedError(pid, "permission denied") from None
        except OSError as e:
            raise TerminationFailedError(pid, str(e)) from e

    def _taskkill(self, pid: int) -> None:
        try:
            run_command(["taskkill", "/F", "/PID", str(pid)], timeout=self.timeout)
        except CommandFailed as e:
            raise TerminationFailedError(pid, e.reason) from e
