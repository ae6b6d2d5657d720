"""Reclamation controller: check, identify, optionally kill, re-check.

Ports are handled one at a time in ascending order. Every OS failure along
the way (unidentifiable occupant, failed kill) becomes part of the returned
report instead of an exception, so a scan always covers every port it was
given. The only error that reaches the caller is InvalidPortError, raised
before any port is touched.
"""

import logging
import os
import time
from collections.abc import Callable, Iterable

from devports.config import settings
from devports.core.prober import probe, validate_port
from devports.core.resolver import OccupantResolver
from devports.core.terminator import Terminator
from devports.exceptions import TerminationFailedError
from devports.models import Occupant, PortRange, PortResult, PortStatus, TerminationOutcome

logger = logging.getLogger(__name__)


class ReclamationController:
    """Runs the probe / resolve / terminate / verify cycle."""

    def __init__(
        self,
        resolver: OccupantResolver | None = None,
        terminator: Terminator | None = None,
        prober: Callable[[int], PortStatus] = probe,
        settle_seconds: float | None = None,
        protected_pids: Iterable[int] | None = None,
    ):
        self.resolver = resolver or OccupantResolver()
        self.terminator = terminator or Terminator()
        self.prober = prober
        self.settle_seconds = (
            settings.kill_settle_seconds if settle_seconds is None else settle_seconds
        )
        # Never kill ourselves
        self.protected_pids = set(protected_pids or ()) | {os.getpid()}

    def reclaim(self, target: int | PortRange, kill: bool = False) -> list[PortResult]:
        """Reclaim a single port or an inclusive PortRange."""
        if isinstance(target, PortRange):
            ports = list(target)
        else:
            ports = [validate_port(target)]
        return self._reclaim_all(ports, kill)

    def reclaim_ports(
        self,
        ports: Iterable[int],
        kill: bool = False,
        protected_pids: Iterable[int] = (),
    ) -> list[PortResult]:
        """Reclaim an arbitrary list of ports, reported in the order given.

        *protected_pids* are spared for this call only, on top of the
        controller's own protected set.
        """
        ports = [validate_port(port) for port in ports]
        return self._reclaim_all(ports, kill, self.protected_pids | set(protected_pids))

    def _reclaim_all(
        self, ports: list[int], kill: bool, protected: set[int] | None = None
    ) -> list[PortResult]:
        if protected is None:
            protected = self.protected_pids
        return [self._reclaim_one(port, kill, protected) for port in ports]

    def _reclaim_one(self, port: int, kill: bool, protected: set[int]) -> PortResult:
        status = self.prober(port)
        if not status.is_occupied:
            # FREE needs nothing; UNKNOWN gives us nothing to target
            return status

        occupant = self.resolver.resolve(port)
        status = status.with_occupant(occupant)
        if not kill:
            return status
        if occupant is None:
            logger.warning("Port %d is in use but its process could not be identified", port)
            return status
        if occupant.pid in protected:
            logger.warning(
                "Port %d is held by protected PID %d (%s); not terminating",
                port, occupant.pid, occupant.process_name,
            )
            return status

        return self._terminate(port, occupant)

    def _terminate(self, port: int, occupant: Occupant) -> TerminationOutcome:
        error = None
        try:
            self.terminator.terminate(occupant.pid)
        except TerminationFailedError as e:
            logger.warning("Port %d: %s", port, e)
            error = str(e)

        if error is None and self.settle_seconds > 0:
            time.sleep(self.settle_seconds)

        verification = self.prober(port)
        if verification.is_occupied:
            # Possibly a different process that rebound the port
            verification = verification.with_occupant(self.resolver.resolve(port))

        succeeded = error is None and verification.is_free
        if error is None and not succeeded:
            logger.warning("Port %d still %s after terminating PID %d", port, verification.state.value, occupant.pid)
        elif succeeded:
            logger.info("Port %d released by PID %d (%s)", port, occupant.pid, occupant.process_name)

        return TerminationOutcome(
            port=port,
            pid=occupant.pid,
            occupant=occupant,
            requested_signal=self.terminator.signal_name,
            succeeded=succeeded,
            verification=verification,
            error=error,
        )
