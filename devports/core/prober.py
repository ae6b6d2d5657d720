"""Port prober: decide whether a TCP port can be bound right now.

A probe is a single bind attempt on the wildcard address. Whatever the OS says
at that instant is the answer; there are no retries, and the probe's own
listener is closed before returning so it never holds the port afterwards.
"""

import errno
import logging
import platform
import socket

from devports.exceptions import InvalidPortError, ProbeAmbiguousError
from devports.models import MAX_PORT, MIN_PORT, PortState, PortStatus

logger = logging.getLogger(__name__)

# Winsock codes are reported through OSError.errno on Windows
_WSAEACCES = 10013
_WSAEAFNOSUPPORT = 10047
_WSAEADDRINUSE = 10048
_WSAEADDRNOTAVAIL = 10049

_ADDR_IN_USE = {errno.EADDRINUSE, _WSAEADDRINUSE}
_FAMILY_UNAVAILABLE = {
    errno.EADDRNOTAVAIL,
    errno.EAFNOSUPPORT,
    _WSAEAFNOSUPPORT,
    _WSAEADDRNOTAVAIL,
}
_PERMISSION_DENIED = {errno.EACCES, errno.EPERM, _WSAEACCES}


def validate_port(value: object) -> int:
    """Return *value* if it is an int in 1-65535, else raise InvalidPortError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPortError(value)
    if not MIN_PORT <= value <= MAX_PORT:
        raise InvalidPortError(value)
    return value


def parse_port(text: str) -> int:
    """Parse a port number typed by a user."""
    try:
        value = int(str(text).strip())
    except ValueError:
        raise InvalidPortError(text) from None
    return validate_port(value)


def _bind_listener(family: socket.AddressFamily, port: int) -> bool | None:
    """Bind and listen on the wildcard address of *family*.

    Returns True when the bind succeeded, False when the address is in use and
    None when this address family is not available on the host. Any other
    failure raises ProbeAmbiguousError.
    """
    host = "::" if family == socket.AF_INET6 else ""
    try:
        sock = socket.socket(family, socket.SOCK_STREAM)
    except OSError:
        if family == socket.AF_INET6:
            return None
        raise
    with sock:
        try:
            if platform.system() != "Windows":
                # TIME_WAIT leftovers must not count as occupied. On Windows this
                # option would let us bind over a live listener.
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if family == socket.AF_INET6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
            sock.bind((host, port))
            sock.listen(1)
        except OSError as e:
            if e.errno in _ADDR_IN_USE:
                return False
            if family == socket.AF_INET6 and e.errno in _FAMILY_UNAVAILABLE:
                return None
            raise ProbeAmbiguousError(port, e) from e
    return True


def probe(port: int) -> PortStatus:
    """Probe *port* once and return a fresh PortStatus.

    FREE      bind succeeded (the listener is already closed again)
    OCCUPIED  address in use; the occupant is not resolved here
    UNKNOWN   any other bind failure, e.g. permission denied below 1024
    """
    port = validate_port(port)

    families = [socket.AF_INET]
    if socket.has_ipv6:
        families.append(socket.AF_INET6)

    try:
        for family in families:
            if _bind_listener(family, port) is False:
                logger.debug("Port %d is in use (%s)", port, family.name)
                return PortStatus(port=port, state=PortState.OCCUPIED)
    except ProbeAmbiguousError as e:
        if e.cause.errno in _PERMISSION_DENIED:
            logger.debug("Port %d: permission denied while probing", port)
        else:
            logger.debug("Port %d: probe failed: %s", port, e)
        return PortStatus(port=port, state=PortState.UNKNOWN, error=str(e))
    except OSError as e:
        logger.debug("Port %d: could not create socket: %s", port, e)
        return PortStatus(port=port, state=PortState.UNKNOWN, error=str(e))

    return PortStatus(port=port, state=PortState.FREE)


def is_port_available(port: int) -> bool:
    """Shorthand for ``probe(port).state == FREE``."""
    return probe(port).is_free
