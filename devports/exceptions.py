"""Exceptions for devports."""


class DevPortsError(Exception):
    """Base exception for devports operations."""

    pass


class InvalidPortError(DevPortsError, ValueError):
    """Raised when a port is not an integer in 1-65535."""

    def __init__(self, value: object):
        super().__init__(f"Invalid port {value!r}: expected an integer between 1 and 65535")
        self.value = value


class ProbeAmbiguousError(DevPortsError):
    """Bind failed for a reason other than "address in use"."""

    def __init__(self, port: int, cause: OSError):
        super().__init__(f"Port {port}: {cause.strerror or cause}")
        self.port = port
        self.cause = cause


class ResolutionUnavailableError(DevPortsError):
    """The OS utility for occupant lookup is missing, failed, or gave unparseable output."""

    pass


class TerminationFailedError(DevPortsError):
    """Signal delivery to an occupant failed (no permission, stale pid)."""

    def __init__(self, pid: int, reason: str):
        super().__init__(f"Could not terminate PID {pid}: {reason}")
        self.pid = pid
        self.reason = reason


class ServiceError(DevPortsError):
    """Base exception for service manager operations."""

    pass


class UnknownServiceError(ServiceError):
    """Raised when a service name is not in the catalog."""

    def __init__(self, name: str):
        super().__init__(f"Unknown service: {name}")
        self.name = name


class ServiceAlreadyRunningError(ServiceError):
    """Raised when starting a service that is already in the process table."""

    def __init__(self, name: str, pid: int):
        super().__init__(f"Service '{name}' is already running (PID {pid})")
        self.name = name
        self.pid = pid
