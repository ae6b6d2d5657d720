"""Port status and termination records returned by the core."""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict

from devports.exceptions import InvalidPortError

MIN_PORT = 1
MAX_PORT = 65535


class PortState(str, Enum):
    FREE = "free"
    OCCUPIED = "occupied"
    UNKNOWN = "unknown"


class Occupant(BaseModel):
    """The process listening on a port."""

    model_config = ConfigDict(frozen=True)

    pid: int
    process_name: str


class PortStatus(BaseModel):
    """Snapshot of one port at probe time.

    A new instance is produced for every probe; re-probing never mutates an
    earlier snapshot.
    """

    model_config = ConfigDict(frozen=True)

    port: int
    state: PortState
    occupant: Occupant | None = None
    error: str | None = None

    @property
    def is_free(self) -> bool:
        return self.state == PortState.FREE

    @property
    def is_occupied(self) -> bool:
        return self.state == PortState.OCCUPIED

    def with_occupant(self, occupant: Occupant | None) -> "PortStatus":
        """Return a copy carrying *occupant* (only meaningful when OCCUPIED)."""
        return self.model_copy(update={"occupant": occupant})


class TerminationOutcome(BaseModel):
    """Result of terminating a port's occupant and re-probing the port."""

    model_config = ConfigDict(frozen=True)

    port: int
    pid: int
    occupant: Occupant
    requested_signal: str
    succeeded: bool
    verification: PortStatus
    error: str | None = None


@dataclass(frozen=True)
class PortRange:
    """Inclusive range of ports, iterated in ascending order."""

    start: int
    end: int

    def __post_init__(self) -> None:
        for value in (self.start, self.end):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidPortError(value)
            if not MIN_PORT <= value <= MAX_PORT:
                raise InvalidPortError(value)
        if self.start > self.end:
            raise InvalidPortError(f"{self.start}-{self.end}")

    @classmethod
    def parse(cls, text: str) -> "PortRange":
        """Parse ``"START-END"`` (a single number is a one-port range)."""
        start_text, sep, end_text = text.strip().partition("-")
        if not sep:
            end_text = start_text
        try:
            start, end = int(start_text), int(end_text)
        except ValueError:
            raise InvalidPortError(text) from None
        return cls(start=start, end=end)

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.end + 1))

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"

    def __len__(self) -> int:
        return self.end - self.start + 1


PortResult = PortStatus | TerminationOutcome
