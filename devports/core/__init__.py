"""Port probing, occupant resolution and reclamation."""

from devports.core.prober import is_port_available, parse_port, probe, validate_port
from devports.core.reclaimer import ReclamationController
from devports.core.resolver import (
    LsofStrategy,
    NetstatStrategy,
    OccupantLookupStrategy,
    OccupantResolver,
    ProcNetStrategy,
    select_strategies,
)
from devports.core.terminator import Terminator

__all__ = [
    "LsofStrategy",
    "NetstatStrategy",
    "OccupantLookupStrategy",
    "OccupantResolver",
    "ProcNetStrategy",
    "ReclamationController",
    "Terminator",
    "is_port_available",
    "parse_port",
    "probe",
    "select_strategies",
    "validate_port",
]
