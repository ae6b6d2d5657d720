"""Shared fixtures for devports tests.

Provides platform and subprocess mocks, plus real listening sockets and a
dummy listener process for probing and reclamation tests.
"""

import socket
import subprocess
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Ensure project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from devports.models import Occupant


# ---------------------------------------------------------------------------
# Platform mock fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_macos():
    """Patch platform.system() to return 'Darwin'."""
    with patch("devports.core.prober.platform.system", return_value="Darwin"):
        yield


@pytest.fixture
def mock_linux():
    """Patch platform.system() to return 'Linux'."""
    with patch("devports.core.prober.platform.system", return_value="Linux"):
        yield


@pytest.fixture
def mock_windows():
    """Patch platform.system() to return 'Windows'."""
    with patch("devports.core.prober.platform.system", return_value="Windows"):
        yield


# ---------------------------------------------------------------------------
# Subprocess mock fixture
# ---------------------------------------------------------------------------

def make_result(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


@pytest.fixture
def mock_subprocess():
    """Patch subprocess.run used by the core with a configurable MagicMock.

    The mock returns returncode=0 and empty stdout/stderr by default.
    Tests can override via mock_subprocess.return_value or side_effect.
    """
    with patch("devports.core.shell.subprocess.run", return_value=make_result()) as mock_run:
        yield mock_run


# ---------------------------------------------------------------------------
# Real sockets and processes
# ---------------------------------------------------------------------------

def unused_port() -> int:
    """Ask the OS for a port that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    return unused_port()


@pytest.fixture
def listening_socket():
    """A listener held open by the test process itself; yields its port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("", 0))
    sock.listen(1)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


LISTENER_SCRIPT = """
import socket, time
s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
s.bind(("", 0))
s.listen(1)
print(s.getsockname()[1], flush=True)
time.sleep(120)
"""


@pytest.fixture
def dummy_listener():
    """A child process listening on a port; yields (process, port)."""
    proc = subprocess.Popen(
        [sys.executable, "-c", LISTENER_SCRIPT],
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        port = int(proc.stdout.readline())
        yield proc, port
    finally:
        if proc.poll() is None:
            proc.kill()
        proc.wait(timeout=10)
        proc.stdout.close()


class StaticResolver:
    """Resolver double that always reports the same occupant."""

    def __init__(self, occupant: Occupant | None):
        self.occupant = occupant
        self.calls: list[int] = []

    def resolve(self, port: int) -> Occupant | None:
        self.calls.append(port)
        return self.occupant
