"""Tests for the bind-based port prober."""

import errno
import socket
from unittest.mock import patch

import pytest

from devports.core.prober import is_port_available, parse_port, probe, validate_port
from devports.exceptions import InvalidPortError
from devports.models import PortState


class _FakeSocket:
    """Socket stand-in whose bind() fails per address family."""

    def __init__(self, family, errors, calls):
        self.family = family
        self.errors = errors
        self.calls = calls

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def setsockopt(self, level, option, value):
        self.calls.append(("setsockopt", self.family, level, option))

    def bind(self, address):
        self.calls.append(("bind", self.family, address))
        err = self.errors.get(self.family)
        if err is not None:
            raise err

    def listen(self, backlog):
        self.calls.append(("listen", self.family, backlog))


def _patch_socket(errors=None):
    calls = []

    def factory(family, kind):
        return _FakeSocket(family, errors or {}, calls)

    return patch("devports.core.prober.socket.socket", side_effect=factory), calls


# ============================================================================
# Validation
# ============================================================================

class TestValidatePort:

    @pytest.mark.parametrize("value", [1, 80, 3000, 65535])
    def test_accepts_valid_ports(self, value):
        assert validate_port(value) == value

    @pytest.mark.parametrize("value", [0, -1, 65536, 100000])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(InvalidPortError):
            validate_port(value)

    @pytest.mark.parametrize("value", ["3000", 3000.0, None, True, [3000]])
    def test_rejects_non_integers(self, value):
        with pytest.raises(InvalidPortError):
            validate_port(value)

    def test_invalid_port_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_port(0)


class TestParsePort:

    def test_parses_digits(self):
        assert parse_port(" 8080 ") == 8080

    @pytest.mark.parametrize("text", ["abc", "", "80.5", "0", "70000"])
    def test_rejects_bad_text(self, text):
        with pytest.raises(InvalidPortError):
            parse_port(text)


# ============================================================================
# Real sockets
# ============================================================================

class TestProbeRealSockets:

    def test_unbound_port_is_free(self, free_port):
        status = probe(free_port)
        assert status.state == PortState.FREE
        assert status.port == free_port
        assert status.occupant is None

    def test_probe_releases_its_bind(self, free_port):
        assert probe(free_port).state == PortState.FREE
        assert probe(free_port).state == PortState.FREE
        # and the port is still usable by someone else
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("", free_port))

    def test_listening_port_is_occupied(self, listening_socket):
        status = probe(listening_socket)
        assert status.state == PortState.OCCUPIED
        assert status.occupant is None

    def test_is_port_available(self, free_port, listening_socket):
        assert is_port_available(free_port) is True
        assert is_port_available(listening_socket) is False

    @pytest.mark.parametrize("value", [0, -1, 65536, "3000"])
    def test_invalid_port_raises_before_socket_use(self, value):
        with patch("devports.core.prober.socket.socket") as mock_socket:
            with pytest.raises(InvalidPortError):
                probe(value)
            mock_socket.assert_not_called()


# ============================================================================
# Error mapping
# ============================================================================

class TestProbeErrorMapping:

    def test_address_in_use_is_occupied(self):
        patcher, _ = _patch_socket({socket.AF_INET: OSError(errno.EADDRINUSE, "Address already in use")})
        with patcher:
            assert probe(3000).state == PortState.OCCUPIED

    def test_windows_address_in_use_code_is_occupied(self):
        patcher, _ = _patch_socket({socket.AF_INET: OSError(10048, "Only one usage of each socket address")})
        with patcher:
            assert probe(3000).state == PortState.OCCUPIED

    def test_permission_denied_is_unknown_with_error(self):
        patcher, _ = _patch_socket({socket.AF_INET: OSError(errno.EACCES, "Permission denied")})
        with patcher:
            status = probe(80)
        assert status.state == PortState.UNKNOWN
        assert "Permission denied" in status.error

    def test_other_bind_error_is_unknown(self):
        patcher, _ = _patch_socket({socket.AF_INET: OSError(errno.EINVAL, "Invalid argument")})
        with patcher:
            status = probe(3000)
        assert status.state == PortState.UNKNOWN
        assert status.error

    def test_ipv6_listener_counts_as_occupied(self):
        patcher, _ = _patch_socket({socket.AF_INET6: OSError(errno.EADDRINUSE, "Address already in use")})
        with patcher, patch("devports.core.prober.socket.has_ipv6", True):
            assert probe(3000).state == PortState.OCCUPIED

    def test_unavailable_ipv6_stack_is_ignored(self):
        patcher, _ = _patch_socket({socket.AF_INET6: OSError(errno.EADDRNOTAVAIL, "Cannot assign requested address")})
        with patcher, patch("devports.core.prober.socket.has_ipv6", True):
            assert probe(3000).state == PortState.FREE

    def test_ipv4_only_host_probes_one_family(self):
        patcher, calls = _patch_socket()
        with patcher, patch("devports.core.prober.socket.has_ipv6", False):
            assert probe(3000).state == PortState.FREE
        binds = [c for c in calls if c[0] == "bind"]
        assert binds == [("bind", socket.AF_INET, ("", 3000))]

    def test_listener_is_opened_after_bind(self):
        patcher, calls = _patch_socket()
        with patcher, patch("devports.core.prober.socket.has_ipv6", False):
            probe(3000)
        names = [c[0] for c in calls]
        assert names.index("bind") < names.index("listen")


class TestProbeSocketOptions:

    @pytest.mark.platform_linux
    def test_posix_sets_reuseaddr(self, mock_linux):
        patcher, calls = _patch_socket()
        with patcher, patch("devports.core.prober.socket.has_ipv6", False):
            probe(3000)
        assert ("setsockopt", socket.AF_INET, socket.SOL_SOCKET, socket.SO_REUSEADDR) in calls

    @pytest.mark.platform_windows
    def test_windows_does_not_set_reuseaddr(self, mock_windows):
        patcher, calls = _patch_socket()
        with patcher, patch("devports.core.prober.socket.has_ipv6", False):
            probe(3000)
        assert not any(c[0] == "setsockopt" and c[3] == socket.SO_REUSEADDR for c in calls)
