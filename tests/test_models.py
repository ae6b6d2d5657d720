"""Tests for port records, PortRange and Settings."""

import pytest
from pydantic import ValidationError

from devports.config import DEFAULT_SCAN_PORTS, Settings
from devports.exceptions import InvalidPortError
from devports.models import Occupant, PortRange, PortState, PortStatus


class TestPortStatus:

    def test_is_immutable(self):
        status = PortStatus(port=3000, state=PortState.FREE)
        with pytest.raises(ValidationError):
            status.state = PortState.OCCUPIED

    def test_with_occupant_returns_new_snapshot(self):
        status = PortStatus(port=3000, state=PortState.OCCUPIED)
        node = Occupant(pid=1, process_name="node")
        updated = status.with_occupant(node)
        assert updated.occupant == node
        assert status.occupant is None

    def test_state_serializes_as_string(self):
        dumped = PortStatus(port=3000, state=PortState.UNKNOWN, error="Permission denied").model_dump(mode="json")
        assert dumped == {"port": 3000, "state": "unknown", "occupant": None, "error": "Permission denied"}


class TestPortRange:

    def test_iterates_inclusive_ascending(self):
        assert list(PortRange(3000, 3002)) == [3000, 3001, 3002]
        assert len(PortRange(3000, 3002)) == 3

    def test_single_port_range(self):
        assert list(PortRange(8080, 8080)) == [8080]

    def test_parse(self):
        assert PortRange.parse("3000-3010") == PortRange(3000, 3010)
        assert PortRange.parse(" 5173 ") == PortRange(5173, 5173)
        assert str(PortRange.parse("1-65535")) == "1-65535"

    @pytest.mark.parametrize("text", ["3000-", "-3000", "a-b", "3000-70000", "0-10", "3010-3000", ""])
    def test_parse_rejects(self, text):
        with pytest.raises(InvalidPortError):
            PortRange.parse(text)

    @pytest.mark.parametrize("start,end", [(True, 10), (1, 65536), (1.0, 10)])
    def test_constructor_rejects(self, start, end):
        with pytest.raises(InvalidPortError):
            PortRange(start, end)


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DEVPORTS_DEFAULT_PORTS", raising=False)
        settings = Settings(_env_file=None)
        assert settings.default_ports == DEFAULT_SCAN_PORTS
        assert settings.command_timeout is None
        assert settings.shutdown_timeout == 5.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DEVPORTS_DEFAULT_PORTS", "[4000, 4001]")
        monkeypatch.setenv("DEVPORTS_COMMAND_TIMEOUT", "2.5")
        settings = Settings(_env_file=None)
        assert settings.default_ports == [4000, 4001]
        assert settings.command_timeout == 2.5

    def test_foreign_env_file_keys_are_ignored(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text(
            "PORT=3000\nDATABASE_URL=postgres://x\nNODE_ENV=development\n"
        )
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("DEVPORTS_DEFAULT_PORTS", raising=False)
        settings = Settings()
        assert settings.default_ports == DEFAULT_SCAN_PORTS
        assert not hasattr(settings, "database_url")

    def test_env_file_devports_keys_are_read(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("PORT=3000\nDEVPORTS_KILL_SETTLE_SECONDS=2\n")
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("DEVPORTS_KILL_SETTLE_SECONDS", raising=False)
        assert Settings().kill_settle_seconds == 2.0

    def test_rejects_invalid_default_port(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, default_ports=[0])

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, command_timeout=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, kill_settle_seconds=-1)
