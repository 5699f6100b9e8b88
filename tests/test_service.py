"""
Service cleanup, image pull and start/recovery tests.
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from vwsetup import service  # noqa: E402
from vwsetup.errors import ExternalToolError, ServiceStartError  # noqa: E402
from vwsetup.models import CertificatePlan, CertMode, SetupConfig  # noqa: E402
from vwsetup.runner import CommandResult  # noqa: E402

CONFIG = SetupConfig(
    domain="vault.example.com",
    certificate=CertificatePlan(mode=CertMode.LETSENCRYPT, email="ops@example.com"),
)

LISTENING_8000 = "tcp   LISTEN 0      128    127.0.0.1:8000      0.0.0.0:*\n"


class HostState:
    """Answers systemctl/docker/ss queries; active_after says which start succeeds."""

    def __init__(self, active_after=None, port_busy=False, container=False, unit=False):
        self.active_after = active_after
        self.port_busy = port_busy
        self.container = container
        self.unit = unit
        self.starts = 0

    def __call__(self, cmd):
        if cmd[:2] == ["systemctl", "start"]:
            self.starts += 1
            return None
        if cmd[:2] == ["systemctl", "is-active"]:
            ok = self.active_after is not None and self.starts >= self.active_after
            return 0 if ok else 3
        if cmd[:3] == ["docker", "ps", "-a"]:
            return CommandResult(tuple(cmd), 0, stdout="vaultwarden\n" if self.container else "")
        if cmd[:2] == ["systemctl", "list-units"]:
            stdout = "vaultwarden.service loaded active running\n" if self.unit else ""
            return CommandResult(tuple(cmd), 0, stdout=stdout)
        if cmd[0] == "ss":
            return CommandResult(tuple(cmd), 0, stdout=LISTENING_8000 if self.port_busy else "")
        if cmd[0] == "lsof":
            return CommandResult(tuple(cmd), 0, stdout="python3 4242 root 3u IPv4 TCP 127.0.0.1:8000 (LISTEN)\n")
        return None


def _run_start(settings, fake_commands, state):
    commands = fake_commands(state)
    with patch("vwsetup.service.run_cmd", commands), patch("vwsetup.service.time.sleep") as mock_sleep:
        try:
            service.start_with_recovery(CONFIG, settings)
        finally:
            sleeps = [call.args[0] for call in mock_sleep.call_args_list]
    return commands, sleeps


class TestStartWithRecovery:
    def test_first_start_succeeds(self, settings, fake_commands):
        state = HostState(active_after=1)

        commands, sleeps = _run_start(settings, fake_commands, state)

        assert state.starts == 1
        assert not commands.ran("journalctl")
        assert sleeps == [settings.settle_seconds]

    def test_recovers_after_one_retry(self, settings, fake_commands):
        state = HostState(active_after=2)

        commands, _ = _run_start(settings, fake_commands, state)

        assert state.starts == 2
        assert commands.ran("journalctl", "-u", "vaultwarden")
        assert commands.ran("docker", "stop", "vaultwarden")
        assert commands.ran("docker", "rm", "vaultwarden")
        assert commands.ran("systemctl", "daemon-reload")

    def test_persistent_failure_stops_after_second_start(self, settings, fake_commands):
        state = HostState(active_after=None)

        with pytest.raises(ServiceStartError):
            _run_start(settings, fake_commands, state)

        assert state.starts == 2

    def test_port_owner_reported_not_killed(self, settings, fake_commands, capsys):
        state = HostState(active_after=2, port_busy=True)

        commands, _ = _run_start(settings, fake_commands, state)

        assert commands.ran("lsof")
        assert not any(call[0] in ("kill", "fuser", "pkill") for call in commands.calls)
        assert "Port 8000 is in use" in capsys.readouterr().out

    def test_recovery_order(self, settings, fake_commands):
        state = HostState(active_after=2)

        commands, _ = _run_start(settings, fake_commands, state)

        flat = [" ".join(call) for call in commands.calls]
        stop = flat.index("systemctl stop vaultwarden")
        reload_ = flat.index("systemctl daemon-reload")
        second_start = [i for i, c in enumerate(flat) if c == "systemctl start vaultwarden"][1]
        assert stop < reload_ < second_start


class TestCleanupExisting:
    def test_removes_container_and_stops_unit(self, settings, fake_commands):
        commands = fake_commands(HostState(container=True, unit=True))

        with patch("vwsetup.service.run_cmd", commands):
            service.cleanup_existing(settings)

        assert commands.ran("docker", "stop", "vaultwarden")
        assert commands.ran("docker", "rm", "vaultwarden")
        assert commands.ran("systemctl", "stop", "vaultwarden")
        assert commands.ran("systemctl", "disable", "vaultwarden")

    def test_clean_host_is_left_alone(self, settings, fake_commands):
        commands = fake_commands(HostState())

        with patch("vwsetup.service.run_cmd", commands):
            service.cleanup_existing(settings)

        assert not commands.ran("docker", "stop")
        assert not commands.ran("systemctl", "stop")
        assert not commands.ran("lsof")


class TestPullImage:
    def test_pulls_versioned_image(self, settings, fake_commands):
        commands = fake_commands()

        with patch("vwsetup.service.run_cmd", commands):
            service.pull_image(CONFIG, settings)

        assert commands.calls == [["docker", "pull", "vaultwarden/server:latest"]]

    def test_pull_failure_is_fatal(self, settings, fake_commands):
        commands = fake_commands(lambda cmd: 1)

        with patch("vwsetup.service.run_cmd", commands):
            with pytest.raises(ExternalToolError, match="Failed to pull vaultwarden/server:latest"):
                service.pull_image(CONFIG, settings)


class TestPortListeners:
    def test_matches_exact_port(self, fake_commands):
        output = LISTENING_8000 + "tcp   LISTEN 0      128    0.0.0.0:80000     0.0.0.0:*\n"
        commands = fake_commands(lambda cmd: CommandResult(tuple(cmd), 0, stdout=output))

        with patch("vwsetup.service.run_cmd", commands):
            assert service.port_listeners(8000) == LISTENING_8000.rstrip("\n")
            assert service.port_listeners(8080) is None
