"""
Settings file loading and CLI tests.
"""

import logging
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from vwsetup import cli, console, rendering  # noqa: E402
from vwsetup.errors import ConfigurationError, PreconditionError  # noqa: E402
from vwsetup.settings import Settings, load_settings, settings_from_dict  # noqa: E402


class TestLoadSettings:
    def test_defaults_without_file(self):
        settings = load_settings(None)

        assert settings == Settings()
        assert settings.env_file == Path("/opt/vaultwarden/.env")
        assert settings.cron_line == "0 2 * * * /usr/local/bin/vaultwarden-backup.sh"
        assert settings.motd_script == Path("/etc/update-motd.d/99-vaultwarden")

    def test_overrides_from_toml(self, tmp_path):
        path = tmp_path / "vwsetup.toml"
        path.write_text(
            '[paths]\n'
            'install_dir = "/srv/vw"\n'
            '\n'
            '[service]\n'
            'settle_seconds = 8\n'
            'app_port = "8080"\n'
            '\n'
            '[wait]\n'
            'poll_interval = 30\n'
            '\n'
            '[backup]\n'
            'retention_days = 14\n'
        )

        settings = load_settings(path)

        assert settings.install_dir == Path("/srv/vw")
        assert settings.env_file == Path("/srv/vw/.env")
        assert settings.settle_seconds == 8.0
        assert settings.app_port == 8080
        assert settings.poll_interval == 30.0
        assert settings.retention_days == 14
        assert settings.data_dir == Settings().data_dir

    @pytest.mark.parametrize("data,message", [
        ({"network": {"port": 1}}, "Unknown settings section"),
        ({"paths": {"install_path": "/x"}}, "Unknown setting: paths.install_path"),
        ({"service": {"app_port": "eighty"}}, "Invalid value for app_port"),
        ({"wait": "fast"}, "must be a table"),
    ])
    def test_invalid_documents_rejected(self, data, message):
        with pytest.raises(ConfigurationError, match=message):
            settings_from_dict(data)

    def test_malformed_toml_rejected(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[paths\n")

        with pytest.raises(ConfigurationError, match="Failed to parse"):
            load_settings(path)

    def test_missing_file_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(tmp_path / "absent.toml")


class TestParseArguments:
    def test_defaults(self):
        args = cli.parse_arguments([])

        assert args.config is None
        assert args.log_file is None
        assert args.log_level == "INFO"
        assert args.poll_interval is None
        assert args.commands_only is False

    def test_flags(self):
        args = cli.parse_arguments([
            "--config", "/etc/vwsetup.toml",
            "--log-file", "/tmp/setup.log",
            "--log-level", "debug",
            "--poll-interval", "15",
            "--commands-only",
        ])

        assert args.config == Path("/etc/vwsetup.toml")
        assert args.log_file == Path("/tmp/setup.log")
        assert args.log_level == "DEBUG"
        assert args.poll_interval == 15.0
        assert args.commands_only is True

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.parse_arguments(["--version"])

        assert exc_info.value.code == 0
        assert "vwsetup" in capsys.readouterr().out


class TestMain:
    def test_success_passes_overridden_settings(self, tmp_path):
        log_file = tmp_path / "setup.log"

        with patch("vwsetup.cli.run_setup") as mock_setup:
            rc = cli.main(["--log-file", str(log_file), "--poll-interval", "5"])

        assert rc == 0
        settings = mock_setup.call_args.args[0]
        assert settings.log_file == log_file
        assert settings.poll_interval == 5.0

    def test_commands_only_skips_setup(self, tmp_path):
        with patch("vwsetup.cli.run_setup") as mock_setup, \
                patch("vwsetup.cli.run_commands_only") as mock_commands:
            rc = cli.main(["--commands-only", "--log-file", str(tmp_path / "setup.log")])

        assert rc == 0
        mock_setup.assert_not_called()
        mock_commands.assert_called_once()

    def test_setup_error_exits_1_and_is_logged(self, tmp_path, capsys):
        log_file = tmp_path / "setup.log"

        with patch("vwsetup.cli.run_setup", side_effect=PreconditionError("This script must be run as root")):
            rc = cli.main(["--log-file", str(log_file)])

        assert rc == 1
        assert "This script must be run as root" in capsys.readouterr().out
        for handler in console.logger.handlers:
            handler.flush()
        assert "[ERROR] This script must be run as root" in log_file.read_text()

    def test_template_failure_exits_1(self, tmp_path, capsys):
        def broken_render(settings):
            rendering.render_template("absent.conf.j2")

        with patch("vwsetup.cli.run_setup", side_effect=broken_render):
            rc = cli.main(["--log-file", str(tmp_path / "setup.log")])

        assert rc == 1
        assert "Failed to render template absent.conf.j2" in capsys.readouterr().out

    def test_interrupt_exits_130(self, tmp_path):
        with patch("vwsetup.cli.run_setup", side_effect=KeyboardInterrupt):
            assert cli.main(["--log-file", str(tmp_path / "setup.log")]) == 130

    def test_bad_config_exits_1(self, tmp_path):
        assert cli.main(["--config", str(tmp_path / "absent.toml")]) == 1


class TestConfigureLogging:
    def test_file_format_and_success_level(self, tmp_path):
        log_file = tmp_path / "logs" / "setup.log"

        console.configure_logging(log_file, "INFO")
        console.success("Docker installed")
        console.debug("hidden at INFO")
        for handler in console.logger.handlers:
            handler.flush()

        text = log_file.read_text()
        assert "[SUCCESS] Docker installed" in text
        assert "hidden at INFO" not in text
        assert text.startswith("[")

    def test_plain_info_lines_reach_log(self, tmp_path):
        log_file = tmp_path / "setup.log"

        console.configure_logging(log_file, "DEBUG")
        console.info("Retrying service start...")
        console.info("Place signed fullchain at", path="/etc/ssl/manual/example.com.signed.fullchain.pem")
        for handler in console.logger.handlers:
            handler.flush()

        text = log_file.read_text()
        assert "[INFO] Retrying service start..." in text
        assert "Place signed fullchain at" in text
        assert "example.com.signed.fullchain.pem" in text

    def test_unwritable_log_falls_back_to_console(self, tmp_path, capsys):
        blocker = tmp_path / "file"
        blocker.write_text("")

        console.configure_logging(blocker / "setup.log")

        assert "Cannot open log file" in capsys.readouterr().out
        assert all(isinstance(h, logging.NullHandler) for h in console.logger.handlers)
