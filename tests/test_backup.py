"""
Backup routine, wrapper script and crontab entry tests.
"""

import os
import stat
import sys
import tarfile
import time
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from vwsetup import backup  # noqa: E402
from vwsetup.runner import CommandResult  # noqa: E402

DAY = 86400


def _archive(directory: Path, name: str, age_days: float, now: float) -> Path:
    path = directory / name
    path.write_bytes(b"")
    mtime = now - age_days * DAY
    os.utime(path, (mtime, mtime))
    return path


class TestCreateBackup:
    def test_archive_name_and_contents(self, tmp_path):
        data = tmp_path / "vaultwarden"
        (data / "attachments").mkdir(parents=True)
        (data / "db.sqlite3").write_bytes(b"sqlite")

        archive = backup.create_backup(data, tmp_path / "backups", "vaultwarden", datetime(2024, 5, 6, 7, 8, 9))

        assert archive.name == "vaultwarden-20240506-070809.tar.gz"
        with tarfile.open(archive) as tar:
            names = tar.getnames()
        assert "vaultwarden/db.sqlite3" in names
        assert "vaultwarden/attachments" in names


class TestPruneBackups:
    def test_retention_by_mtime(self, tmp_path):
        now = time.time()
        old = _archive(tmp_path, "vaultwarden-20240101-020000.tar.gz", 8, now)
        fresh = _archive(tmp_path, "vaultwarden-20240108-020000.tar.gz", 6, now)
        foreign = _archive(tmp_path, "other-20240101-020000.tar.gz", 30, now)

        removed = backup.prune_backups(tmp_path, "vaultwarden", 7, now=now)

        assert removed == [old]
        assert not old.exists()
        assert fresh.exists()
        assert foreign.exists()

    def test_missing_directory(self, tmp_path):
        assert backup.prune_backups(tmp_path / "absent", "vaultwarden", 7) == []


class TestBackupMain:
    def test_creates_archive(self, tmp_path):
        data = tmp_path / "data"
        data.mkdir()
        (data / "db.sqlite3").write_bytes(b"x")
        target = tmp_path / "backups"

        rc = backup.main(["--data-dir", str(data), "--backup-dir", str(target), "--retention-days", "7"])

        assert rc == 0
        assert len(list(target.glob("vaultwarden-*.tar.gz"))) == 1

    def test_missing_data_dir_fails(self, tmp_path):
        assert backup.main(["--data-dir", str(tmp_path / "nope"), "--backup-dir", str(tmp_path)]) == 1


class TestBackupScript:
    def test_wrapper_invokes_module(self, settings):
        backup.install_backup_script(settings)

        text = settings.backup_script.read_text()
        assert text.startswith("#!/bin/sh")
        assert "-m vwsetup.backup" in text
        assert f"--data-dir {settings.data_dir}" in text
        assert f"--backup-dir {settings.backup_dir}" in text
        assert "--retention-days 7" in text
        assert stat.S_IMODE(settings.backup_script.stat().st_mode) == 0o755


class TestCronEntry:
    def test_add_cron_line_is_idempotent(self):
        line = "0 2 * * * /usr/local/bin/vaultwarden-backup.sh"

        once = backup.add_cron_line("MAILTO=root\n", line)
        twice = backup.add_cron_line(once, line)

        assert once == f"MAILTO=root\n{line}\n"
        assert twice == once
        assert backup.add_cron_line("", line) == f"{line}\n"

    def test_repeated_installs_leave_one_entry(self, settings, fake_commands):
        crontab = {"text": None}

        def cron(cmd):
            if cmd == ["crontab", "-l"]:
                if crontab["text"] is None:
                    return CommandResult(tuple(cmd), 1, stderr="no crontab for root")
                return CommandResult(tuple(cmd), 0, stdout=crontab["text"])
            return None

        commands = fake_commands(cron)

        def run(cmd, **kwargs):
            result = commands(cmd, **kwargs)
            if cmd == ["crontab", "-"]:
                crontab["text"] = kwargs["input_text"]
            return result

        with patch("vwsetup.backup.run_cmd", run):
            assert backup.ensure_cron_entry(settings) is True
            assert backup.ensure_cron_entry(settings) is False

        assert crontab["text"].count(settings.cron_line) == 1
        assert commands.count("crontab", "-") == 1
