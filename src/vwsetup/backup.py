#!/usr/bin/env python3
"""
Data-directory backups.

Two halves:

- the routine itself (``python -m vwsetup.backup``): archive the data directory
  as ``<prefix>-YYYYMMDD-HHMMSS.tar.gz`` and delete archives whose modification
  time is older than the retention window
- installation: a small wrapper script invoking the routine, plus exactly one
  crontab entry running it daily
"""

from __future__ import annotations

import argparse
import sys
import tarfile
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from . import console
from .config_constants import BACKUP_DIR, BACKUP_PREFIX, BACKUP_RETENTION_DAYS, DATA_DIR
from .rendering import render_template, write_file
from .runner import run_cmd
from .settings import Settings

SECONDS_PER_DAY = 86400


def archive_name(prefix: str, when: datetime) -> str:
    return f"{prefix}-{when.strftime('%Y%m%d-%H%M%S')}.tar.gz"


def create_backup(data_dir: Path, backup_dir: Path, prefix: str, when: Optional[datetime] = None) -> Path:
    backup_dir.mkdir(parents=True, exist_ok=True)
    archive = backup_dir / archive_name(prefix, when or datetime.now())
    with tarfile.open(archive, 'w:gz') as tar:
        tar.add(str(data_dir), arcname=data_dir.name)
    archive.chmod(0o600)
    return archive


def prune_backups(backup_dir: Path, prefix: str, retention_days: int, now: Optional[float] = None) -> List[Path]:
    """Delete archives older than retention_days (by mtime). Returns what was removed."""
    if not backup_dir.is_dir():
        return []
    cutoff = (now if now is not None else time.time()) - retention_days * SECONDS_PER_DAY
    removed: List[Path] = []
    for archive in sorted(backup_dir.glob(f"{prefix}-*.tar.gz")):
        if archive.is_file() and archive.stat().st_mtime < cutoff:
            archive.unlink()
            removed.append(archive)
    return removed


def run_backup(data_dir: Path, backup_dir: Path, prefix: str, retention_days: int) -> Path:
    archive = create_backup(data_dir, backup_dir, prefix)
    console.success(f"Backup written: {archive}")
    for path in prune_backups(backup_dir, prefix, retention_days):
        console.info(f"Removed expired backup: {path.name}")
    return archive


def render_backup_script(settings: Settings, python: str = sys.executable) -> str:
    return render_template(
        "backup.sh.j2",
        python=python,
        data_dir=settings.data_dir,
        backup_dir=settings.backup_dir,
        prefix=settings.backup_prefix,
        retention_days=settings.retention_days,
    )


def install_backup_script(settings: Settings) -> None:
    write_file(settings.backup_script, render_backup_script(settings), 0o755)


def add_cron_line(current: str, line: str) -> str:
    """Return the crontab with line appended, or unchanged if already present."""
    if line in current:
        return current
    body = current.rstrip('\n')
    return f"{body}\n{line}\n" if body else f"{line}\n"


def ensure_cron_entry(settings: Settings) -> bool:
    """Add the daily backup entry unless it exists. Returns True when added."""
    listing = run_cmd(["crontab", "-l"])
    # crontab -l exits non-zero when the user has no crontab yet
    current = listing.stdout if listing.ok else ""
    updated = add_cron_line(current, settings.cron_line)
    if updated == current:
        console.debug("Backup crontab entry already present")
        return False
    run_cmd(["crontab", "-"], check=True, input_text=updated, action="Failed to install backup crontab entry")
    return True


def setup_backup(settings: Settings) -> None:
    console.step("Setting up automatic backups...")
    install_backup_script(settings)
    ensure_cron_entry(settings)
    console.success("Automatic daily backups configured")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vwsetup-backup",
        description="Archive the Vaultwarden data directory and prune old archives."
    )
    parser.add_argument("--data-dir", type=Path, default=Path(DATA_DIR))
    parser.add_argument("--backup-dir", type=Path, default=Path(BACKUP_DIR))
    parser.add_argument("--prefix", default=BACKUP_PREFIX)
    parser.add_argument("--retention-days", type=int, default=BACKUP_RETENTION_DAYS)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    console.configure_logging(None)
    if not args.data_dir.is_dir():
        console.error(f"Data directory not found: {args.data_dir}")
        return 1
    try:
        run_backup(args.data_dir, args.backup_dir, args.prefix, args.retention_days)
    except (OSError, tarfile.TarError) as e:
        console.error(f"Backup failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
