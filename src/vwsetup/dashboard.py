#!/usr/bin/env python3
"""Login-time status dashboard (update-motd.d)."""

from __future__ import annotations

import stat
from pathlib import Path
from typing import List

from . import console
from .models import SetupConfig
from .rendering import render_template, write_file
from .settings import Settings

EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def disable_existing_scripts(motd_dir: Path) -> List[Path]:
    """Clear the executable bits of every file in motd_dir."""
    disabled: List[Path] = []
    for path in sorted(motd_dir.iterdir()):
        if not path.is_file():
            continue
        mode = path.stat().st_mode
        if mode & EXEC_BITS:
            path.chmod(mode & ~EXEC_BITS)
            disabled.append(path)
    return disabled


def render_dashboard(config: SetupConfig, settings: Settings) -> str:
    return render_template(
        "motd.sh.j2",
        container_name=settings.container_name,
        domain=config.domain,
        internal_port=config.internal_port,
        access_url=config.access_url,
    )


def setup_dashboard(config: SetupConfig, settings: Settings) -> None:
    console.step("Configuring MOTD scripts...")
    settings.motd_dir.mkdir(parents=True, exist_ok=True)
    disabled = disable_existing_scripts(settings.motd_dir)
    console.debug(f"Disabled MOTD scripts: {[p.name for p in disabled]}")
    console.success("Default MOTD scripts disabled")

    if not config.install_dashboard:
        console.info("Custom MOTD skipped by user choice.")
        return

    write_file(settings.motd_script, render_dashboard(config, settings), 0o755)
    console.success(f"Custom MOTD installed at {settings.motd_script}")
