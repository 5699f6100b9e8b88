#!/usr/bin/env python3
"""Managed block of vw-* shell aliases in the root shell profile."""

from __future__ import annotations

from . import console
from .config_constants import ALIAS_MARKER_END, ALIAS_MARKER_START
from .rendering import render_template, write_file
from .settings import Settings

ALIAS_NAMES = (
    ('vw-start', "Start Vaultwarden"),
    ('vw-stop', "Stop Vaultwarden"),
    ('vw-restart', "Restart Vaultwarden"),
    ('vw-status', "Check service status"),
    ('vw-logs', "View real-time logs"),
    ('vw-update', "Update to latest version"),
    ('vw-backup', "Create manual backup"),
    ('vw-config', "Edit configuration"),
    ('vw-admin-key', "Display admin token"),
    ('vw-cleanup', "Stop and remove containers"),
    ('vw-diagnose', "Run diagnostics"),
)


def render_alias_block(settings: Settings) -> str:
    return render_template(
        "aliases.sh.j2",
        marker_start=ALIAS_MARKER_START,
        marker_end=ALIAS_MARKER_END,
        service_name=settings.service_name,
        image_repository=settings.image,
        backup_script=settings.backup_script,
        env_file=settings.env_file,
        admin_key_file=settings.admin_key_file,
        container_name=settings.container_name,
        app_port=settings.app_port,
    )


def strip_alias_block(text: str) -> str:
    """Remove every managed block (markers included) from text."""
    kept = []
    inside = False
    for line in text.splitlines(keepends=True):
        marker = line.strip()
        if marker == ALIAS_MARKER_START:
            inside = True
            continue
        if marker == ALIAS_MARKER_END and inside:
            inside = False
            continue
        if not inside:
            kept.append(line)
    return ''.join(kept)


def merge_alias_block(existing: str, block: str) -> str:
    body = strip_alias_block(existing).rstrip('\n')
    if body:
        return f"{body}\n\n{block}"
    return block


def install_aliases(settings: Settings) -> None:
    console.step("Creating command aliases...")
    alias_file = settings.alias_file
    existing = alias_file.read_text(encoding='utf-8') if alias_file.exists() else ""
    mode = alias_file.stat().st_mode & 0o777 if alias_file.exists() else 0o644
    write_file(alias_file, merge_alias_block(existing, render_alias_block(settings)), mode)
    console.success("Command aliases created")
