#!/usr/bin/env python3
"""Settings file, systemd unit and admin-access record."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from . import console
from .config_constants import CONTAINER_DATA_DIR
from .models import SetupConfig
from .rendering import render_template, write_file
from .runner import run_cmd
from .settings import Settings

SECRET_MODE = 0o600


def image_reference(settings: Settings, config: SetupConfig) -> str:
    return f"{settings.image}:{config.image_version}"


def render_env_file(config: SetupConfig, settings: Settings) -> str:
    return render_template(
        "vaultwarden.env.j2",
        access_url=config.access_url,
        database_url=config.database.url(Path(CONTAINER_DATA_DIR)),
        data_dir=CONTAINER_DATA_DIR,
        admin_token=config.admin_token,
        app_port=settings.app_port,
        smtp=config.smtp,
    )


def render_service_unit(config: SetupConfig, settings: Settings) -> str:
    return render_template(
        "vaultwarden.service.j2",
        container_name=settings.container_name,
        data_dir=settings.data_dir,
        container_data_dir=CONTAINER_DATA_DIR,
        env_file=settings.env_file,
        app_port=settings.app_port,
        image=image_reference(settings, config),
    )


def render_admin_record(config: SetupConfig, generated: Optional[datetime] = None) -> str:
    generated = generated or datetime.now()
    return render_template(
        "admin-key.txt.j2",
        generated=generated.strftime('%a %b %d %H:%M:%S %Y'),
        access_url=config.access_url,
        admin_token=config.admin_token,
    )


def write_env_file(config: SetupConfig, settings: Settings) -> None:
    console.step("Configuring Vaultwarden...")
    write_file(settings.env_file, render_env_file(config, settings), SECRET_MODE)
    if config.smtp_enabled:
        console.info("SMTP relay configured")
    console.success("Configuration file created")


def write_service_unit(config: SetupConfig, settings: Settings) -> None:
    console.step("Creating systemd service...")
    write_file(settings.systemd_unit, render_service_unit(config, settings), 0o644)
    run_cmd(["systemctl", "daemon-reload"], check=True, action="systemd daemon-reload failed")
    run_cmd(["systemctl", "enable", settings.service_name], check=True,
            action=f"Failed to enable {settings.service_name}")
    console.success("Systemd service created")


def save_admin_record(config: SetupConfig, settings: Settings) -> None:
    console.step("Saving admin access key...")
    write_file(settings.admin_key_file, render_admin_record(config), SECRET_MODE)
    console.success(f"Admin key saved to {settings.admin_key_file}")
