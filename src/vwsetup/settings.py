#!/usr/bin/env python3
"""
Runtime settings (paths, names, tunables).

Defaults come from config_constants; an optional TOML file can override any of
them. Layout of the override file:

    [paths]
    install_dir = "/srv/vaultwarden"
    data_dir = "/srv/vaultwarden/data"

    [service]
    image = "vaultwarden/server"
    settle_seconds = 8

    [wait]
    poll_interval = 30
    reprompt = "Signed certificate missing. ENTER to re-check: "

    [backup]
    retention_days = 14
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from . import config_constants as C
from .errors import ConfigurationError


@dataclass(frozen=True)
class Settings:
    # [paths]
    install_dir: Path = Path(C.INSTALL_DIR)
    data_dir: Path = Path(C.DATA_DIR)
    log_file: Path = Path(C.LOG_FILE)
    admin_key_file: Path = Path(C.ADMIN_KEY_FILE)
    systemd_unit: Path = Path(C.SYSTEMD_UNIT_FILE)
    nginx_site: Path = Path(C.NGINX_SITE_FILE)
    nginx_enabled_dir: Path = Path(C.NGINX_ENABLED_DIR)
    alias_file: Path = Path(C.ALIAS_FILE)
    backup_script: Path = Path(C.BACKUP_SCRIPT)
    backup_dir: Path = Path(C.BACKUP_DIR)
    manual_cert_dir: Path = Path(C.MANUAL_CERT_DIR)
    letsencrypt_live_dir: Path = Path(C.LETSENCRYPT_LIVE_DIR)
    motd_dir: Path = Path(C.MOTD_DIR)

    # [service]
    service_name: str = C.SERVICE_NAME
    container_name: str = C.CONTAINER_NAME
    image: str = C.IMAGE_REPOSITORY
    app_port: int = C.APP_LOCAL_PORT
    settle_seconds: float = C.SETTLE_SECONDS
    recovery_pause_seconds: float = C.RECOVERY_PAUSE_SECONDS

    # [wait]
    poll_interval: float = C.WAIT_POLL_INTERVAL
    reprompt: str = C.WAIT_REPROMPT

    # [backup]
    retention_days: int = C.BACKUP_RETENTION_DAYS
    schedule: str = C.BACKUP_SCHEDULE
    backup_prefix: str = C.BACKUP_PREFIX

    @property
    def env_file(self) -> Path:
        return self.install_dir / C.ENV_FILE_NAME

    @property
    def motd_script(self) -> Path:
        return self.motd_dir / C.MOTD_SCRIPT_NAME

    @property
    def cron_line(self) -> str:
        return f"{self.schedule} {self.backup_script}"


SECTIONS = {
    'paths': {
        'install_dir', 'data_dir', 'log_file', 'admin_key_file', 'systemd_unit',
        'nginx_site', 'nginx_enabled_dir', 'alias_file', 'backup_script',
        'backup_dir', 'manual_cert_dir', 'letsencrypt_live_dir', 'motd_dir',
    },
    'service': {
        'service_name', 'container_name', 'image', 'app_port',
        'settle_seconds', 'recovery_pause_seconds',
    },
    'wait': {'poll_interval', 'reprompt'},
    'backup': {'retention_days', 'schedule', 'backup_prefix'},
}


def _coerce(name: str, value: Any) -> Any:
    field_types = {f.name: f.type for f in fields(Settings)}
    declared = field_types[name]
    try:
        if declared == 'Path':
            return Path(str(value))
        if declared == 'int':
            return int(value)
        if declared == 'float':
            return float(value)
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r} ({e})") from e


def settings_from_dict(data: dict, base: Optional[Settings] = None) -> Settings:
    """Apply a parsed TOML document on top of base (or the defaults)."""
    overrides: dict[str, Any] = {}
    for section, values in data.items():
        allowed = SECTIONS.get(section)
        if allowed is None:
            raise ConfigurationError(f"Unknown settings section: [{section}]")
        if not isinstance(values, dict):
            raise ConfigurationError(f"Settings section [{section}] must be a table")
        for key, value in values.items():
            if key not in allowed:
                raise ConfigurationError(f"Unknown setting: {section}.{key}")
            overrides[key] = _coerce(key, value)
    return replace(base or Settings(), **overrides)


def load_settings(path: Optional[Path] = None) -> Settings:
    if path is None:
        return Settings()
    if not path.exists():
        raise ConfigurationError(f"Settings file not found: {path}")
    try:
        with open(path, 'rb') as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Failed to parse {path}: {e}") from e
    return settings_from_dict(data)
