#!/usr/bin/env python3
"""
Host preparation: preflight checks, packages, container runtime, directories,
external database reachability and firewall rules.
"""

from __future__ import annotations

import os
import socket
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

import requests

from . import console
from .config_constants import (
    CONNECTIVITY_HOST,
    CONNECTIVITY_PORT,
    DOCKER_INSTALL_SCRIPT_URL,
    PLAINTEXT_PORT,
    SSH_PORT,
)
from .errors import ExternalToolError, PreconditionError
from .models import DatabaseSettings
from .runner import command_exists, run_cmd
from .settings import Settings

OS_RELEASE = Path('/etc/os-release')
DB_CONNECT_TIMEOUT = 5.0

FAMILY_DEBIAN = 'debian'
FAMILY_RHEL = 'rhel'
FAMILY_ARCH = 'arch'

OS_FAMILIES = {
    'ubuntu': FAMILY_DEBIAN,
    'debian': FAMILY_DEBIAN,
    'centos': FAMILY_RHEL,
    'rhel': FAMILY_RHEL,
    'fedora': FAMILY_RHEL,
    'arch': FAMILY_ARCH,
}

_COMMON_PACKAGES = ['curl', 'wget', 'git', 'openssl', 'jq', 'certbot', 'nginx',
                    'fail2ban', 'net-tools', 'lsof', 'psmisc']

PACKAGES = {
    FAMILY_DEBIAN: _COMMON_PACKAGES + ['build-essential', 'libssl-dev', 'pkg-config', 'sqlite3',
                                       'ca-certificates', 'gnupg', 'lsb-release',
                                       'python3-certbot-nginx', 'ufw'],
    FAMILY_RHEL: _COMMON_PACKAGES + ['gcc', 'openssl-devel', 'sqlite', 'ca-certificates',
                                     'python3-certbot-nginx', 'firewalld'],
    FAMILY_ARCH: _COMMON_PACKAGES + ['base-devel', 'sqlite', 'certbot-nginx', 'ufw'],
}


@dataclass(frozen=True)
class HostInfo:
    os_id: str
    version: str
    family: str

    @property
    def uses_firewalld(self) -> bool:
        return self.family == FAMILY_RHEL


def parse_os_release(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        values[key] = value.strip().strip('"').strip("'")
    return values


def detect_host(os_release: Path = OS_RELEASE) -> HostInfo:
    if not os_release.is_file():
        raise PreconditionError("Cannot determine OS type")
    values = parse_os_release(os_release.read_text(encoding='utf-8'))
    os_id = values.get('ID', '').lower()
    family = OS_FAMILIES.get(os_id)
    if family is None:
        raise PreconditionError(f"Unsupported OS: {os_id or 'unknown'}")
    return HostInfo(os_id=os_id, version=values.get('VERSION_ID', ''), family=family)


def check_root() -> None:
    if os.geteuid() != 0:
        raise PreconditionError("This script must be run as root")


def check_service_manager() -> None:
    if not command_exists('systemctl'):
        raise PreconditionError("systemctl not found. A systemd-based distribution is required.")


def _tcp_port_open(host: str, port: int, timeout: float = 2.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def check_internet() -> None:
    console.step("Checking internet connectivity...")
    if not _tcp_port_open(CONNECTIVITY_HOST, CONNECTIVITY_PORT, timeout=5.0):
        raise PreconditionError("No internet connection detected")
    console.success("Internet connection active")


def preflight(os_release: Path = OS_RELEASE) -> HostInfo:
    """Every check that must pass before anything on the host changes."""
    check_root()
    host = detect_host(os_release)
    console.success(f"Detected OS: {host.os_id} {host.version}".rstrip())
    check_service_manager()
    check_internet()
    return host


def package_commands(family: str) -> List[List[str]]:
    packages = PACKAGES[family]
    if family == FAMILY_DEBIAN:
        return [['apt-get', 'update', '-qq'], ['apt-get', 'install', '-y', *packages]]
    if family == FAMILY_RHEL:
        return [['yum', 'update', '-y', '-q'], ['yum', 'install', '-y', *packages]]
    return [['pacman', '-Syu', '--noconfirm', '--quiet', *packages]]


def install_dependencies(host: HostInfo) -> None:
    console.step("Installing system dependencies...")
    for cmd in package_commands(host.family):
        run_cmd(cmd, check=True, action="Failed to install system dependencies")
    console.success("System dependencies installed")


def _run_docker_install_script() -> None:
    response = requests.get(DOCKER_INSTALL_SCRIPT_URL, timeout=30)
    response.raise_for_status()
    with tempfile.NamedTemporaryFile('w', suffix='.sh', prefix='get-docker-', delete=False) as f:
        f.write(response.text)
        script = Path(f.name)
    try:
        run_cmd(['sh', str(script)], check=True, action="Docker installation script failed")
    finally:
        script.unlink(missing_ok=True)


def install_docker(host: HostInfo) -> None:
    console.step("Installing Docker...")
    if command_exists('docker'):
        console.success("Docker already installed")
        return

    if host.family == FAMILY_DEBIAN:
        try:
            _run_docker_install_script()
        except requests.exceptions.RequestException as e:
            raise ExternalToolError(['curl', DOCKER_INSTALL_SCRIPT_URL], 1, str(e),
                                    action="Failed to download the Docker install script") from e
    elif host.family == FAMILY_RHEL:
        run_cmd(['yum', 'install', '-y', 'docker'], check=True, action="Failed to install Docker")
    else:
        run_cmd(['pacman', '-S', '--noconfirm', 'docker'], check=True, action="Failed to install Docker")

    run_cmd(['systemctl', 'enable', 'docker'], check=True, action="Failed to enable docker")
    run_cmd(['systemctl', 'start', 'docker'], check=True, action="Failed to start docker")
    console.success("Docker installed")


def create_directories(settings: Settings) -> None:
    console.step("Creating directories...")
    for path in (settings.install_dir, settings.data_dir, settings.log_file.parent):
        path.mkdir(parents=True, exist_ok=True)
    console.success("Directories created")


def validate_database_connection(database: DatabaseSettings) -> None:
    if not database.backend.is_external:
        return
    console.step("Validating database connection...")
    if not _tcp_port_open(database.host, database.port, timeout=DB_CONNECT_TIMEOUT):
        raise PreconditionError(f"Cannot connect to database at {database.host}:{database.port}")
    console.success("Database connection validated")


def firewall_commands(host: HostInfo, internal_port: int) -> List[List[str]]:
    """Open SSH, plaintext HTTP and the internal HTTPS port only."""
    if host.uses_firewalld:
        return [
            ['systemctl', 'enable', 'firewalld'],
            ['systemctl', 'start', 'firewalld'],
            ['firewall-cmd', '--permanent', '--add-service=ssh'],
            ['firewall-cmd', '--permanent', '--add-service=http'],
            ['firewall-cmd', '--permanent', f'--add-port={internal_port}/tcp'],
            ['firewall-cmd', '--reload'],
        ]
    return [
        ['ufw', '--force', 'enable'],
        ['ufw', 'allow', f'{SSH_PORT}/tcp'],
        ['ufw', 'allow', f'{PLAINTEXT_PORT}/tcp'],
        ['ufw', 'allow', f'{internal_port}/tcp'],
        ['ufw', 'reload'],
    ]


def configure_firewall(host: HostInfo, internal_port: int) -> None:
    console.step("Configuring firewall...")
    for cmd in firewall_commands(host, internal_port):
        run_cmd(cmd, check=True, action="Firewall configuration failed")
    front_end = "firewalld" if host.uses_firewalld else "UFW"
    console.success(f"{front_end} firewall configured")
