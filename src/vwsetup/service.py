#!/usr/bin/env python3
"""
Managed service lifecycle: cleanup of a previous deployment, image pull,
start with one automatic recovery attempt, and diagnostics.

Start sequence:

    start -> settle -> active?  yes -> done
                                no  -> diagnose, stop + remove container,
                                       pause, report port owner, daemon-reload,
                                       start -> settle -> active?  yes -> done
                                                                   no  -> diagnose, checklist, ServiceStartError

There is never a third start. A process holding the application port is
reported, never killed.
"""

from __future__ import annotations

import time
from typing import Optional

from . import console
from .errors import ServiceStartError
from .materialize import image_reference
from .models import SetupConfig
from .runner import run_cmd
from .settings import Settings


def container_exists(settings: Settings) -> bool:
    result = run_cmd(["docker", "ps", "-a", "--format", "{{.Names}}"])
    return result.ok and settings.container_name in result.stdout.split()


def remove_container(settings: Settings) -> None:
    run_cmd(["docker", "stop", settings.container_name])
    run_cmd(["docker", "rm", settings.container_name])


def unit_known(settings: Settings) -> bool:
    result = run_cmd(["systemctl", "list-units", "--full", "--all", "--no-legend", f"{settings.service_name}.service"])
    return result.ok and f"{settings.service_name}.service" in result.stdout


def port_listeners(port: int) -> Optional[str]:
    """Listening socket lines for port, or None when the port is free."""
    result = run_cmd(["ss", "-tuln"])
    if not result.ok:
        result = run_cmd(["netstat", "-tuln"])
    needle = f":{port} "
    lines = [line for line in result.stdout.splitlines() if needle in line + " "]
    return "\n".join(lines) if lines else None


def report_port_owner(port: int, message: str) -> bool:
    """Warn about a process holding port. Returns True when the port is busy."""
    if port_listeners(port) is None:
        return False
    console.warn(message)
    owner = run_cmd(["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN"])
    if owner.stdout.strip():
        console.raw(owner.stdout.rstrip())
    return True


def cleanup_existing(settings: Settings) -> None:
    console.step("Checking for existing installation...")

    if container_exists(settings):
        console.info("Stopping existing Vaultwarden container...")
        remove_container(settings)
        console.success("Existing container removed")

    if unit_known(settings):
        console.info("Stopping existing Vaultwarden service...")
        run_cmd(["systemctl", "stop", settings.service_name])
        run_cmd(["systemctl", "disable", settings.service_name])
        console.success("Existing service stopped")

    report_port_owner(
        settings.app_port,
        f"Port {settings.app_port} is in use by another process. Not killing it automatically.",
    )
    console.success("Cleanup completed")


def pull_image(config: SetupConfig, settings: Settings) -> None:
    image = image_reference(settings, config)
    console.step(f"Pulling Vaultwarden Docker image ({config.image_version})...")
    run_cmd(["docker", "pull", image], check=True, action=f"Failed to pull {image}")
    console.success("Docker image pulled")


def is_active(settings: Settings) -> bool:
    return run_cmd(["systemctl", "is-active", "--quiet", settings.service_name]).ok


def _tail(text: str, lines: int = 20) -> str:
    return "\n".join(text.splitlines()[-lines:])


def diagnose(settings: Settings) -> None:
    console.error("Service failed to start. Diagnosing...")
    print("")

    console.info("Systemd logs:")
    journal = run_cmd(["journalctl", "-u", settings.service_name, "-n", "20", "--no-pager"])
    console.raw(journal.output)
    print("")

    if container_exists(settings):
        console.info("Docker container logs:")
        logs = run_cmd(["docker", "logs", settings.container_name])
        console.raw(_tail(logs.output))
        print("")

    console.info(f"Checking port {settings.app_port}...")
    listeners = port_listeners(settings.app_port)
    if listeners:
        console.warn(f"Port {settings.app_port} is already in use!")
        console.raw(listeners)
    else:
        console.success(f"Port {settings.app_port} is available")

    console.info("Docker service status:")
    status = run_cmd(["systemctl", "status", "docker", "--no-pager", "-l"])
    console.raw("\n".join(status.output.splitlines()[:10]))
    print("")

    console.info("Directory permissions:")
    listing = run_cmd(["ls", "-la", str(settings.install_dir), str(settings.data_dir)])
    console.raw(listing.output)
    print("")


def _start_and_settle(settings: Settings) -> bool:
    run_cmd(["systemctl", "start", settings.service_name])
    time.sleep(settings.settle_seconds)
    return is_active(settings)


def _recover(settings: Settings) -> None:
    console.step("Attempting automatic recovery...")
    run_cmd(["systemctl", "stop", settings.service_name])
    remove_container(settings)
    time.sleep(settings.recovery_pause_seconds)

    report_port_owner(
        settings.app_port,
        f"Port {settings.app_port} is in use. Resolve this conflict manually before retry.",
    )
    run_cmd(["systemctl", "daemon-reload"])


def print_manual_checklist(config: SetupConfig, settings: Settings) -> None:
    console.info("Manual commands to try:")
    print(f"  1. Check configuration: cat {settings.env_file}")
    print(f"  2. Test Docker manually: docker run --rm -v {settings.data_dir}:/data "
          f"{image_reference(settings, config)}")
    print(f"  3. Check systemd status: systemctl status {settings.service_name}")
    print(f"  4. View full logs: journalctl -u {settings.service_name} -n 100")


def start_with_recovery(config: SetupConfig, settings: Settings) -> None:
    console.step("Starting Vaultwarden service...")
    if _start_and_settle(settings):
        console.success("Vaultwarden service started successfully")
        return

    console.warn("First start attempt failed, diagnosing issue...")
    diagnose(settings)
    _recover(settings)

    console.info("Retrying service start...")
    if _start_and_settle(settings):
        console.success("Vaultwarden service started successfully after recovery")
        return

    console.error("Failed to start Vaultwarden service after recovery attempt")
    print("")
    console.info("Final diagnostic information:")
    diagnose(settings)
    print_manual_checklist(config, settings)
    raise ServiceStartError(f"{settings.service_name} is not active after one recovery attempt")
