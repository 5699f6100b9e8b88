#!/usr/bin/env python3
"""
Provisioning sequence.

Stages run strictly top to bottom; the first failure raises and ends the run.
Only the service start has a built-in retry (see service.start_with_recovery).
"""

from __future__ import annotations

from . import (
    acquisition,
    aliases,
    backup,
    console,
    dashboard,
    inputs,
    materialize,
    proxy,
    service,
    system,
)
from .console import BOLD, CYAN, GREEN, RESET, YELLOW
from .models import SetupConfig
from .settings import Settings

TITLE = "Vaultwarden Installation & Configuration"


def run_setup(settings: Settings) -> SetupConfig:
    console.header(TITLE)
    console.logger.info("=== Vaultwarden Installation Started ===")

    host = system.preflight()
    service.cleanup_existing(settings)

    config = inputs.collect_configuration(settings)

    system.install_dependencies(host)
    system.install_docker(host)
    system.create_directories(settings)

    cert = acquisition.acquire_certificate(config, settings)
    system.validate_database_connection(config.database)

    materialize.write_env_file(config, settings)
    service.pull_image(config, settings)
    materialize.write_service_unit(config, settings)

    proxy.configure_nginx(config, cert, settings)
    system.configure_firewall(host, config.internal_port)

    dashboard.setup_dashboard(config, settings)
    aliases.install_aliases(settings)
    materialize.save_admin_record(config, settings)

    service.start_with_recovery(config, settings)
    backup.setup_backup(settings)

    console.logger.info("=== Vaultwarden Installation Completed ===")
    print_summary(config, settings)
    return config


def run_commands_only(settings: Settings) -> None:
    """Refresh the alias block and the backup schedule of an existing deployment."""
    console.header(TITLE)
    system.check_root()
    aliases.install_aliases(settings)
    backup.setup_backup(settings)
    console.success("Management commands refreshed")
    print(f"  Run {CYAN}source {settings.alias_file}{RESET} to load the aliases.")


def print_summary(config: SetupConfig, settings: Settings) -> None:
    print(f"{GREEN}{BOLD}")
    print("╔══════════════════════════════════════════════════════════════════╗")
    print("║          Installation Completed Successfully!                    ║")
    print("╚══════════════════════════════════════════════════════════════════╝")
    print(RESET)
    print(f"{BOLD}Access Information:{RESET}")
    print(f"  🌐 URL: {config.access_url}")
    print(f"  🔐 Admin Panel: {config.access_url}/admin")
    print(f"  🔑 Admin Token: Saved in {settings.admin_key_file}")
    print(f"  🔌 Port Mapping: external {config.external_port} -> internal {config.internal_port}")
    if config.install_dashboard:
        print(f"  🖥️  MOTD: {settings.motd_script} (enabled)")
    else:
        print("  🖥️  MOTD: default scripts disabled, custom MOTD skipped")
    print("")
    print(f"{YELLOW}{BOLD}⚠ IMPORTANT: Load aliases first!{RESET}")
    print("  Run this command to enable management aliases:")
    print(f"  {CYAN}source {settings.alias_file}{RESET}")
    print("")
    print(f"{BOLD}Useful Commands (after loading aliases):{RESET}")
    for name, description in aliases.ALIAS_NAMES:
        print(f"  {name:<13} - {description}")
    print("")
    print(f"{BOLD}Important Files:{RESET}")
    print(f"  📁 Data Directory: {settings.data_dir}")
    print(f"  ⚙️  Configuration: {settings.env_file}")
    print(f"  📝 Log File: {settings.log_file}")
    print(f"  🔐 Admin Key: {settings.admin_key_file}")
    print("")
    print(f"{YELLOW}{BOLD}Security Recommendations:{RESET}")
    print(f"  1. Delete {settings.admin_key_file} after saving the token")
    print("  2. Enable 2FA for all accounts")
    print("  3. Regularly update Vaultwarden (use vw-update)")
    print("  4. Monitor logs for suspicious activity")
    print("  5. Keep regular backups")
    print("")
    print(f"{CYAN}For support, visit: https://github.com/dani-garcia/vaultwarden{RESET}")
    print("")
