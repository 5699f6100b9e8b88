#!/usr/bin/env python3
"""
Interactive collection of the configuration record.

A straight sequence of validated prompts; each one re-asks until its answer
passes validation. Mode-specific certificate files are checked here as well so
a bad path fails before anything on the host is changed.
"""

from __future__ import annotations

import base64
import secrets
from pathlib import Path

from . import certs, console, prompts
from .config_constants import DEFAULT_HTTPS_PORT, DEFAULT_SMTP_PORT
from .models import (
    CertificatePlan,
    CertMode,
    DatabaseBackend,
    DatabaseSettings,
    SetupConfig,
    SmtpSettings,
    derive_base_domain,
)
from .settings import Settings
from .validation import (
    is_valid_base_domain,
    is_valid_domain,
    is_valid_email,
    is_valid_port,
    parse_port,
)


def generate_admin_token() -> str:
    """48 random bytes, base64 encoded."""
    return base64.b64encode(secrets.token_bytes(48)).decode('ascii')


def _wildcard_defaults(settings: Settings, base_domain: str) -> dict[str, Path]:
    cert_dir = settings.manual_cert_dir
    return {
        'key': cert_dir / f"{base_domain}.key",
        'csr': cert_dir / f"{base_domain}.csr",
        'signed': cert_dir / f"{base_domain}.signed.fullchain.pem",
        'fullchain': cert_dir / f"{base_domain}.fullchain.pem",
    }


def _ask_base_domain(question: str, default: str = "") -> str:
    return prompts.ask_until_valid(
        question,
        is_valid_base_domain,
        "Invalid wildcard base domain",
        default or None,
    )


def _collect_letsencrypt() -> CertificatePlan:
    email = prompts.ask_until_valid(
        "Enter your email for Let's Encrypt",
        is_valid_email,
        "Invalid email format",
    )
    return CertificatePlan(mode=CertMode.LETSENCRYPT, email=email)


def _collect_wildcard(settings: Settings, domain: str) -> CertificatePlan:
    derived = derive_base_domain(domain)
    if derived and derived != domain and is_valid_base_domain(derived):
        base_domain = _ask_base_domain("Wildcard base domain", derived)
    else:
        base_domain = _ask_base_domain("Enter wildcard base domain (e.g., example.com)")

    organization = prompts.ask_required(
        "Organization (O) for wildcard CSR",
        "Organization (O) cannot be empty",
    )

    defaults = _wildcard_defaults(settings, base_domain)
    key_path = Path(prompts.ask("Path for wildcard private key", str(defaults['key'])))
    csr_path = Path(prompts.ask("Path for wildcard CSR", str(defaults['csr'])))
    signed_path = Path(prompts.ask(
        "Path where you will place signed wildcard fullchain", str(defaults['signed'])
    ))
    fullchain_path = Path(prompts.ask(
        "Path for final wildcard fullchain used by nginx", str(defaults['fullchain'])
    ))
    certs.validate_output_path_writable(fullchain_path)

    return CertificatePlan(
        mode=CertMode.WILDCARD,
        base_domain=base_domain,
        organization=organization,
        key_path=key_path,
        csr_path=csr_path,
        signed_cert_path=signed_path,
        fullchain_path=fullchain_path,
    )


def _collect_existing(domain: str) -> CertificatePlan:
    cert_path = prompts.ask_existing_file("Path to existing fullchain certificate", "certificate file")
    certs.validate_certificate_file(cert_path)
    certs.validate_certificate_covers_domain(cert_path, domain)

    key_path = prompts.ask_existing_file("Path to existing private key", "private key")
    certs.validate_private_key_file(key_path)
    certs.validate_key_matches_certificate(key_path, cert_path)

    return CertificatePlan(
        mode=CertMode.EXISTING,
        existing_cert_path=cert_path,
        existing_key_path=key_path,
    )


def _collect_wildcard_resume(settings: Settings) -> CertificatePlan:
    base_domain = _ask_base_domain("Enter wildcard base domain used before (e.g., example.com)")
    defaults = _wildcard_defaults(settings, base_domain)

    for kind, description in (('key', "wildcard private key"), ('csr', "wildcard CSR")):
        if defaults[kind].is_file():
            console.success(f"Found existing {description}: {defaults[kind]}")
        else:
            console.warn(f"{description.capitalize()} not found at default path: {defaults[kind]}")

    key_path = prompts.ask_existing_file(
        "Path to existing wildcard private key", "wildcard private key", str(defaults['key'])
    )
    certs.validate_private_key_file(key_path)

    csr_path = prompts.ask_existing_file(
        "Path to existing wildcard CSR", "wildcard CSR", str(defaults['csr'])
    )
    certs.validate_csr_file(csr_path)
    organization = certs.validate_csr_organization(csr_path)

    signed_path = Path(prompts.ask(
        "Path where signed wildcard fullchain is/will be available", str(defaults['signed'])
    ))
    fullchain_path = Path(prompts.ask(
        "Path for final wildcard fullchain used by nginx", str(defaults['fullchain'])
    ))
    certs.validate_output_path_writable(fullchain_path)

    return CertificatePlan(
        mode=CertMode.WILDCARD_RESUME,
        base_domain=base_domain,
        organization=organization,
        key_path=key_path,
        csr_path=csr_path,
        signed_cert_path=signed_path,
        fullchain_path=fullchain_path,
    )


def collect_certificate_plan(settings: Settings, domain: str) -> CertificatePlan:
    mode = CertMode(prompts.ask_choice(
        "Certificate Type",
        [(m.value, m.label) for m in CertMode],
        "Select certificate type [1-4]",
    ))
    if mode is CertMode.LETSENCRYPT:
        return _collect_letsencrypt()
    if mode is CertMode.WILDCARD:
        return _collect_wildcard(settings, domain)
    if mode is CertMode.EXISTING:
        return _collect_existing(domain)
    return _collect_wildcard_resume(settings)


def _ask_port(question: str, default: str) -> int:
    value = prompts.ask_until_valid(question, is_valid_port, "Invalid port (expected 1-65535)", default)
    return parse_port(value)


def collect_database() -> DatabaseSettings:
    backend = DatabaseBackend(prompts.ask_choice(
        "Database Type",
        [(b.value, b.label) for b in DatabaseBackend],
        "Select database type [1-3]",
    ))
    if not backend.is_external:
        return DatabaseSettings(backend=backend)

    host = prompts.ask_required("Enter database host", "Database host is required")
    port = _ask_port("Enter database port", "5432" if backend is DatabaseBackend.POSTGRESQL else "3306")
    name = prompts.ask_required("Enter database name", "Database name is required")
    user = prompts.ask_required("Enter database user", "Database user is required")
    password = prompts.ask_secret("Enter database password")
    return DatabaseSettings(backend=backend, host=host, port=port, name=name, user=user, password=password)


def collect_admin_token() -> str:
    if prompts.ask_yes_no("Generate random admin token?", default_yes=True):
        return generate_admin_token()
    while True:
        token = prompts.ask_secret("Enter custom admin token")
        if token:
            return token
        console.error("Admin token cannot be empty")


def collect_smtp():
    if not prompts.ask_yes_no("Configure SMTP for email notifications?", default_yes=True):
        return None
    host = prompts.ask("SMTP Host")
    port = _ask_port("SMTP Port", str(DEFAULT_SMTP_PORT))
    username = prompts.ask("SMTP Username")
    password = prompts.ask_secret("SMTP Password")
    from_address = prompts.ask("SMTP From Address")

    smtp = SmtpSettings.from_answers(host, port, username, password, from_address)
    if smtp is None:
        console.warn("SMTP_HOST and SMTP_FROM are required for email support")
        console.info("Disabling SMTP configuration...")
    return smtp


def collect_configuration(settings: Settings) -> SetupConfig:
    """Ask every question once and return the frozen configuration record."""
    console.header("Vaultwarden Configuration")
    print("Please provide the following information:\n")

    domain = prompts.ask_until_valid(
        "Enter your domain (e.g., vault.example.com)",
        is_valid_domain,
        "Invalid domain format",
    )
    certificate = collect_certificate_plan(settings, domain)

    print("")
    external_port = _ask_port("External HTTPS port exposed to users", str(DEFAULT_HTTPS_PORT))
    internal_port = _ask_port("Internal HTTPS port on this server", str(DEFAULT_HTTPS_PORT))

    print("")
    image_version = prompts.ask("Enter Vaultwarden version (or press Enter for latest)", "latest")

    database = collect_database()

    print("")
    admin_token = collect_admin_token()

    print("")
    smtp = collect_smtp()

    print("")
    install_dashboard = prompts.ask_yes_no("Install custom Vaultwarden MOTD dashboard?", default_yes=True)

    config = SetupConfig(
        domain=domain,
        certificate=certificate,
        external_port=external_port,
        internal_port=internal_port,
        image_version=image_version,
        database=database,
        admin_token=admin_token,
        smtp=smtp,
        install_dashboard=install_dashboard,
    )
    print("")
    console.success("Configuration collected")
    console.info("Access URL", url=config.access_url)
    return config
