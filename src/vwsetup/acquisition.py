#!/usr/bin/env python3
"""
Certificate acquisition.

One of four flows runs per deployment, selected by CertificatePlan.mode:

1. LETSENCRYPT      reuse an existing ACME certificate or issue one (standalone)
2. WILDCARD         generate key (if missing) + CSR, wait for the signed cert
3. EXISTING         import an operator-supplied cert/key pair
4. WILDCARD_RESUME  reuse a previously generated key/CSR, wait for the signed cert

Every flow ends with the same checks: format, key/certificate correspondence
and domain coverage. Any failure raises and aborts the run.
"""

from __future__ import annotations

import os
import shutil
import time
from pathlib import Path
from typing import Optional

from . import certs, console
from .errors import ConfigurationError, ExternalToolError
from .models import CertificatePlan, CertMode, ResolvedCertificate, SetupConfig
from .runner import run_cmd
from .settings import Settings


def wait_for_existing_file(
    path: Path,
    description: str,
    reprompt: str,
    poll_interval: float = 0.0,
) -> Path:
    """
    Block until path exists. The operator can press ENTER to re-check or type
    a different path. A positive poll_interval pauses before each re-check.
    """
    while not path.is_file():
        console.warn(f"{description} not found: {path}")
        answer = input(reprompt).strip()
        if answer:
            path = Path(answer)
            continue
        if poll_interval > 0:
            console.info(f"Re-checking in {poll_interval:g}s...")
            time.sleep(poll_interval)
    return path


def _copy_restricted(source: Path, target: Path) -> None:
    """Copy key material; the target is created 0600 and never readable by others."""
    if source.resolve() == target.resolve():
        target.chmod(0o600)
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    os.fchmod(fd, 0o600)
    with os.fdopen(fd, "wb") as dst, source.open("rb") as src:
        shutil.copyfileobj(src, dst)


def acquire_letsencrypt(config: SetupConfig, settings: Settings) -> ResolvedCertificate:
    domain = config.domain
    live_dir = settings.letsencrypt_live_dir / domain
    cert_path = live_dir / "fullchain.pem"
    key_path = live_dir / "privkey.pem"

    console.info(f"Requesting classic SSL certificate for {domain}...")

    # standalone challenge needs port 80
    run_cmd(["systemctl", "stop", "nginx"])

    if cert_path.is_file() and key_path.is_file():
        console.info(f"Existing Let's Encrypt certificate found for {domain}, reusing it.")
        certs.validate_pair(cert_path, key_path, domain)
        console.success("SSL certificates ready")
        return ResolvedCertificate(cert_path=cert_path, key_path=key_path)

    result = run_cmd([
        "certbot", "certonly", "--standalone",
        "--non-interactive",
        "--agree-tos",
        "--email", config.certificate.email,
        "-d", domain,
    ])
    if not result.ok:
        raise ExternalToolError(result.cmd, result.returncode, result.stderr,
                                action=f"Certificate issuance failed for {domain}")

    certs.validate_pair(cert_path, key_path, domain)
    console.success("SSL certificates obtained successfully")
    return ResolvedCertificate(cert_path=cert_path, key_path=key_path)


def prepare_wildcard_request(plan: CertificatePlan) -> None:
    """Generate the key when missing and always (re)issue the CSR."""
    key_path, csr_path = plan.key_path, plan.csr_path
    if key_path.is_file():
        console.info(f"Private key already exists: {key_path}")
    else:
        console.info(f"Generating private key: {key_path}")
        certs.generate_private_key(key_path)

    console.info(f"Generating CSR for {plan.wildcard_pattern} and {plan.base_domain}...")
    certs.generate_wildcard_csr(key_path, csr_path, plan.base_domain, plan.organization)

    certs.validate_private_key_file(key_path)
    certs.validate_csr_file(csr_path)
    certs.validate_csr_organization(csr_path)

    print("")
    console.info(f"Private key generated: {key_path}")
    console.info(f"CSR generated: {csr_path}")
    console.info("Upload this CSR to your certificate provider.")
    console.info("Then place the signed fullchain at the configured path and confirm.")
    print("")


def verify_resume_request(plan: CertificatePlan) -> None:
    certs.validate_private_key_file(plan.key_path)
    certs.validate_csr_file(plan.csr_path)
    certs.validate_csr_organization(plan.csr_path)
    console.info("Resuming wildcard flow with existing key/CSR:")
    console.info(f"Private key: {plan.key_path}")
    console.info(f"CSR: {plan.csr_path}")


def import_signed_wildcard(config: SetupConfig, settings: Settings) -> ResolvedCertificate:
    """Shared tail of the wildcard flows: wait, validate, copy into place."""
    plan = config.certificate
    console.info(f"Place the signed wildcard fullchain at: {plan.signed_cert_path}")
    signed_path = wait_for_existing_file(
        plan.signed_cert_path,
        "signed certificate/fullchain",
        settings.reprompt,
        settings.poll_interval,
    )

    certs.validate_certificate_file(signed_path)
    certs.validate_key_matches_certificate(plan.key_path, signed_path)
    certs.validate_certificate_covers_domain(signed_path, config.domain)
    certs.validate_certificate_covers_domain(signed_path, plan.wildcard_pattern)

    fullchain_path = plan.fullchain_path
    console.info(f"Using wildcard fullchain output path: {fullchain_path}")
    certs.validate_output_path_writable(fullchain_path)
    if signed_path.resolve() == fullchain_path.resolve():
        console.info("Signed fullchain already in final output path.")
    _copy_restricted(signed_path, fullchain_path)

    console.success("Manual wildcard certificate imported successfully")
    return ResolvedCertificate(cert_path=fullchain_path, key_path=plan.key_path)


def acquire_wildcard(config: SetupConfig, settings: Settings) -> ResolvedCertificate:
    prepare_wildcard_request(config.certificate)
    return import_signed_wildcard(config, settings)


def acquire_wildcard_resume(config: SetupConfig, settings: Settings) -> ResolvedCertificate:
    verify_resume_request(config.certificate)
    return import_signed_wildcard(config, settings)


def acquire_existing(config: SetupConfig, settings: Settings) -> ResolvedCertificate:
    plan = config.certificate
    source_cert, source_key = plan.existing_cert_path, plan.existing_key_path
    certs.validate_pair(source_cert, source_key, config.domain)

    settings.manual_cert_dir.mkdir(parents=True, exist_ok=True)
    cert_path = settings.manual_cert_dir / source_cert.name
    key_path = settings.manual_cert_dir / source_key.name
    if cert_path == key_path:
        raise ConfigurationError(
            f"Certificate and key share the file name {source_cert.name}; rename one of them"
        )
    _copy_restricted(source_cert, cert_path)
    _copy_restricted(source_key, key_path)

    console.success("Existing certificate and key imported successfully")
    return ResolvedCertificate(cert_path=cert_path, key_path=key_path)


FLOWS = {
    CertMode.LETSENCRYPT: acquire_letsencrypt,
    CertMode.WILDCARD: acquire_wildcard,
    CertMode.EXISTING: acquire_existing,
    CertMode.WILDCARD_RESUME: acquire_wildcard_resume,
}


def acquire_certificate(config: SetupConfig, settings: Settings) -> ResolvedCertificate:
    console.step("Setting up SSL certificates...")
    plan = config.certificate
    missing = _missing_fields(plan)
    if missing:
        raise ConfigurationError(
            f"Certificate mode {plan.mode.name} is missing required fields: {', '.join(missing)}"
        )
    if plan.mode in (CertMode.WILDCARD, CertMode.WILDCARD_RESUME):
        settings.manual_cert_dir.mkdir(parents=True, exist_ok=True)
    return FLOWS[plan.mode](config, settings)


REQUIRED_FIELDS = {
    CertMode.LETSENCRYPT: ('email',),
    CertMode.WILDCARD: ('base_domain', 'organization', 'key_path', 'csr_path', 'signed_cert_path', 'fullchain_path'),
    CertMode.EXISTING: ('existing_cert_path', 'existing_key_path'),
    CertMode.WILDCARD_RESUME: ('base_domain', 'key_path', 'csr_path', 'signed_cert_path', 'fullchain_path'),
}


def _missing_fields(plan: CertificatePlan) -> list[str]:
    missing: list[str] = []
    for name in REQUIRED_FIELDS[plan.mode]:
        value: Optional[object] = getattr(plan, name)
        if value in (None, ""):
            missing.append(name)
    return missing
