#!/usr/bin/env python3
"""
Certificate, key and CSR checks plus wildcard key/CSR generation.

Each validate_* function is a pure check: it returns the parsed object on
success and raises CertificateValidationError naming the failed check and the
offending path otherwise.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import List

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtensionOID, NameOID

from .errors import CertificateValidationError

CHECK_KEY_FORMAT = 'private-key-format'
CHECK_CSR_FORMAT = 'csr-format'
CHECK_CSR_ORGANIZATION = 'csr-organization'
CHECK_CERT_FORMAT = 'certificate-format'
CHECK_KEY_MATCH = 'key-certificate-match'
CHECK_DOMAIN_COVERAGE = 'domain-coverage'
CHECK_OUTPUT_PATH = 'output-path'


def _read_bytes(path: Path, check: str, description: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise CertificateValidationError(check, f"Cannot read {description} {path}: {e}", path) from e


def load_private_key(path: Path):
    data = _read_bytes(path, CHECK_KEY_FORMAT, "private key")
    try:
        return serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as e:
        raise CertificateValidationError(CHECK_KEY_FORMAT, f"Invalid private key file: {path}", path) from e


def load_csr(path: Path) -> x509.CertificateSigningRequest:
    data = _read_bytes(path, CHECK_CSR_FORMAT, "CSR")
    try:
        return x509.load_pem_x509_csr(data)
    except ValueError as e:
        raise CertificateValidationError(CHECK_CSR_FORMAT, f"Invalid CSR file: {path}", path) from e


def load_certificate(path: Path) -> x509.Certificate:
    """Load the first (leaf) certificate of a PEM file or fullchain."""
    data = _read_bytes(path, CHECK_CERT_FORMAT, "certificate")
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise CertificateValidationError(CHECK_CERT_FORMAT, f"Invalid certificate file: {path}", path) from e


# Aliases used by the acquisition flows; the loaders double as format checks.
validate_private_key_file = load_private_key
validate_csr_file = load_csr
validate_certificate_file = load_certificate


def validate_csr_organization(path: Path) -> str:
    csr = load_csr(path)
    orgs = csr.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)
    if not orgs or not str(orgs[0].value).strip():
        raise CertificateValidationError(
            CHECK_CSR_ORGANIZATION, f"CSR missing Organization (O) field: {path}", path
        )
    return str(orgs[0].value)


def public_key_digest(public_key) -> str:
    """SHA-256 over the DER SubjectPublicKeyInfo."""
    der = public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).hexdigest()


def validate_key_matches_certificate(key_path: Path, cert_path: Path) -> None:
    key = load_private_key(key_path)
    cert = load_certificate(cert_path)
    if public_key_digest(key.public_key()) != public_key_digest(cert.public_key()):
        raise CertificateValidationError(
            CHECK_KEY_MATCH,
            f"Private key does not match certificate: key={key_path} cert={cert_path}",
            cert_path,
        )


def certificate_covers(pattern: str, domain: str) -> bool:
    """
    Match one certificate name against a domain.

    ``*.X`` covers exactly one extra label in front of ``X`` (``a.X`` but
    neither ``X`` nor ``a.b.X``); any other pattern only covers the identical
    name (case-insensitive).
    """
    pattern = pattern.strip().lower().rstrip('.')
    domain = domain.strip().lower().rstrip('.')
    if not pattern or not domain:
        return False
    if pattern.startswith('*.'):
        suffix = pattern[2:]
        if not domain.endswith('.' + suffix):
            return False
        label = domain[:-len(suffix) - 1]
        return bool(label) and '.' not in label
    return domain == pattern


def certificate_names(cert: x509.Certificate) -> List[str]:
    """DNS names from the SAN extension, or the subject CN when there is none."""
    try:
        san = cert.extensions.get_extension_for_oid(ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
        names = san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        names = []
    if names:
        return list(names)
    return [str(attr.value) for attr in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]


def validate_certificate_covers_domain(cert_path: Path, domain: str) -> None:
    cert = load_certificate(cert_path)
    names = certificate_names(cert)
    if not any(certificate_covers(name, domain) for name in names):
        raise CertificateValidationError(
            CHECK_DOMAIN_COVERAGE,
            f"Certificate does not cover domain '{domain}': {cert_path} (names: {', '.join(names) or 'none'})",
            cert_path,
        )


def validate_output_path_writable(out_path: Path) -> None:
    out_path = Path(out_path)
    out_dir = out_path.parent
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CertificateValidationError(
            CHECK_OUTPUT_PATH, f"Cannot create output directory {out_dir}: {e}", out_path
        ) from e
    if out_path.is_dir():
        raise CertificateValidationError(
            CHECK_OUTPUT_PATH, f"Output path is a directory, expected file path: {out_path}", out_path
        )
    if not os.access(out_dir, os.W_OK):
        raise CertificateValidationError(
            CHECK_OUTPUT_PATH, f"Output directory is not writable: {out_dir}", out_path
        )


def validate_pair(cert_path: Path, key_path: Path, domain: str) -> None:
    """Run format, correspondence and coverage checks for a cert/key pair."""
    validate_certificate_file(cert_path)
    validate_private_key_file(key_path)
    validate_key_matches_certificate(key_path, cert_path)
    validate_certificate_covers_domain(cert_path, domain)


def generate_private_key(key_path: Path, key_size: int = 4096) -> None:
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )
    key_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'wb') as f:
        f.write(key_pem)
    key_path.chmod(0o600)


def generate_wildcard_csr(key_path: Path, csr_path: Path, base_domain: str, organization: str) -> None:
    """Write a CSR for ``*.base`` with SANs base and ``*.base``."""
    key = load_private_key(key_path)
    wildcard = f"*.{base_domain}"
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization.replace('/', '-')),
            x509.NameAttribute(NameOID.COMMON_NAME, wildcard),
        ]))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(base_domain), x509.DNSName(wildcard)]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    csr_path.parent.mkdir(parents=True, exist_ok=True)
    csr_path.write_bytes(csr.public_bytes(serialization.Encoding.PEM))
