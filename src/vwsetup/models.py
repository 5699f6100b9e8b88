#!/usr/bin/env python3
"""
Configuration record for one provisioning run.

Built once by the input stage and consumed read-only by every later stage.
The certificate stage does not modify it; it returns a ResolvedCertificate.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from .config_constants import DEFAULT_HTTPS_PORT, DEFAULT_SMTP_PORT


class CertMode(str, Enum):
    LETSENCRYPT = "1"
    WILDCARD = "2"
    EXISTING = "3"
    WILDCARD_RESUME = "4"

    @property
    def label(self) -> str:
        return {
            CertMode.LETSENCRYPT: "Let's Encrypt (single domain, automatic)",
            CertMode.WILDCARD: "Wildcard manual flow (generate private key + CSR, then import signed cert)",
            CertMode.EXISTING: "Use existing certificate and key paths",
            CertMode.WILDCARD_RESUME: "Resume wildcard flow from existing generated key/CSR",
        }[self]


class DatabaseBackend(str, Enum):
    SQLITE = "1"
    POSTGRESQL = "2"
    MYSQL = "3"

    @property
    def label(self) -> str:
        return {
            DatabaseBackend.SQLITE: "SQLite (default, recommended for small deployments)",
            DatabaseBackend.POSTGRESQL: "PostgreSQL (recommended for production)",
            DatabaseBackend.MYSQL: "MySQL/MariaDB",
        }[self]

    @property
    def is_external(self) -> bool:
        return self is not DatabaseBackend.SQLITE


@dataclass(frozen=True)
class DatabaseSettings:
    backend: DatabaseBackend = DatabaseBackend.SQLITE
    host: str = ""
    port: Optional[int] = None
    name: str = ""
    user: str = ""
    password: str = ""

    def url(self, data_dir: Path) -> str:
        if self.backend is DatabaseBackend.SQLITE:
            return str(data_dir / "db.sqlite3")
        scheme = "postgresql" if self.backend is DatabaseBackend.POSTGRESQL else "mysql"
        credentials = quote(self.user, safe="")
        if self.password:
            credentials = f"{credentials}:{quote(self.password, safe='')}"
        return f"{scheme}://{credentials}@{self.host}:{self.port}/{self.name}"


@dataclass(frozen=True)
class SmtpSettings:
    host: str
    from_address: str
    port: int = DEFAULT_SMTP_PORT
    username: str = ""
    password: str = ""

    @classmethod
    def from_answers(cls, host: str, port: int, username: str, password: str, from_address: str) -> Optional["SmtpSettings"]:
        """Return settings only when host and from-address are both present."""
        if not host or not from_address:
            return None
        return cls(host=host, from_address=from_address, port=port, username=username, password=password)


@dataclass(frozen=True)
class CertificatePlan:
    """Mode-specific certificate inputs. Unused fields stay empty/None."""
    mode: CertMode
    email: str = ""
    base_domain: str = ""
    organization: str = ""
    key_path: Optional[Path] = None
    csr_path: Optional[Path] = None
    signed_cert_path: Optional[Path] = None
    fullchain_path: Optional[Path] = None
    existing_cert_path: Optional[Path] = None
    existing_key_path: Optional[Path] = None

    @property
    def wildcard_pattern(self) -> str:
        return f"*.{self.base_domain}"


@dataclass(frozen=True)
class ResolvedCertificate:
    """Certificate/key pair the proxy presents."""
    cert_path: Path
    key_path: Path


@dataclass(frozen=True)
class SetupConfig:
    domain: str
    certificate: CertificatePlan
    external_port: int = DEFAULT_HTTPS_PORT
    internal_port: int = DEFAULT_HTTPS_PORT
    image_version: str = "latest"
    database: DatabaseSettings = DatabaseSettings()
    admin_token: str = ""
    smtp: Optional[SmtpSettings] = None
    install_dashboard: bool = True

    @property
    def access_url(self) -> str:
        return build_access_url(self.domain, self.external_port)

    @property
    def smtp_enabled(self) -> bool:
        return self.smtp is not None


def build_access_url(domain: str, external_port: int, scheme: str = "https") -> str:
    if external_port == DEFAULT_HTTPS_PORT:
        return f"{scheme}://{domain}"
    return f"{scheme}://{domain}:{external_port}"


def derive_base_domain(domain: str) -> str:
    """Strip the leftmost label (vault.example.com -> example.com)."""
    _, sep, rest = domain.partition(".")
    if not sep:
        return ""
    return rest
