"""
Shared fixtures: host paths redirected under tmp_path, an in-process PKI and a
recording stand-in for external commands.
"""

import datetime
import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from vwsetup.runner import CommandResult  # noqa: E402
from vwsetup.settings import Settings  # noqa: E402


@pytest.fixture
def settings(tmp_path) -> Settings:
    root = tmp_path / "host"
    return Settings(
        install_dir=root / "opt/vaultwarden",
        data_dir=root / "var/lib/vaultwarden",
        log_file=root / "var/log/vaultwarden-setup.log",
        admin_key_file=root / "root/vaultwarden-admin-key.txt",
        systemd_unit=root / "etc/systemd/system/vaultwarden.service",
        nginx_site=root / "etc/nginx/sites-available/vaultwarden",
        nginx_enabled_dir=root / "etc/nginx/sites-enabled",
        alias_file=root / "root/.bashrc",
        backup_script=root / "usr/local/bin/vaultwarden-backup.sh",
        backup_dir=root / "root/vaultwarden-backups",
        manual_cert_dir=root / "etc/ssl/vaultwarden",
        letsencrypt_live_dir=root / "etc/letsencrypt/live",
        motd_dir=root / "etc/update-motd.d",
        settle_seconds=0,
        recovery_pause_seconds=0,
    )


class Pki:
    """Writes throwaway keys, CSRs and self-signed certificates."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def key(self, name: str = "server.key"):
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        path = self.root / name
        path.write_bytes(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        ))
        return path, key

    def cert(self, key, names: List[str], name: str = "server.crt",
             common_name: Optional[str] = None, san: bool = True) -> Path:
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name or names[0])])
        now = datetime.datetime.now(datetime.timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(days=1))
            .not_valid_after(now + datetime.timedelta(days=30))
        )
        if san:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName(n) for n in names]),
                critical=False,
            )
        path = self.root / name
        path.write_bytes(builder.sign(key, hashes.SHA256()).public_bytes(serialization.Encoding.PEM))
        return path

    def pair(self, names: List[str], prefix: str = "server"):
        key_path, key = self.key(f"{prefix}.key")
        return self.cert(key, names, f"{prefix}.crt"), key_path

    def csr(self, key, name: str = "request.csr", organization: Optional[str] = None) -> Path:
        attributes = [x509.NameAttribute(NameOID.COMMON_NAME, "*.example.com")]
        if organization is not None:
            attributes.insert(0, x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(x509.Name(attributes))
            .sign(key, hashes.SHA256())
        )
        path = self.root / name
        path.write_bytes(csr.public_bytes(serialization.Encoding.PEM))
        return path


@pytest.fixture
def pki(tmp_path) -> Pki:
    return Pki(tmp_path / "pki")


class FakeCommands:
    """
    Records every command and answers through a responder.

    The responder receives the argv list and returns a CommandResult,
    a return code, or None (success with empty output).
    """

    def __init__(self, responder: Optional[Callable] = None):
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.responder = responder

    def __call__(self, cmd, *, check=False, input_text=None, timeout=None, action=None):
        from vwsetup.errors import ExternalToolError

        cmd = [str(part) for part in cmd]
        self.calls.append(cmd)
        self.inputs.append(input_text)
        answer = self.responder(cmd) if self.responder else None
        if answer is None:
            result = CommandResult(cmd=tuple(cmd), returncode=0)
        elif isinstance(answer, int):
            result = CommandResult(cmd=tuple(cmd), returncode=answer)
        else:
            result = answer
        if check and not result.ok:
            raise ExternalToolError(cmd, result.returncode, result.stderr, action=action)
        return result

    def count(self, *prefix: str) -> int:
        return sum(1 for call in self.calls if call[:len(prefix)] == list(prefix))

    def ran(self, *prefix: str) -> bool:
        return self.count(*prefix) > 0


@pytest.fixture
def fake_commands():
    return FakeCommands
