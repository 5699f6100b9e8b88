"""Error taxonomy for a provisioning run.

Every stage raises one of these; only ``cli.main`` converts them into an exit
status. Soft warnings are printed and never raised.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class SetupError(RuntimeError):
    """Base class for fatal provisioning failures."""


class PreconditionError(SetupError):
    """Host is not suitable (not root, unsupported OS, no systemd, offline)."""


class ConfigurationError(SetupError):
    """Settings file or collected input is unusable."""


class CertificateValidationError(SetupError):
    def __init__(self, check: str, message: str, path: Optional[Path] = None):
        self.check = check
        self.path = path
        super().__init__(message)


class ExternalToolError(SetupError):
    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = "", action: Optional[str] = None):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        text = action or f"Command failed: {' '.join(self.cmd)}"
        message = f"{text} (exit code {returncode})"
        detail = (stderr or "").strip()
        if detail:
            message = f"{message}: {detail.splitlines()[-1]}"
        super().__init__(message)


class ServiceStartError(SetupError):
    """Managed service stayed inactive after the single recovery attempt."""
