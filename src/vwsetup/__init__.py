"""Vaultwarden host provisioning."""

from __future__ import annotations

import os

RELEASE = "1.0.0"


def _resolve_version() -> str:
    # Packaging pipelines stamp builds through the environment.
    return os.getenv("VWSETUP_BUILD_VERSION") or RELEASE


__version__ = _resolve_version()
