#!/usr/bin/env python3
"""Uniform wrapper around external command invocation."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from . import console
from .errors import ExternalToolError


@dataclass(frozen=True)
class CommandResult:
    cmd: tuple
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, for diagnostics."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def run_cmd(
    cmd: Sequence[str],
    *,
    check: bool = False,
    input_text: Optional[str] = None,
    timeout: Optional[float] = None,
    action: Optional[str] = None,
) -> CommandResult:
    """
    Run a command, capture its output and return a CommandResult.

    A missing executable is reported as exit code 127 rather than raised.
    With check=True a non-zero exit raises ExternalToolError.
    """
    cmd = [str(part) for part in cmd]
    console.debug(f"Running: {' '.join(cmd)}")
    try:
        proc = subprocess.run(
            cmd,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout
        )
        result = CommandResult(
            cmd=tuple(cmd),
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
    except FileNotFoundError:
        result = CommandResult(cmd=tuple(cmd), returncode=127, stderr=f"{cmd[0]}: command not found")
    except subprocess.TimeoutExpired:
        result = CommandResult(cmd=tuple(cmd), returncode=124, stderr=f"timed out after {timeout}s")

    if result.output:
        console.debug(f"  exit={result.returncode}\n{result.output}")
    else:
        console.debug(f"  exit={result.returncode}")

    if check and not result.ok:
        raise ExternalToolError(cmd, result.returncode, result.stderr, action=action)
    return result


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None
