#!/usr/bin/env python3
"""Jinja2 rendering of the generated artifacts (templates/ inside the package)."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from .errors import ConfigurationError

logger = logging.getLogger('vwsetup')

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    trim_blocks=True,
    lstrip_blocks=True,
    autoescape=False,
)


def render_template(name: str, **context) -> str:
    """
    Render templates/<name> with the given context.
    """
    logger.debug(f"Rendering template: {name}")
    try:
        template = _environment.get_template(name)
        rendered = template.render(**context)
    except TemplateError as e:
        logger.error(f"Failed to render template {name}: {e}")
        raise ConfigurationError(f"Failed to render template {name}: {e}") from e
    logger.debug(f"  Rendered output size: {len(rendered)} bytes")
    return rendered


def write_file(path: Path, content: str, mode: int = 0o644) -> None:
    """Write content and set mode; secret files never exist with wider permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(content)
    path.chmod(mode)
