"""Input validators used by the prompt stage."""

from __future__ import annotations

import re
from typing import Optional

DOMAIN_PATTERN = re.compile(r'^([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[A-Za-z]{2,}$')
EMAIL_PATTERN = re.compile(r'^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$')
PORT_PATTERN = re.compile(r'^[0-9]{1,5}$')


def is_valid_domain(domain: str) -> bool:
    return bool(domain) and DOMAIN_PATTERN.match(domain) is not None


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def parse_port(value: str) -> Optional[int]:
    """Return the port as int if value is an integer in [1, 65535], else None."""
    value = (value or "").strip()
    if not PORT_PATTERN.match(value):
        return None
    port = int(value)
    if 1 <= port <= 65535:
        return port
    return None


def is_valid_port(value: str) -> bool:
    return parse_port(value) is not None


def is_valid_base_domain(value: str) -> bool:
    return bool(value) and "." in value
