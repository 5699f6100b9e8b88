#!/usr/bin/env python3
"""
Console output and persistent run log.

Console lines are colored and tagged; the same messages are written through the
``vwsetup`` logger to the log file so a failed run can be inspected without
reproducing it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

# Color codes for output
BLUE = '\033[94m'
CYAN = '\033[96m'
GREEN = '\033[92m'
YELLOW = '\033[93m'
RED = '\033[91m'
PURPLE = '\033[95m'
BOLD = '\033[1m'
RESET = '\033[0m'

SUCCESS = 25
logging.addLevelName(SUCCESS, 'SUCCESS')

logger = logging.getLogger('vwsetup')


def configure_logging(log_file: Optional[Path], log_level: str = "INFO") -> None:
    """
    Attach the persistent log file to the ``vwsetup`` logger.
    """
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR
    }
    level = level_map.get(log_level.upper(), logging.INFO)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(level)
    logger.propagate = False

    if log_file is None:
        logger.addHandler(logging.NullHandler())
        return

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding='utf-8')
    except OSError as e:
        logger.addHandler(logging.NullHandler())
        print(f"{YELLOW}[WARN]{RESET} Cannot open log file {log_file}: {e} (console only)", flush=True)
        return

    handler.setFormatter(logging.Formatter(
        '[%(asctime)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(handler)


def header(title: str) -> None:
    print(f"{PURPLE}{BOLD}", flush=True)
    print("═" * 67)
    print(f"      {title}")
    print("═" * 67)
    print(RESET, flush=True)


def step(msg: str) -> None:
    print(f"{CYAN}{BOLD}[STEP]{RESET} {msg}", flush=True)
    logger.info(msg)


def info(msg: str, **context) -> None:
    print(f"{BLUE}[INFO]{RESET} {msg}", flush=True)
    for key, value in context.items():
        print(f"  {key}: {value}", flush=True)
    logger.info(msg if not context else f"{msg} {context}")


def success(msg: str) -> None:
    print(f"{GREEN}[SUCCESS]{RESET} {msg}", flush=True)
    logger.log(SUCCESS, msg)


def warn(msg: str, **context) -> None:
    print(f"{YELLOW}[WARN]{RESET} {msg}", flush=True)
    for key, value in context.items():
        print(f"  {key}: {value}", flush=True)
    logger.warning(msg if not context else f"{msg} {context}")


def error(msg: str) -> None:
    """Print an error line. Callers decide whether the run ends."""
    print(f"{RED}[ERROR]{RESET} {msg}", flush=True)
    logger.error(msg)


def debug(msg: str) -> None:
    """Only written to the log (DEBUG level)."""
    logger.debug(msg)


def raw(text: str) -> None:
    """Print unformatted diagnostic output and keep a copy in the log."""
    print(text, flush=True)
    if text.strip():
        logger.info(text.rstrip())
