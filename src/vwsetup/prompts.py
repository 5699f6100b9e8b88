"""Interactive prompt helpers. All operator input goes through these."""

from __future__ import annotations

import getpass
from pathlib import Path
from typing import Callable, Iterable, Optional

from . import console


def ask(question: str, default: Optional[str] = None) -> str:
    prompt = f"{question} [{default}]: " if default else f"{question}: "
    answer = input(prompt).strip()
    if not answer and default is not None:
        return default
    return answer


def ask_secret(question: str) -> str:
    return getpass.getpass(f"{question}: ")


def ask_yes_no(question: str, default_yes: bool = True) -> bool:
    default = "Y/n" if default_yes else "y/N"
    while True:
        ans = input(f"{question} [{default}]: ").strip().lower()
        if not ans:
            return default_yes
        if ans in {"y", "yes"}:
            return True
        if ans in {"n", "no"}:
            return False
        console.error("Please answer y or n")


def ask_until_valid(
    question: str,
    is_valid: Callable[[str], bool],
    error_message: str,
    default: Optional[str] = None,
) -> str:
    """Re-prompt until is_valid accepts the answer."""
    while True:
        answer = ask(question, default)
        if is_valid(answer):
            return answer
        console.error(error_message)


def ask_required(question: str, error_message: str, default: Optional[str] = None) -> str:
    return ask_until_valid(question, lambda value: bool(value), error_message, default)


def ask_choice(title: str, options: Iterable[tuple[str, str]], question: str) -> str:
    """Print numbered options and return the selected key."""
    options = list(options)
    print("")
    print(f"{title}:")
    for key, label in options:
        print(f"  {key}) {label}")
    keys = {key for key, _ in options}
    return ask_until_valid(question, lambda value: value in keys, "Invalid selection")


def ask_existing_file(question: str, description: str, default: Optional[str] = None) -> Path:
    """Ask for a path and keep asking until it names an existing file."""
    path = Path(ask(question, default))
    while not path.is_file():
        console.error(f"{description} not found: {path}")
        path = Path(ask(f"Insert a valid path for {description}"))
    return path
