"""Diagnostic output. Stdout belongs to the JSON payload, so this goes to stderr."""

import os

from rich.console import Console

console = Console(stderr=True, highlight=False)


def _verbose() -> bool:
    return os.getenv("MOON_VERBOSE", "") not in ("", "0", "false")


def log(component: str, message: str, style: str = "dim"):
    """Verbose-only progress line, e.g. ``[Scanner] analyzing 12 mints``."""
    if _verbose():
        console.print(f"[{style}]\\[{component}] {message}[/{style}]")


def warn(component: str, message: str):
    """Always shown. For absorbed failures worth knowing about."""
    console.print(f"[yellow]\\[{component}] {message}[/yellow]")
