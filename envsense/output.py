"""Output stream and colour resolution for the envsense CLI."""

from __future__ import annotations

import os
import sys

from rich.console import Console


def is_tty() -> bool:
    """Return True if stdout is an interactive terminal.

    This wrapper exists to make TTY behavior testable.
    """

    try:
        return bool(sys.stdout.isatty())
    except Exception:
        return False


def resolve_no_color(no_color_flag: bool = False) -> bool:
    """Return True if color/markup should be disabled."""

    if no_color_flag:
        return True
    return bool(os.getenv("NO_COLOR"))


def json_is_pretty() -> bool:
    """Pretty-print report JSON when a human is watching stdout."""

    return is_tty()


def stdout_console(no_color: bool) -> Console:
    return Console(
        no_color=no_color,
        color_system=None if no_color else "auto",
        highlight=False,
        soft_wrap=True,
    )


def stderr_console(no_color: bool = False) -> Console:
    return Console(
        stderr=True,
        no_color=no_color,
        color_system=None if no_color else "auto",
        highlight=False,
        soft_wrap=True,
    )
