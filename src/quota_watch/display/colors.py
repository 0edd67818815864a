"""ANSI colors for the dashboard.

Colors are switched off once at import when stdout is not a terminal or
``NO_COLOR`` / ``QUOTA_WATCH_NO_COLOR`` is set, and on demand with
``--no-color``. Switching off blanks every code, so callers never branch.
"""

import os
import platform
import sys


class Colors:
    """ANSI escape codes, blanked when color is disabled."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    GRAY = "\033[90m"
    BAR_EMPTY = GRAY


NO_COLOR_ENV_VARS = ("QUOTA_WATCH_NO_COLOR", "NO_COLOR")


def supports_color() -> bool:
    """True when stdout is a color-capable terminal and no opt-out is set."""
    if any(os.environ.get(name) for name in NO_COLOR_ENV_VARS):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    if isatty is None or not isatty():
        return False
    if platform.system() == "Windows":
        # Legacy consoles print escape codes literally
        return bool(os.environ.get("WT_SESSION") or os.environ.get("TERM"))
    return True


def disable_colors() -> None:
    for name in vars(Colors).copy():
        if name.isupper():
            setattr(Colors, name, "")


def init_colors() -> None:
    if not supports_color():
        disable_colors()


init_colors()

__all__ = ["Colors", "supports_color", "disable_colors", "init_colors"]
