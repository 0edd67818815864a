"""Quota Watch - monitor Claude Code and Codex subscription usage limits.

This package normalizes the usage endpoints of both vendors into a common
usage-window model, classifies utilization against configurable thresholds,
and notifies on status transitions.
"""

from quota_watch._version import __version__
from quota_watch.cli import create_parser, main, print_version

__all__ = [
    "__version__",
    "create_parser",
    "main",
    "print_version",
]
