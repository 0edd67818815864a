"""Utility functions.

Modules:
    time: Reset time parsing and formatting utilities
"""

from quota_watch.utils.time import (
    calc_elapsed_pct,
    format_absolute_time,
    format_relative_time,
    parse_reset_time,
)

__all__ = [
    "parse_reset_time",
    "format_relative_time",
    "format_absolute_time",
    "calc_elapsed_pct",
]
