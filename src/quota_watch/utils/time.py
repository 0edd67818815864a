"""Time parsing and formatting utilities.

Reset times arrive either as epoch seconds or as ISO 8601 strings depending
on the vendor. Functions here never read the clock themselves when a `now`
argument is accepted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

ResetTime = Union[int, float, str, None]


def parse_reset_time(value: ResetTime) -> Optional[datetime]:
    """Parse a reset time to an aware datetime.

    Handles epoch seconds, trailing Z, and fractional seconds.

    Args:
        value: Epoch seconds, ISO 8601 string (e.g., "2024-01-15T10:30:00Z"), or None.

    Returns:
        Timezone-aware datetime, or None if the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None

    iso_str = value.strip().replace("Z", "+00:00")
    if "." in iso_str:
        head, _, tail = iso_str.partition(".")
        # Drop fractional seconds but keep any offset that follows them
        offset_at = max(tail.find("+"), tail.find("-"))
        iso_str = head + (tail[offset_at:] if offset_at >= 0 else "")
    try:
        parsed = datetime.fromisoformat(iso_str)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_relative_time(reset_at: ResetTime, now: Optional[datetime] = None) -> str:
    """Format a reset time as relative duration from now.

    Args:
        reset_at: Epoch seconds or ISO 8601 timestamp string.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        Human-readable string like "2 hr 30 min" or "< 1 min", or "" if unparseable.
    """
    reset_dt = parse_reset_time(reset_at)
    if reset_dt is None:
        return ""
    now = now or datetime.now(timezone.utc)
    total_seconds = max(0, int((reset_dt - now).total_seconds()))

    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60

    if hours > 0:
        return f"{hours} hr {minutes} min"
    elif minutes > 0:
        return f"{minutes} min"
    return "< 1 min"


def format_absolute_time(reset_at: ResetTime) -> str:
    """Format a reset time as local absolute time.

    Args:
        reset_at: Epoch seconds or ISO 8601 timestamp string.

    Returns:
        Local time string like "Mon 9:30 AM", or "" if unparseable.
    """
    reset_dt = parse_reset_time(reset_at)
    if reset_dt is None:
        return ""
    local_dt = reset_dt.astimezone()
    # %-I is not portable, strip the leading zero by hand
    formatted = local_dt.strftime("%a %I:%M %p")
    parts = formatted.split(" ")
    if len(parts) >= 2 and parts[1].startswith("0"):
        parts[1] = parts[1][1:]
    return " ".join(parts)


def calc_elapsed_pct(
    reset_at: ResetTime,
    window_seconds: Optional[float],
    now: datetime,
) -> Optional[float]:
    """Percentage of the window already elapsed, clamped to 0-100.

    Args:
        reset_at: When the window resets.
        window_seconds: Total window length.
        now: Reference time.

    Returns:
        Elapsed percentage, or None if either input is missing.
    """
    if not reset_at or not window_seconds:
        return None
    reset_dt = parse_reset_time(reset_at)
    if reset_dt is None:
        return None
    remaining = max(0.0, (reset_dt - now).total_seconds())
    elapsed = float(window_seconds) - remaining
    return max(0.0, min(100.0, elapsed / float(window_seconds) * 100))


__all__ = [
    "ResetTime",
    "parse_reset_time",
    "format_relative_time",
    "format_absolute_time",
    "calc_elapsed_pct",
]
