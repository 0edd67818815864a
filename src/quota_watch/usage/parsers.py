"""Vendor usage response parsers.

Both parsers take any JSON-decoded value and return a non-empty list of
UsageWindow. Each vendor format is decoded by an ordered chain of stages;
the first stage producing windows wins, and a payload matching none of them
yields the single unknown-format window. Parsers never raise.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Optional

from quota_watch.usage.models import UsageWindow

FIVE_HOURS = 18000
ONE_DAY = 86400
SEVEN_DAYS = 604800

# Claude keys in display order: key -> (label, window seconds)
CLAUDE_KNOWN_WINDOWS: dict[str, tuple[str, int]] = {
    "five_hour": ("5-hour", FIVE_HOURS),
    "seven_day": ("7-day", SEVEN_DAYS),
    "seven_day_opus": ("7-day (Opus)", SEVEN_DAYS),
    "seven_day_sonnet": ("7-day (Sonnet)", SEVEN_DAYS),
    "seven_day_oauth_apps": ("7-day (OAuth Apps)", SEVEN_DAYS),
    "seven_day_cowork": ("7-day (Cowork)", SEVEN_DAYS),
}

# Legacy Codex single-window keys, tried in order
CODEX_LEGACY_KEYS = (
    ("five_hour", "5-hour"),
    ("fiveHour", "5-hour"),
    ("weekly", "7-day"),
    ("seven_day", "7-day"),
)

Stage = Callable[[dict], list[UsageWindow]]


def to_number(value: Any) -> Optional[float]:
    """Coerce a JSON number or numeric string to a finite float.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _first(block: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        if key in block and block[key] is not None:
            return block[key]
    return None


def _as_object(data: Any) -> dict:
    return data if isinstance(data, dict) else {}


def _run_stages(data: dict, stages: Iterable[Stage]) -> list[UsageWindow]:
    for stage in stages:
        windows = stage(data)
        if windows:
            return windows
    return [UsageWindow.unknown()]


# ═══════════════════════════════════════════════════════════════════════════════
# Claude
# ═══════════════════════════════════════════════════════════════════════════════


def _guess_claude_window_seconds(key: str) -> Optional[int]:
    if key.startswith("seven_day"):
        return SEVEN_DAYS
    if "hour" in key:
        return FIVE_HOURS
    return None


def _claude_window(block: Any, name: str, window_seconds: Optional[int]) -> Optional[UsageWindow]:
    if not isinstance(block, dict):
        return None
    raw = block.get("utilization")
    # JSON numbers only, not numeric strings
    utilization = to_number(raw) if isinstance(raw, (int, float)) else None
    if utilization is None:
        return None
    return UsageWindow(
        name=name,
        utilization=utilization,
        resets_at=block.get("resets_at"),
        window_seconds=window_seconds,
    )


def _claude_windows(data: dict) -> list[UsageWindow]:
    windows = []
    for key, (label, seconds) in CLAUDE_KNOWN_WINDOWS.items():
        window = _claude_window(data.get(key), label, seconds)
        if window is not None:
            windows.append(window)

    # Unrecognized buckets are surfaced too, in key order
    for key in sorted(k for k in data if isinstance(k, str) and k not in CLAUDE_KNOWN_WINDOWS):
        window = _claude_window(data[key], key.replace("_", " "), _guess_claude_window_seconds(key))
        if window is not None:
            windows.append(window)
    return windows


def parse_claude_usage(data: Any) -> list[UsageWindow]:
    """Parse an Anthropic OAuth usage response.

    Args:
        data: Decoded JSON body, any shape.

    Returns:
        Known windows in fixed order, then extra well-shaped buckets sorted
        by key, or the unknown-format sentinel.
    """
    return _run_stages(_as_object(data), [_claude_windows])


# ═══════════════════════════════════════════════════════════════════════════════
# Codex
# ═══════════════════════════════════════════════════════════════════════════════


def normalize_window_name(seconds: Any, label: Optional[str] = None) -> str:
    """Derive a display name for a Codex window.

    Args:
        seconds: Window duration in seconds, may be missing.
        label: Explicit label, used as-is when given.

    Returns:
        Display name such as "5-hour", "3-day" or "window".
    """
    if label:
        return label
    sec = to_number(seconds)
    if sec is None or sec <= 0:
        return "window"
    if sec == FIVE_HOURS:
        return "5-hour"
    if sec == SEVEN_DAYS:
        return "7-day"
    if sec == ONE_DAY:
        return "24-hour"
    if sec % ONE_DAY == 0:
        return f"{round(sec / ONE_DAY)}-day"
    return f"{round(sec / 3600)}-hour"


def _codex_utilization(window: dict) -> float:
    percent = to_number(_first(window, ("used_percent", "usedPercent", "utilization")))
    if percent is not None:
        return percent
    used = to_number(window.get("used"))
    limit = to_number(window.get("limit"))
    if used is not None and limit is not None and limit > 0:
        ratio = used / limit * 100
        if math.isfinite(ratio):
            return ratio
    return 0.0


def _codex_force_exhausted(window: dict, parent: Optional[dict]) -> bool:
    parent = parent or {}
    limit_reached = _first(window, ("limit_reached", "limitReached"))
    if limit_reached is None:
        limit_reached = _first(parent, ("limit_reached", "limitReached"))
    allowed = window.get("allowed")
    if allowed is None:
        allowed = parent.get("allowed")
    return limit_reached is True or allowed is False


def _codex_window(window: Any, label: Optional[str], parent: Optional[dict]) -> Optional[UsageWindow]:
    if not isinstance(window, dict):
        return None
    seconds = to_number(_first(window, ("limit_window_seconds", "limitWindowSeconds")))
    if seconds is not None and seconds <= 0:
        seconds = None
    return UsageWindow(
        name=normalize_window_name(seconds, label),
        utilization=_codex_utilization(window),
        resets_at=_first(window, ("reset_at", "resetAt", "resets_at", "resetsAt")),
        window_seconds=seconds,
        force_exhausted=_codex_force_exhausted(window, parent),
    )


def _rate_limit_block(block: Any, prefix: Optional[str]) -> list[UsageWindow]:
    if not isinstance(block, dict):
        return []
    windows = []
    for keys, suffix in (
        (("primary_window", "primaryWindow", "primary"), "primary"),
        (("secondary_window", "secondaryWindow", "secondary"), "secondary"),
    ):
        label = f"{prefix} ({suffix})" if prefix else None
        window = _codex_window(_first(block, keys), label, block)
        if window is not None:
            windows.append(window)
    return windows


def _codex_wham_windows(data: dict) -> list[UsageWindow]:
    windows = _rate_limit_block(data.get("rate_limit"), None)
    windows += _rate_limit_block(data.get("code_review_rate_limit"), "Code Review")

    additional = data.get("additional_rate_limits")
    if isinstance(additional, list):
        for idx, block in enumerate(additional, start=1):
            name = block.get("name") if isinstance(block, dict) else None
            windows += _rate_limit_block(block, name or f"Additional {idx}")
    else:
        windows += _rate_limit_block(additional, "Additional")
    return windows


def _codex_legacy_pair(data: dict) -> list[UsageWindow]:
    limits = _first(data, ("rate_limits", "rateLimits"))
    if not isinstance(limits, dict):
        limits = data
    if not (limits.get("primary") or limits.get("secondary")):
        return []
    windows = []
    for key, label in (("primary", "5-hour"), ("secondary", "7-day")):
        window = _codex_window(limits.get(key), label, limits)
        if window is not None:
            windows.append(window)
    return windows


def _codex_legacy_array(data: dict) -> list[UsageWindow]:
    items = next(
        (data[key] for key in ("windows", "limits", "rate_limits") if isinstance(data.get(key), list)),
        [],
    )
    windows = []
    for item in items:
        if not isinstance(item, dict):
            continue
        label = _first(item, ("name", "label", "window"))
        window = _codex_window(item, str(label) if label else None, None)
        if window is not None:
            windows.append(window)
    return windows


def _codex_legacy_keys(data: dict) -> list[UsageWindow]:
    windows = []
    for key, label in CODEX_LEGACY_KEYS:
        block = data.get(key)
        if isinstance(block, dict):
            windows.append(_codex_window(block, label, block))
    return windows


def parse_codex_usage(data: Any) -> list[UsageWindow]:
    """Parse a ChatGPT/Codex usage response.

    Tries the current rate-limit shape first, then the legacy
    primary/secondary pair, a legacy window array, and finally legacy
    single-window keys.

    Args:
        data: Decoded JSON body, any shape.

    Returns:
        Normalized windows, or the unknown-format sentinel.
    """
    return _run_stages(
        _as_object(data),
        [_codex_wham_windows, _codex_legacy_pair, _codex_legacy_array, _codex_legacy_keys],
    )


PARSERS: dict[str, Callable[[Any], list[UsageWindow]]] = {
    "claude": parse_claude_usage,
    "codex": parse_codex_usage,
}


__all__ = [
    "FIVE_HOURS",
    "ONE_DAY",
    "SEVEN_DAYS",
    "CLAUDE_KNOWN_WINDOWS",
    "PARSERS",
    "to_number",
    "normalize_window_name",
    "parse_claude_usage",
    "parse_codex_usage",
]
