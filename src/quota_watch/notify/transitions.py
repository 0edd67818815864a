"""Notification and log effects of a service status transition.

Only four transitions are observable: entering critical, entering
exhausted, entering warning from a non-degraded state, and recovering from
critical or exhausted back to ok. Everything else, including the first
observation of an account, produces no effects.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from quota_watch.usage.models import NotifySettings, Severity, Status, UsageWindow
from quota_watch.usage.parsers import FIVE_HOURS, SEVEN_DAYS
from quota_watch.utils.time import ResetTime, parse_reset_time

# Log levels understood by the activity log
LOG_CRIT = "crit"
LOG_WARN = "warn"
LOG_OK = "ok"

STATUS_PREFIX = "ステータス"
ALREADY_RESET = "already reset"

# Canonical window lengths that get a recovery hint
RECOVERY_HINT_DURATIONS = {
    FIVE_HOURS: "5h",
    SEVEN_DAYS: "7d",
}

DEGRADED = (Severity.CRITICAL, Severity.EXHAUSTED)


@dataclass
class Notification:
    title: str
    body: str
    level: str = ""


@dataclass
class LogEntry:
    level: str
    message: str


@dataclass
class TransitionEffects:
    notifications: list[Notification] = field(default_factory=list)
    logs: list[LogEntry] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.notifications or self.logs)


def format_percentage_value(utilization: float) -> str:
    """Render a percentage without a trailing ".0" ("95", "42.5").

    Non-finite values render as "?".
    """
    if not math.isfinite(utilization):
        return "?"
    rounded = round(float(utilization), 1)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:.1f}"


def format_reset_remaining(reset_at: ResetTime, now: datetime) -> Optional[str]:
    """Phrase the time left until a window resets.

    Args:
        reset_at: Epoch seconds or ISO 8601 string.
        now: Reference time.

    Returns:
        "~1d4h until reset", "~2h30m until reset", "~12m until reset",
        "already reset", or None when the reset time is unknown.
    """
    reset_dt = parse_reset_time(reset_at)
    if reset_dt is None:
        return None
    remaining = (reset_dt - now).total_seconds()
    if remaining <= 0:
        return ALREADY_RESET

    total_minutes = int(remaining // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours >= 24:
        days, hours = divmod(hours, 24)
        return f"~{days}d{hours}h until reset"
    if hours >= 1:
        return f"~{hours}h{minutes}m until reset"
    return f"~{minutes}m until reset"


def format_recovery_hint(windows: Iterable[UsageWindow]) -> Optional[str]:
    """Hint how long after next use the shortest canonical window recovers."""
    durations = [
        int(w.window_seconds)
        for w in windows
        if w.window_seconds is not None and w.window_seconds in RECOVERY_HINT_DURATIONS
    ]
    if not durations:
        return None
    return f"recovers {RECOVERY_HINT_DURATIONS[min(durations)]} after next use"


def format_window_details(windows: Iterable[UsageWindow], now: datetime) -> str:
    """Join "<name>: <pct>% (<reset phrase>)" for every window."""
    parts = []
    for window in windows:
        text = f"{window.name}: {format_percentage_value(window.utilization)}%"
        remaining = format_reset_remaining(window.resets_at, now)
        if remaining:
            text += f" ({remaining})"
        parts.append(text)
    return ", ".join(parts)


def _affected_windows(windows: list[UsageWindow], floor: Severity) -> list[UsageWindow]:
    affected = [w for w in windows if w.status is not None and w.status >= floor]
    return affected or windows


def _degraded_body(next_status: Severity, windows: list[UsageWindow], now: datetime) -> str:
    floor = Severity.CRITICAL if next_status in DEGRADED else Severity.WARNING
    body = f"{STATUS_PREFIX}: {next_status!s} — {format_window_details(windows, now)}"
    hint = format_recovery_hint(_affected_windows(windows, floor))
    if hint:
        body += f" / {hint}"
    return body


def build_transition_effects(
    prev: Optional[Status],
    next_status: Status,
    label: str,
    windows: list[UsageWindow],
    settings: NotifySettings,
    now: datetime,
) -> TransitionEffects:
    """Decide which notifications and log entries a status change produces.

    Args:
        prev: Status from the previous poll, or None on first observation.
        next_status: Status from this poll.
        label: Account label used in titles and log messages.
        windows: Classified windows of this poll.
        settings: Notification toggles.
        now: Reference time for reset phrasing.

    Returns:
        TransitionEffects, empty unless the transition is observable.
    """
    effects = TransitionEffects()
    if prev is None or prev == next_status:
        return effects

    prev_sev = Severity.from_value(prev)
    next_sev = Severity.from_value(next_status)
    if next_sev is None:
        return effects

    if next_sev in DEGRADED:
        effects.logs.append(LogEntry(LOG_CRIT, f"{label} → {next_sev!s}"))
        if settings.critical:
            effects.notifications.append(
                Notification(f"{label} ⚠️", _degraded_body(next_sev, windows, now), str(next_sev))
            )
    elif next_sev is Severity.WARNING and prev_sev not in DEGRADED:
        effects.logs.append(LogEntry(LOG_WARN, f"{label} → {next_sev!s}"))
        if settings.warning:
            effects.notifications.append(
                Notification(f"{label} ⚠", _degraded_body(next_sev, windows, now), str(next_sev))
            )
    elif next_sev is Severity.OK and prev_sev in DEGRADED:
        effects.logs.append(LogEntry(LOG_OK, f"{label} → ok (recovered)"))
        if settings.recovery:
            effects.notifications.append(
                Notification(
                    f"{label} ✅ recovered",
                    f"Quota recovered — {format_window_details(windows, now)}",
                    str(next_sev),
                )
            )
    return effects


__all__ = [
    "LOG_CRIT",
    "LOG_WARN",
    "LOG_OK",
    "STATUS_PREFIX",
    "ALREADY_RESET",
    "RECOVERY_HINT_DURATIONS",
    "Notification",
    "LogEntry",
    "TransitionEffects",
    "format_percentage_value",
    "format_reset_remaining",
    "format_recovery_hint",
    "format_window_details",
    "build_transition_effects",
]
