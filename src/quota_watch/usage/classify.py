"""Severity classification and per-account aggregation."""

from __future__ import annotations

import math
from typing import Any, Iterable

from quota_watch.usage.models import NotifySettings, Severity, UsageWindow

EXHAUSTED_THRESHOLD = 100


def classify_utilization(
    utilization: Any,
    settings: NotifySettings,
    exhausted_threshold: float = EXHAUSTED_THRESHOLD,
) -> Severity:
    """Classify a utilization percentage against the configured thresholds.

    Thresholds are compared literally and never clamped here, so an inverted
    configuration (warning above critical) simply makes WARNING unreachable.

    Args:
        utilization: Percentage, any value. Non-numeric input counts as OK.
        settings: Thresholds to compare against.
        exhausted_threshold: Percentage at or above which the window is exhausted.

    Returns:
        The matching Severity.
    """
    if isinstance(utilization, bool):
        return Severity.OK
    try:
        value = float(utilization)
    except (TypeError, ValueError):
        return Severity.OK
    if not math.isfinite(value):
        return Severity.OK

    if value >= exhausted_threshold:
        return Severity.EXHAUSTED
    if value >= settings.threshold_critical:
        return Severity.CRITICAL
    if value >= settings.threshold_warning:
        return Severity.WARNING
    return Severity.OK


def classify_windows(
    windows: list[UsageWindow],
    settings: NotifySettings,
    exhausted_threshold: float = EXHAUSTED_THRESHOLD,
) -> list[UsageWindow]:
    """Set the status of every window in place and return the same list.

    A vendor-asserted limit (force_exhausted) always wins over the percentage.
    The unknown-format sentinel keeps its UNKNOWN status.
    """
    for window in windows:
        if window.force_exhausted:
            window.status = Severity.EXHAUSTED
            continue
        if window.status is Severity.UNKNOWN:
            continue
        window.status = classify_utilization(window.utilization, settings, exhausted_threshold)
    return windows


def derive_service_status(windows: Iterable[UsageWindow]) -> Severity:
    """Return the worst window status; an empty list is OK."""
    worst = Severity.OK
    for window in windows:
        status = window.status if window.status is not None else Severity.UNKNOWN
        if status > worst:
            worst = status
    return worst


__all__ = [
    "EXHAUSTED_THRESHOLD",
    "classify_utilization",
    "classify_windows",
    "derive_service_status",
]
