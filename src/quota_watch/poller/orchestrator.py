"""Polling orchestrator.

Owns all mutable application state and runs poll cycles: fetch each
account, classify and aggregate its windows, compare with the previous
status, deliver the resulting notifications and log entries, and record
history. Fetching and notification delivery are injected so the cycle can
run against fakes.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from quota_watch.config.audit import AuditEvent, log_audit_event
from quota_watch.errors import QuotaWatchError, UnsupportedServiceError
from quota_watch.export.snapshot import build_usage_snapshot, write_usage_snapshot
from quota_watch.notify.transitions import (
    LOG_CRIT,
    LOG_OK,
    LOG_WARN,
    TransitionEffects,
    build_transition_effects,
    format_percentage_value,
)
from quota_watch.usage.classify import classify_windows, derive_service_status
from quota_watch.usage.models import (
    STATUS_ERROR,
    SUPPORTED_SERVICES,
    Account,
    NotifySettings,
    ServiceState,
    UsageResult,
)

HISTORY_RESET_DROP_PCT = 5
HISTORY_MAX_POINTS = 10
MAX_LOG_ENTRIES = 200

LOG_INFO = "info"

Fetcher = Callable[[str, str], UsageResult]
TokenLookup = Callable[[Account], Optional[str]]
Dispatcher = Callable[[str, str, str], Any]


class UsageHistory:
    """Short rolling utilization history per "<account key>:<window name>"."""

    def __init__(self, max_points: int = HISTORY_MAX_POINTS, reset_drop: float = HISTORY_RESET_DROP_PCT):
        self.max_points = max_points
        self.reset_drop = reset_drop
        self._series: dict[str, list[float]] = {}

    def record(self, key: str, utilization: float) -> list[float]:
        """Append a point. A drop of more than reset_drop points means the
        window reset, so earlier points are discarded first."""
        series = self._series.setdefault(key, [])
        if series and utilization < series[-1] - self.reset_drop:
            series.clear()
        series.append(utilization)
        if len(series) > self.max_points:
            del series[0]
        return series

    def get(self, key: str) -> list[float]:
        return list(self._series.get(key, []))

    def clear(self) -> None:
        self._series.clear()


@dataclass
class ActivityEntry:
    timestamp: datetime
    level: str
    message: str


class ActivityLog:
    """Newest-first activity log, mirrored to the audit log."""

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES):
        self.max_entries = max_entries
        self.entries: list[ActivityEntry] = []

    def add(self, message: str, level: str = LOG_INFO, now: Optional[datetime] = None) -> ActivityEntry:
        entry = ActivityEntry(now or datetime.now(timezone.utc), level, message)
        self.entries.insert(0, entry)
        del self.entries[self.max_entries:]
        log_audit_event(AuditEvent.ACTIVITY, message, details={"level": level})
        return entry

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass
class AppState:
    """Everything the dashboard shows and the next poll compares against."""

    accounts: list[Account] = field(default_factory=list)
    settings: NotifySettings = field(default_factory=NotifySettings)
    services: dict[str, ServiceState] = field(default_factory=dict)
    history: UsageHistory = field(default_factory=UsageHistory)
    logs: ActivityLog = field(default_factory=ActivityLog)
    raw_responses: dict[str, Any] = field(default_factory=dict)
    polling: bool = False
    poll_started_at: Optional[datetime] = None
    poll_interval: int = 120
    last_fetched_at: Optional[datetime] = None
    usage_export_path: Optional[Path] = None
    export_error_logged: bool = False


@dataclass
class PollingState:
    """Countdown to the next poll."""

    elapsed: float
    remaining: float
    fraction: float
    band: str


def ordered_accounts(accounts: list[Account]) -> list[Account]:
    """Claude accounts first, then Codex, keeping configured order."""
    return [a for service in SUPPORTED_SERVICES for a in accounts if a.service == service]


def _error_message(error: Exception) -> str:
    if isinstance(error, QuotaWatchError):
        return error.message
    return str(error) or error.__class__.__name__


def poll_account(
    state: AppState,
    account: Account,
    fetch: Fetcher,
    token: str,
    now: datetime,
) -> ServiceState:
    """Fetch and classify one account.

    Any failure (upstream, network, parsing or classification) becomes a
    ServiceState with status "error" and a warn log entry, so one account
    never stops its siblings from being polled. UnsupportedServiceError
    propagates.

    Args:
        state: Application state (history, raw responses and log are updated).
        account: Account to poll.
        fetch: ``(service, token) -> UsageResult``.
        token: The account's bearer token.
        now: Timestamp for log entries.

    Returns:
        The account's new ServiceState.
    """
    label = account.label
    try:
        result = fetch(account.service, token)
        windows = classify_windows(result.windows, state.settings)
        status = derive_service_status(windows)
        summary = ", ".join(f"{w.name}={format_percentage_value(w.utilization)}%" for w in windows)
    except UnsupportedServiceError:
        raise
    except Exception as e:
        message = _error_message(e)
        state.logs.add(f"{label} error: {message}", LOG_WARN, now=now)
        return ServiceState(label=label, windows=[], status=STATUS_ERROR, error=message)

    state.raw_responses[account.key] = result.raw
    for window in windows:
        state.history.record(f"{account.key}:{window.name}", window.utilization)

    state.logs.add(f"{label} fetched: {summary}", LOG_INFO, now=now)
    return ServiceState(label=label, windows=windows, status=status)


def apply_effects(
    state: AppState,
    effects: TransitionEffects,
    dispatch: Optional[Dispatcher],
    now: datetime,
) -> None:
    """Append effect logs and deliver effect notifications.

    Delivery failures are logged as warnings and never interrupt polling.
    """
    for entry in effects.logs:
        state.logs.add(entry.message, entry.level, now=now)
    if dispatch is None:
        return
    for notification in effects.notifications:
        try:
            errors = dispatch(notification.title, notification.body, notification.level) or []
        except (OSError, QuotaWatchError) as e:
            errors = [_error_message(e)]
        for error in errors:
            state.logs.add(f"Notification failed: {error}", LOG_WARN, now=now)


def _maybe_write_snapshot(state: AppState, now: datetime) -> None:
    if state.usage_export_path is None:
        return
    snapshot = build_usage_snapshot(ordered_accounts(state.accounts), state.services, fetched_at=now)
    try:
        write_usage_snapshot(snapshot, state.usage_export_path)
    except OSError as e:
        # Report once until a write succeeds again
        if not state.export_error_logged:
            state.logs.add(f"Usage export failed: {e}", LOG_WARN, now=now)
            state.export_error_logged = True
        return
    state.export_error_logged = False


def poll_all(
    state: AppState,
    fetch: Fetcher,
    token_lookup: TokenLookup,
    dispatch: Optional[Dispatcher] = None,
    now_func: Optional[Callable[[], datetime]] = None,
) -> bool:
    """Run one poll cycle over every account.

    Args:
        state: Application state. ``services`` is replaced at the end.
        fetch: ``(service, token) -> UsageResult``.
        token_lookup: Returns an account's token, or None when it has none.
        dispatch: ``(title, body, level) -> list of errors``. None disables delivery.
        now_func: Clock. Defaults to UTC now.

    Returns:
        True if at least one account was fetched successfully.
    """
    now_func = now_func or (lambda: datetime.now(timezone.utc))
    now = now_func()
    next_services: dict[str, ServiceState] = {}
    state.raw_responses = {}
    any_success = False
    any_token = False

    for account in ordered_accounts(state.accounts):
        token = token_lookup(account)
        account.has_token = bool(token)
        if not token:
            continue
        any_token = True

        service_state = poll_account(state, account, fetch, token, now)
        next_services[account.key] = service_state
        if service_state.is_error:
            continue

        any_success = True
        previous = state.services.get(account.key)
        effects = build_transition_effects(
            previous.status if previous else None,
            service_state.status,
            service_state.label,
            service_state.windows,
            state.settings,
            now,
        )
        apply_effects(state, effects, dispatch, now)

    state.services = next_services
    state.last_fetched_at = now

    if not any_token:
        state.logs.add("No account has a token", LOG_WARN, now=now)

    _maybe_write_snapshot(state, now)
    return any_success


def reclassify_all(
    state: AppState,
    dispatch: Optional[Dispatcher] = None,
    now: Optional[datetime] = None,
) -> None:
    """Re-run classification on the current windows, e.g. after threshold changes.

    Errored accounts and accounts without windows are left alone.
    """
    now = now or datetime.now(timezone.utc)
    for service_state in state.services.values():
        if service_state.is_error or not service_state.windows:
            continue
        previous = service_state.status
        classify_windows(service_state.windows, state.settings)
        service_state.status = derive_service_status(service_state.windows)
        effects = build_transition_effects(
            previous,
            service_state.status,
            service_state.label,
            service_state.windows,
            state.settings,
            now,
        )
        apply_effects(state, effects, dispatch, now)


def compute_polling_state(
    polling: bool,
    poll_started_at: Optional[datetime],
    poll_interval: float,
    now: datetime,
) -> Optional[PollingState]:
    """Countdown values for the next poll.

    Returns:
        PollingState, or None when not polling or the interval is invalid.
        ``band`` is "ok" above 30% remaining, "warn" above 10%, else "crit".
    """
    if not polling or poll_started_at is None:
        return None
    try:
        interval = float(poll_interval)
    except (TypeError, ValueError):
        return None
    if not interval > 0 or interval == float("inf"):
        return None

    elapsed = max(0.0, (now - poll_started_at).total_seconds())
    remaining = max(0.0, interval - elapsed)
    fraction = max(0.0, min(1.0, remaining / interval))
    if fraction > 0.3:
        band = LOG_OK
    elif fraction > 0.1:
        band = LOG_WARN
    else:
        band = LOG_CRIT
    return PollingState(elapsed=elapsed, remaining=remaining, fraction=fraction, band=band)


def run_poll_loop(
    state: AppState,
    poll_func: Callable[[], Any],
    stop_event: Optional[threading.Event] = None,
    on_tick: Optional[Callable[[AppState], None]] = None,
    now_func: Optional[Callable[[], datetime]] = None,
    max_cycles: Optional[int] = None,
) -> int:
    """Poll every ``state.poll_interval`` seconds until stopped.

    A stop request is honoured between cycles, never in the middle of one.
    Ctrl+C ends the loop.

    Args:
        state: Application state.
        poll_func: Runs one cycle (usually a partial of poll_all).
        stop_event: Set it to stop after the current cycle.
        on_tick: Called once per second while waiting, for redraws.
        now_func: Clock. Defaults to UTC now.
        max_cycles: Stop after this many cycles.

    Returns:
        Number of completed cycles.
    """
    stop_event = stop_event or threading.Event()
    now_func = now_func or (lambda: datetime.now(timezone.utc))
    cycles = 0
    state.polling = True
    try:
        while not stop_event.is_set():
            state.poll_started_at = now_func()
            poll_func()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            for _ in range(max(1, int(state.poll_interval))):
                if on_tick:
                    on_tick(state)
                if stop_event.wait(1):
                    break
    except KeyboardInterrupt:
        pass
    finally:
        state.polling = False
    return cycles


__all__ = [
    "HISTORY_RESET_DROP_PCT",
    "HISTORY_MAX_POINTS",
    "MAX_LOG_ENTRIES",
    "UsageHistory",
    "ActivityEntry",
    "ActivityLog",
    "AppState",
    "PollingState",
    "ordered_accounts",
    "poll_account",
    "apply_effects",
    "poll_all",
    "reclassify_all",
    "compute_polling_state",
    "run_poll_loop",
]
