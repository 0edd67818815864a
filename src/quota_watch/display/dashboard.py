"""Dashboard rendering for terminal output.

Provides functions for displaying every account's usage windows with
progress bars, reset times and recent history, plus the activity log.
"""

from datetime import datetime, timezone
from typing import Optional

from quota_watch.display.colors import Colors
from quota_watch.display.progress import (
    format_percentage,
    make_elapsed_marker,
    make_progress_bar,
    make_sparkline,
    status_color,
    status_icon,
)
from quota_watch.poller.orchestrator import AppState, ActivityLog, ordered_accounts
from quota_watch.usage.models import ServiceState, UsageWindow
from quota_watch.utils.time import calc_elapsed_pct, format_absolute_time, format_relative_time

BAR_WIDTH = 25
LOG_LEVEL_COLORS = {
    "crit": "RED",
    "warn": "YELLOW",
    "ok": "GREEN",
}


def print_window_row(
    window: UsageWindow,
    history: Optional[list] = None,
    now: Optional[datetime] = None,
) -> None:
    """Print one usage window with bar, percentage, sparkline and reset time."""
    now = now or datetime.now(timezone.utc)
    bar = make_progress_bar(window.utilization, width=BAR_WIDTH, status=window.status)
    pct = format_percentage(window.utilization, window.status)
    spark = make_sparkline(history or [])

    print(f"  {Colors.WHITE}{window.name:<22}{Colors.RESET} {bar}  {pct}  {spark}".rstrip())

    marker = make_elapsed_marker(calc_elapsed_pct(window.resets_at, window.window_seconds, now), BAR_WIDTH)
    if marker:
        print(f"  {' ' * 22} {marker}")

    relative = format_relative_time(window.resets_at, now)
    if relative:
        print(
            f"  {Colors.DIM}Resets in {relative} "
            f"({format_absolute_time(window.resets_at)}){Colors.RESET}"
        )


def print_service(key: str, service: ServiceState, state: AppState, now: datetime) -> None:
    color = status_color(service.status)
    print(
        f"{Colors.BOLD}{service.label}{Colors.RESET}  "
        f"{color}{status_icon(service.status)} {service.status!s}{Colors.RESET}"
    )
    if service.is_error:
        print(f"  {Colors.RED}{service.error}{Colors.RESET}")
    for window in service.windows:
        print_window_row(window, state.history.get(f"{key}:{window.name}"), now)
    print()


def display_services(state: AppState, now: Optional[datetime] = None) -> None:
    """Display every account in poll order.

    Accounts without a token, or not polled yet, get a one-line placeholder.
    """
    now = now or datetime.now(timezone.utc)
    print()
    print(f"{Colors.BOLD}{Colors.CYAN}Usage limits{Colors.RESET}")
    print()

    accounts = ordered_accounts(state.accounts)
    if not accounts:
        print(f"  {Colors.DIM}No accounts configured. Add one with --add-account.{Colors.RESET}")
        print()
        return

    for account in accounts:
        service = state.services.get(account.key)
        if service is None:
            reason = "no token" if not account.has_token else "not polled yet"
            print(f"{Colors.BOLD}{account.label}{Colors.RESET}  {Colors.DIM}{reason}{Colors.RESET}")
            print()
            continue
        print_service(account.key, service, state, now)

    if state.last_fetched_at:
        fetched = state.last_fetched_at.astimezone().strftime("%H:%M:%S")
        print(f"{Colors.DIM}Last updated: {fetched}{Colors.RESET}")
        print()


def display_activity_log(logs: ActivityLog, limit: int = 8) -> None:
    """Print the most recent activity log entries, newest first."""
    entries = logs.entries[:limit]
    if not entries:
        return
    print(f"{Colors.BOLD}{Colors.WHITE}Activity{Colors.RESET}")
    for entry in entries:
        color = getattr(Colors, LOG_LEVEL_COLORS.get(entry.level, "DIM"))
        time_str = entry.timestamp.astimezone().strftime("%H:%M:%S")
        print(f"  {Colors.DIM}{time_str}{Colors.RESET} {color}{entry.message}{Colors.RESET}")
    print()


def build_json_output(state: AppState, include_raw: bool = False) -> dict:
    """Machine-readable view of the current state, for --json."""
    output = {
        "fetchedAt": state.last_fetched_at.isoformat() if state.last_fetched_at else None,
        "services": {key: service.to_dict() for key, service in state.services.items()},
    }
    if include_raw:
        output["raw"] = state.raw_responses
    return output


__all__ = [
    "print_window_row",
    "print_service",
    "display_services",
    "display_activity_log",
    "build_json_output",
]
