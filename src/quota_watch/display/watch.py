"""Live dashboard for --watch.

Polls on the configured interval and redraws the dashboard every second in
between, with a countdown to the next poll.
"""

import os
import platform
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from quota_watch.display.colors import Colors
from quota_watch.display.dashboard import display_activity_log, display_services
from quota_watch.poller.orchestrator import AppState, compute_polling_state, run_poll_loop

BAND_COLORS = {
    "ok": "GREEN",
    "warn": "YELLOW",
    "crit": "RED",
}


def clear_screen() -> None:
    if platform.system() == "Windows":
        os.system("cls")
        return
    # Erase display, cursor home
    sys.stdout.write("\033[2J\033[H")
    sys.stdout.flush()


def format_duration(seconds: int) -> str:
    """Compact duration: "1h 30m 45s", "2m 5s", "45s".

    Minutes are kept once hours appear, so widths stay stable.
    """
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_countdown(seconds_left: int) -> str:
    return f"{seconds_left}s" if seconds_left > 0 else "refreshing..."


def print_watch_header(state: AppState, session_duration: int, now: Optional[datetime] = None) -> None:
    """One status line above the dashboard, colored by how soon the next poll runs.

    Args:
        state: Application state (polling flag, start time and interval).
        session_duration: Seconds since watch mode started.
        now: Reference time. Defaults to now.
    """
    now = now or datetime.now(timezone.utc)
    timing = compute_polling_state(state.polling, state.poll_started_at, state.poll_interval, now)
    if timing is None:
        countdown = f"{Colors.DIM}stopped{Colors.RESET}"
    else:
        color = getattr(Colors, BAND_COLORS[timing.band])
        countdown = f"{color}{format_countdown(int(round(timing.remaining)))}{Colors.RESET}"

    separator = f" {Colors.DIM}|{Colors.RESET} "
    fields = (
        f"{Colors.BOLD}{Colors.CYAN}Quota Watch{Colors.RESET}",
        f"Next poll: {countdown}",
        f"Interval: {state.poll_interval}s",
        f"Session: {format_duration(session_duration)}",
        f"{Colors.DIM}{now.astimezone():%H:%M:%S}{Colors.RESET}",
    )
    print(separator.join(fields))
    print(f"{Colors.DIM}{'─' * 60}{Colors.RESET}")


def print_watch_summary(session_duration: int, refresh_count: int, state: AppState) -> None:
    """Printed once on exit. Accounts still critical or exhausted are listed."""
    limited = [s.label for s in state.services.values() if str(s.status) in ("critical", "exhausted")]
    print()
    print(f"{Colors.BOLD}{Colors.CYAN}Watch Session Summary{Colors.RESET}")
    print(f"{Colors.DIM}{'─' * 40}{Colors.RESET}")
    print(f"Duration: {format_duration(session_duration)}")
    print(f"Polls: {refresh_count}")
    if limited:
        print(f"{Colors.RED}Still limited: {', '.join(limited)}{Colors.RESET}")
    print()


def run_watch_mode(
    state: AppState,
    poll_func: Callable[[], object],
    stop_event: Optional[threading.Event] = None,
    show_logs: bool = True,
) -> int:
    """Run the watch mode loop until Ctrl+C.

    Args:
        state: Application state, already configured with accounts and interval.
        poll_func: Runs one poll cycle.
        stop_event: Optional event to stop the loop from another thread.
        show_logs: If True, show the activity log under the dashboard.

    Returns:
        Number of completed poll cycles.
    """
    start_time = time.time()

    def redraw(current: AppState) -> None:
        clear_screen()
        print_watch_header(current, int(time.time() - start_time))
        display_services(current)
        if show_logs:
            display_activity_log(current.logs)

    cycles = run_poll_loop(state, poll_func, stop_event=stop_event, on_tick=redraw)
    clear_screen()
    print_watch_summary(int(time.time() - start_time), cycles, state)
    return cycles


__all__ = [
    "clear_screen",
    "format_duration",
    "format_countdown",
    "print_watch_header",
    "print_watch_summary",
    "run_watch_mode",
]
