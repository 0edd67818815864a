"""Polling orchestration.

Modules:
    orchestrator: Application state, poll cycles and the poll loop
"""

from quota_watch.poller.orchestrator import (
    ActivityLog,
    AppState,
    UsageHistory,
    compute_polling_state,
    poll_account,
    poll_all,
    reclassify_all,
    run_poll_loop,
)

__all__ = [
    "ActivityLog",
    "AppState",
    "UsageHistory",
    "compute_polling_state",
    "poll_account",
    "poll_all",
    "reclassify_all",
    "run_poll_loop",
]
