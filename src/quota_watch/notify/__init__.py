"""Status-transition effects and notification delivery.

Modules:
    transitions: Decide notifications and log entries for a status change
    notifier: Desktop notification delivery and webhook fan-out
"""

from quota_watch.notify.notifier import (
    dispatch_notification,
    send_notification,
    urgency_for_level,
)
from quota_watch.notify.transitions import (
    LogEntry,
    Notification,
    TransitionEffects,
    build_transition_effects,
    format_recovery_hint,
    format_reset_remaining,
)

__all__ = [
    "LogEntry",
    "Notification",
    "TransitionEffects",
    "build_transition_effects",
    "format_recovery_hint",
    "format_reset_remaining",
    "dispatch_notification",
    "send_notification",
    "urgency_for_level",
]
