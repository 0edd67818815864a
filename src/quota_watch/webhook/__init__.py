"""External notification channels (Discord, Pushover)."""

from quota_watch.webhook.sender import (
    WebhookError,
    format_discord_payload,
    format_pushover_payload,
    send_discord,
    send_external_notification,
    send_pushover,
)

__all__ = [
    "WebhookError",
    "format_discord_payload",
    "format_pushover_payload",
    "send_discord",
    "send_external_notification",
    "send_pushover",
]
