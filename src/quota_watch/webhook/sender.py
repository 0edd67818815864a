"""Webhook sender for Discord and Pushover notifications."""

import json
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime, timezone
from typing import Any, Optional

from quota_watch._version import __version__

PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"
WEBHOOK_TIMEOUT = 10  # seconds

# Discord embed colors by status level
DISCORD_COLOR_OK = 0x57F287
DISCORD_COLOR_WARNING = 0xFEE75C
DISCORD_COLOR_CRITICAL = 0xED4245
DISCORD_COLOR_DEFAULT = 0x5865F2


class WebhookError(Exception):
    """Exception raised when webhook sending fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def discord_embed_color(level: str) -> int:
    """Embed color for a status level."""
    if level == "ok":
        return DISCORD_COLOR_OK
    if level == "warning":
        return DISCORD_COLOR_WARNING
    if level in ("critical", "exhausted"):
        return DISCORD_COLOR_CRITICAL
    return DISCORD_COLOR_DEFAULT


def pushover_priority(level: str) -> int:
    """Pushover priority: high for critical/exhausted, normal otherwise."""
    return 1 if level in ("critical", "exhausted") else 0


def format_discord_payload(title: str, body: str, level: str = "") -> dict[str, Any]:
    """Format payload for Discord webhooks.

    Args:
        title: Notification title.
        body: Notification body.
        level: Status level controlling the embed color.

    Returns:
        Discord embed message payload.
    """
    return {
        "embeds": [
            {
                "title": title,
                "description": body,
                "color": discord_embed_color(level),
                "footer": {
                    "text": "quota-watch",
                },
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        ],
    }


def format_pushover_payload(
    api_token: str,
    user_key: str,
    title: str,
    body: str,
    level: str = "",
) -> dict[str, str]:
    """Format form fields for the Pushover messages API."""
    return {
        "token": api_token,
        "user": user_key,
        "title": title,
        "message": body,
        "priority": str(pushover_priority(level)),
    }


def _post(request: urllib.request.Request, service: str, timeout: int) -> bool:
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            status = response.status
            if status < 200 or status >= 300:
                raise WebhookError(f"{service} returned HTTP {status}", status)
            return True
    except urllib.error.HTTPError as e:
        raise WebhookError(f"{service} request failed: {e.code} {e.reason}", e.code) from e
    except urllib.error.URLError as e:
        raise WebhookError(f"{service} connection failed: {e.reason}") from e


def send_discord(
    webhook_url: str,
    title: str,
    body: str,
    level: str = "",
    timeout: int = WEBHOOK_TIMEOUT,
) -> bool:
    """Send a Discord embed.

    Raises:
        WebhookError: If the webhook request fails.
    """
    payload_bytes = json.dumps(format_discord_payload(title, body, level)).encode("utf-8")
    req = urllib.request.Request(
        webhook_url,
        data=payload_bytes,
        headers={
            "Content-Type": "application/json",
            "User-Agent": f"quota-watch/{__version__}",
        },
        method="POST",
    )
    return _post(req, "Discord", timeout)


def send_pushover(
    api_token: str,
    user_key: str,
    title: str,
    body: str,
    level: str = "",
    timeout: int = WEBHOOK_TIMEOUT,
) -> bool:
    """Send a Pushover message.

    Raises:
        WebhookError: If the request fails.
    """
    form = format_pushover_payload(api_token, user_key, title, body, level)
    req = urllib.request.Request(
        PUSHOVER_API_URL,
        data=urllib.parse.urlencode(form).encode("utf-8"),
        headers={
            "Content-Type": "application/x-www-form-urlencoded",
            "User-Agent": f"quota-watch/{__version__}",
        },
        method="POST",
    )
    return _post(req, "Pushover", timeout)


def send_external_notification(
    config: dict,
    title: str,
    body: str,
    level: str = "",
    channel: str = "",
) -> list[str]:
    """Send to every enabled external channel.

    Args:
        config: Loaded configuration.
        title: Notification title.
        body: Notification body.
        level: Status level.
        channel: Restrict to "discord" or "pushover" (ignores the enabled
            flags, used for test sends). Empty sends to all enabled channels.

    Returns:
        List of per-channel error messages. Empty if all sends succeeded.
    """
    errors = []
    send_all = not channel

    webhook_url = config.get("discord_webhook_url") or ""
    if webhook_url and (config.get("discord_enabled") if send_all else channel == "discord"):
        try:
            send_discord(webhook_url, title, body, level)
        except WebhookError as e:
            errors.append(f"Discord: {e}")

    api_token = config.get("pushover_api_token") or ""
    user_key = config.get("pushover_user_key") or ""
    if api_token and user_key and (config.get("pushover_enabled") if send_all else channel == "pushover"):
        try:
            send_pushover(api_token, user_key, title, body, level)
        except WebhookError as e:
            errors.append(f"Pushover: {e}")

    return errors


__all__ = [
    "PUSHOVER_API_URL",
    "WebhookError",
    "discord_embed_color",
    "pushover_priority",
    "format_discord_payload",
    "format_pushover_payload",
    "send_discord",
    "send_pushover",
    "send_external_notification",
]
