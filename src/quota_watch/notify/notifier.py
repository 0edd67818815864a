"""Notification delivery: the desktop via the platform tool, plus webhooks."""

import platform
import subprocess
from typing import Optional

from quota_watch.config.audit import AuditEvent, log_audit_event
from quota_watch.webhook.sender import send_external_notification

APP_NAME = "quota-watch"

_WINDOWS_TOAST = """
[Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, ContentType = WindowsRuntime] | Out-Null
[Windows.Data.Xml.Dom.XmlDocument, Windows.Data.Xml.Dom.XmlDocument, ContentType = WindowsRuntime] | Out-Null
$doc = New-Object Windows.Data.Xml.Dom.XmlDocument
$doc.LoadXml('<toast><visual><binding template="ToastText02"><text id="1">{title}</text><text id="2">{message}</text></binding></visual></toast>')
[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier("{app}").Show([Windows.UI.Notifications.ToastNotification]::new($doc))
"""


def urgency_for_level(level: str) -> str:
    """Map a status level to a notify-send urgency."""
    return "critical" if level in ("critical", "exhausted") else "normal"


def _applescript_string(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _xml_text(text: str) -> str:
    # Single quotes would end the PowerShell string literal
    return text.replace("&", "&amp;").replace("<", "&lt;").replace("'", "&apos;")


def desktop_command(system: str, title: str, message: str, urgency: str = "normal") -> Optional[list[str]]:
    """Command line that shows a notification on ``system``, or None if unsupported."""
    if system == "Linux":
        return ["notify-send", "-u", urgency, "-a", APP_NAME, title, message]
    if system == "Darwin":
        script = f"display notification {_applescript_string(message)} with title {_applescript_string(title)}"
        return ["osascript", "-e", script]
    if system == "Windows":
        script = _WINDOWS_TOAST.format(title=_xml_text(title), message=_xml_text(message), app=APP_NAME)
        return ["powershell", "-Command", script]
    return None


def send_notification(title: str, message: str, urgency: str = "normal") -> bool:
    """Show a desktop notification with the platform's own tool.

    Returns:
        False when the platform is unsupported or the tool is missing or fails.
    """
    command = desktop_command(platform.system(), title, message, urgency)
    if command is None:
        return False
    try:
        subprocess.run(command, check=True, capture_output=True)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
    return True


def dispatch_notification(
    title: str,
    body: str,
    level: str = "",
    config: Optional[dict] = None,
) -> list[str]:
    """Deliver one notification to the desktop and every enabled webhook.

    Args:
        title: Notification title.
        body: Notification body.
        level: Status level (ok, warning, critical, exhausted).
        config: Loaded configuration, used for webhook settings.

    Returns:
        List of delivery error messages. Empty if everything was delivered.
    """
    errors = []
    if not send_notification(title, body, urgency_for_level(level)):
        errors.append("Desktop: notification command not available")

    if config:
        errors.extend(send_external_notification(config, title, body, level))

    log_audit_event(
        event_type=AuditEvent.NOTIFICATION_SENT,
        message=f"Notification: {title}",
        details={"level": level, "errors": len(errors)},
        success=not errors,
    )
    return errors


__all__ = [
    "urgency_for_level",
    "desktop_command",
    "send_notification",
    "dispatch_notification",
]
