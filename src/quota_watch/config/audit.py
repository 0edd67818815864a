"""Opt-in audit trail.

When enabled (``--audit``), token store access, config changes, upstream
requests, notification delivery and the activity log are appended to a
JSON-lines file, one record per line. Secrets in event details are masked
before anything is written. Writing is best effort: an unwritable audit log
never interrupts polling.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from quota_watch.config.settings import CONFIG_DIR

AUDIT_DIR = CONFIG_DIR / "audit"
AUDIT_LOG_FILE = AUDIT_DIR / "audit.log"
AUDIT_MAX_SIZE_MB = 10
AUDIT_MAX_FILES = 5

# Detail keys containing any of these are masked
SENSITIVE_FRAGMENTS = ("token", "key", "password", "secret", "webhook_url")


class AuditEvent:
    """Event type names, grouped by the prefix before the dot."""

    CREDENTIAL_READ = "credential.read"
    CREDENTIAL_WRITE = "credential.write"
    CREDENTIAL_DELETE = "credential.delete"
    CREDENTIAL_IMPORT = "credential.import"

    CONFIG_WRITE = "config.write"
    CONFIG_RESET = "config.reset"

    API_SUCCESS = "api.success"
    API_ERROR = "api.error"
    API_RETRY = "api.retry"

    SESSION_START = "session.start"
    SESSION_END = "session.end"

    ACTIVITY = "activity"
    NOTIFICATION_SENT = "notification.sent"


CREDENTIAL_EVENTS = {
    "read": AuditEvent.CREDENTIAL_READ,
    "write": AuditEvent.CREDENTIAL_WRITE,
    "delete": AuditEvent.CREDENTIAL_DELETE,
    "import": AuditEvent.CREDENTIAL_IMPORT,
}

_audit_enabled = False
_audit_log_path: Path | None = None


def enable_audit_logging(log_path: Path | None = None) -> None:
    """Start writing audit records to ``log_path`` (default AUDIT_LOG_FILE)."""
    global _audit_enabled, _audit_log_path

    _audit_log_path = log_path or AUDIT_LOG_FILE
    _audit_log_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    _audit_enabled = True
    log_audit_event(
        AuditEvent.SESSION_START,
        "Audit logging enabled",
        details={"log_path": str(_audit_log_path)},
    )


def disable_audit_logging() -> None:
    """Stop writing audit records. A session-end record closes an active session."""
    global _audit_enabled

    if _audit_enabled:
        log_audit_event(AuditEvent.SESSION_END, "Audit logging disabled")
    _audit_enabled = False


def is_audit_enabled() -> bool:
    return _audit_enabled


def _rotated_path(path: Path, generation: int) -> Path:
    return path.with_name(f"{path.name}.{generation}")


def _rotate_if_needed(path: Path) -> None:
    # audit.log -> audit.log.1 -> ... -> audit.log.<AUDIT_MAX_FILES - 1>, oldest dropped
    try:
        if not path.exists() or path.stat().st_size < AUDIT_MAX_SIZE_MB * 1024 * 1024:
            return
        oldest = _rotated_path(path, AUDIT_MAX_FILES - 1)
        if oldest.exists():
            oldest.unlink()
        for generation in range(AUDIT_MAX_FILES - 2, 0, -1):
            current = _rotated_path(path, generation)
            if current.exists():
                current.rename(_rotated_path(path, generation + 1))
        path.rename(_rotated_path(path, 1))
    except OSError:
        return


def _mask(value) -> str:
    if isinstance(value, str) and len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "***"


def _sanitize_details(details: dict) -> dict:
    """Copy of ``details`` with secret-looking values masked, recursively."""
    sanitized = {}
    for key, value in details.items():
        if any(fragment in key.lower() for fragment in SENSITIVE_FRAGMENTS):
            sanitized[key] = _mask(value)
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_details(value)
        else:
            sanitized[key] = value
    return sanitized


def log_audit_event(
    event_type: str,
    message: str,
    details: dict | None = None,
    success: bool = True,
) -> None:
    """Append one record. Does nothing while audit logging is disabled.

    Args:
        event_type: One of the AuditEvent names.
        message: Human-readable summary.
        details: Extra structured data. Secret-looking keys are masked.
        success: Whether the audited operation succeeded.
    """
    path = _audit_log_path
    if not _audit_enabled or path is None:
        return

    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event_type,
        "message": message,
        "success": success,
        "pid": os.getpid(),
    }
    if details:
        record["details"] = _sanitize_details(details)

    _rotate_if_needed(path)
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")
        os.chmod(path, 0o600)
    except OSError:
        return


def log_credential_access(
    action: str,
    key: str,
    success: bool = True,
    error: str | None = None,
) -> None:
    """Record a token store operation on account ``key``. The token is never logged."""
    details = {"account": key}
    if error:
        details["error"] = error
    log_audit_event(
        CREDENTIAL_EVENTS.get(action, AuditEvent.CREDENTIAL_READ),
        f"Token {action}: {key}",
        details=details,
        success=success,
    )


def log_api_request(
    endpoint: str,
    method: str = "GET",
    success: bool = True,
    status_code: int | None = None,
    error: str | None = None,
    retry_count: int = 0,
) -> None:
    """Record an upstream request.

    Requests that needed retries are logged as ``api.retry`` whatever
    their outcome; ``success`` still carries the final result.
    """
    if retry_count:
        event = AuditEvent.API_RETRY
    else:
        event = AuditEvent.API_SUCCESS if success else AuditEvent.API_ERROR

    details: dict = {"endpoint": endpoint, "method": method}
    if status_code:
        details["status_code"] = status_code
    if error:
        details["error"] = error
    if retry_count:
        details["retry_count"] = retry_count

    log_audit_event(event, f"API {method} {endpoint}", details=details, success=success)


def log_config_change(action: str, key: str | None = None, new_value: str | None = None) -> None:
    """Record a config write or reset.

    The value is stored under the setting's own name so secret settings
    (webhook URL, Pushover keys) get masked.
    """
    details = {"action": action}
    if key:
        details["setting"] = key
    if new_value is not None:
        details[key or "value"] = new_value

    log_audit_event(
        AuditEvent.CONFIG_RESET if action == "reset" else AuditEvent.CONFIG_WRITE,
        f"Config {action}: {key}" if key else f"Config {action}",
        details=details,
    )


def read_audit_log(log_path: Path | None = None, limit: int = 100) -> list[dict]:
    """Up to ``limit`` most recent records, newest first. Unparseable lines are skipped."""
    path = log_path or _audit_log_path or AUDIT_LOG_FILE
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []

    records = []
    for line in reversed(lines):
        if len(records) >= limit:
            break
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return records


__all__ = [
    "AuditEvent",
    "AUDIT_DIR",
    "AUDIT_LOG_FILE",
    "enable_audit_logging",
    "disable_audit_logging",
    "is_audit_enabled",
    "log_audit_event",
    "log_credential_access",
    "log_api_request",
    "log_config_change",
    "read_audit_log",
]
