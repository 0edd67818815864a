"""Usage snapshot export.

Writes the latest polled state of every configured account to a JSON file
other tools can read (status bars, scripts). The file is replaced
atomically so readers never see a partial write.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from quota_watch._version import __version__
from quota_watch.config.settings import CONFIG_DIR
from quota_watch.usage.models import Account, ServiceState

SNAPSHOT_SCHEMA_VERSION = 1
APP_NAME = "quota-watch"


def resolve_export_path(configured: str, base_dir: Optional[Path] = None) -> Path:
    """Absolute export path. Relative paths live under the config directory.

    Raises:
        ValueError: If the path is empty.
    """
    if not configured or not configured.strip():
        raise ValueError("Export path is empty")
    path = Path(configured.strip()).expanduser()
    if path.is_absolute():
        return path
    return (base_dir or CONFIG_DIR) / path


def build_snapshot_entry(account: Account, state: Optional[ServiceState]) -> dict:
    """One account's entry. Accounts not polled this cycle get null fields."""
    return {
        "service": account.service,
        "id": account.id,
        "name": account.name,
        "hasToken": account.has_token,
        "label": state.label if state else None,
        "status": str(state.status) if state else None,
        "windows": [w.to_dict() for w in state.windows] if state else [],
        "error": state.error if state else None,
    }


def build_usage_snapshot(
    accounts: list[Account],
    services: dict[str, ServiceState],
    fetched_at: Optional[datetime] = None,
    generated_at: Optional[datetime] = None,
) -> dict:
    """Build the snapshot document.

    Args:
        accounts: Configured accounts, in display order.
        services: Latest state by account key.
        fetched_at: When the poll cycle ran.
        generated_at: When the snapshot is written. Defaults to now.

    Returns:
        JSON-serializable snapshot dict.
    """
    generated_at = generated_at or datetime.now(timezone.utc)
    return {
        "schemaVersion": SNAPSHOT_SCHEMA_VERSION,
        "appName": APP_NAME,
        "appVersion": __version__,
        "generatedAt": generated_at.isoformat(),
        "fetchedAt": fetched_at.isoformat() if fetched_at else None,
        "entries": [build_snapshot_entry(a, services.get(a.key)) for a in accounts],
    }


def write_usage_snapshot(snapshot: dict, path: Path) -> Path:
    """Atomically write a snapshot as pretty JSON.

    Args:
        snapshot: Document from build_usage_snapshot.
        path: Destination file.

    Returns:
        The path written.

    Raises:
        OSError: If the directory cannot be created or the file written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise
    return path


__all__ = [
    "SNAPSHOT_SCHEMA_VERSION",
    "resolve_export_path",
    "build_snapshot_entry",
    "build_usage_snapshot",
    "write_usage_snapshot",
]
