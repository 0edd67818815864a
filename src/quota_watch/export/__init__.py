"""Usage snapshot export.

Modules:
    snapshot: Build and atomically write the usage snapshot JSON
"""

from quota_watch.export.snapshot import (
    build_usage_snapshot,
    resolve_export_path,
    write_usage_snapshot,
)

__all__ = [
    "build_usage_snapshot",
    "resolve_export_path",
    "write_usage_snapshot",
]
