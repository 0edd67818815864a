"""Usage normalization core.

Modules:
    models: Severity enum and usage window data model
    parsers: Vendor response parsers (Claude, Codex)
    classify: Severity classification and status aggregation
"""

from quota_watch.usage.classify import (
    EXHAUSTED_THRESHOLD,
    classify_utilization,
    classify_windows,
    derive_service_status,
)
from quota_watch.usage.models import (
    STATUS_ERROR,
    SUPPORTED_SERVICES,
    UNKNOWN_WINDOW_NAME,
    Account,
    NotifySettings,
    RawUsageResponse,
    ServiceState,
    Severity,
    UsageResult,
    UsageWindow,
)
from quota_watch.usage.parsers import (
    PARSERS,
    normalize_window_name,
    parse_claude_usage,
    parse_codex_usage,
)

__all__ = [
    # Models
    "STATUS_ERROR",
    "SUPPORTED_SERVICES",
    "UNKNOWN_WINDOW_NAME",
    "Account",
    "NotifySettings",
    "RawUsageResponse",
    "ServiceState",
    "Severity",
    "UsageResult",
    "UsageWindow",
    # Parsers
    "PARSERS",
    "normalize_window_name",
    "parse_claude_usage",
    "parse_codex_usage",
    # Classification
    "EXHAUSTED_THRESHOLD",
    "classify_utilization",
    "classify_windows",
    "derive_service_status",
]
