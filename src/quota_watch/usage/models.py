"""Data model shared by the parsers, classifier and transition builder.

Everything here is plain data. Parsing, classification and aggregation are
pure functions living in sibling modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional, Union

# Display name of the synthetic window emitted for unrecognized payloads
UNKNOWN_WINDOW_NAME = "(unknown format)"

# Lifecycle state for an account whose fetch or parse failed
STATUS_ERROR = "error"

SUPPORTED_SERVICES = ("claude", "codex")

SERVICE_LABELS = {
    "claude": "Claude Code",
    "codex": "Codex",
}


class Severity(IntEnum):
    """Usage severity, totally ordered from least to most severe."""

    UNKNOWN = 0
    OK = 1
    WARNING = 2
    CRITICAL = 3
    EXHAUSTED = 4

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def from_value(cls, value: Any) -> Optional["Severity"]:
        """Coerce a Severity, its lowercase name, or None."""
        if value is None or isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                return None
        return None


# A service status is either a severity or the out-of-band "error" state
Status = Union[Severity, str]


@dataclass
class UsageWindow:
    """One rate-limit bucket reported by a vendor."""

    name: str
    utilization: float
    resets_at: Union[int, float, str, None] = None
    window_seconds: Optional[float] = None
    force_exhausted: bool = False
    status: Optional[Severity] = None

    @classmethod
    def unknown(cls) -> "UsageWindow":
        """Sentinel window for payloads that match no known shape."""
        return cls(name=UNKNOWN_WINDOW_NAME, utilization=0.0, status=Severity.UNKNOWN)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "utilization": self.utilization,
            "resets_at": self.resets_at,
            "window_seconds": self.window_seconds,
            "force_exhausted": self.force_exhausted,
            "status": str(self.status) if self.status is not None else None,
        }


@dataclass
class NotifySettings:
    """User notification policy and classification thresholds."""

    critical: bool = True
    recovery: bool = True
    warning: bool = False
    threshold_warning: int = 75
    threshold_critical: int = 90


@dataclass
class Account:
    """A monitored vendor account. The token lives in the token store."""

    service: str
    id: str
    name: str
    has_token: bool = False

    @property
    def key(self) -> str:
        return f"{self.service}:{self.id}"

    @property
    def label(self) -> str:
        return f"{SERVICE_LABELS.get(self.service, self.service)}: {self.name}"

    def to_dict(self) -> dict[str, Any]:
        return {"service": self.service, "id": self.id, "name": self.name}


@dataclass
class RawUsageResponse:
    """Transport-agnostic view of one upstream HTTP response."""

    ok: bool
    status: int
    content_type: str = "application/json"
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class UsageResult:
    """Successful poll of one account: decoded body plus normalized windows."""

    raw: Any
    windows: list[UsageWindow]


@dataclass
class ServiceState:
    """Latest polled state of one account."""

    label: str
    windows: list[UsageWindow] = field(default_factory=list)
    status: Status = Severity.UNKNOWN
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status == STATUS_ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "status": str(self.status),
            "windows": [w.to_dict() for w in self.windows],
            "error": self.error,
        }


__all__ = [
    "UNKNOWN_WINDOW_NAME",
    "STATUS_ERROR",
    "SUPPORTED_SERVICES",
    "SERVICE_LABELS",
    "Severity",
    "Status",
    "UsageWindow",
    "NotifySettings",
    "Account",
    "RawUsageResponse",
    "UsageResult",
    "ServiceState",
]
